from functools import lru_cache
from urllib.parse import urlencode

import httpx
import jwt
from fastapi import HTTPException, status

from app.core.config import Settings
from app.schemas.users import ExternalIdentity

GOOGLE_PROVIDER = "google"
GOOGLE_AUTH = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN = "https://oauth2.googleapis.com/token"
GOOGLE_CERTS = "https://www.googleapis.com/oauth2/v3/certs"
GOOGLE_ISSUERS = ("https://accounts.google.com", "accounts.google.com")
SCOPES = "openid email profile"


@lru_cache
def _google_jwks_client() -> jwt.PyJWKClient:
    return jwt.PyJWKClient(GOOGLE_CERTS)


def _exchange_failed(detail: str = "OAuth exchange failed") -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


def build_google_authorize_url(settings: Settings, state: str, code_challenge: str) -> str:
    params = {
        "client_id": settings.google_client_id,
        "redirect_uri": settings.google_redirect_uri,
        "response_type": "code",
        "scope": SCOPES,
        "state": state,
        "code_challenge": code_challenge,
        "code_challenge_method": "S256",
        "prompt": "select_account",
    }
    return f"{GOOGLE_AUTH}?{urlencode(params)}"


def _decode_id_token(settings: Settings, id_token: str) -> dict:
    try:
        signing_key = _google_jwks_client().get_signing_key_from_jwt(id_token)
        claims = jwt.decode(
            id_token,
            signing_key.key,
            algorithms=["RS256"],
            audience=settings.google_client_id,
        )
    except jwt.PyJWTError as exc:
        raise _exchange_failed("Invalid ID token") from exc
    if claims.get("iss") not in GOOGLE_ISSUERS:
        raise _exchange_failed("Invalid ID token")
    return claims


def fetch_google_identity(
    settings: Settings, code: str, code_verifier: str
) -> ExternalIdentity:
    try:
        with httpx.Client(timeout=15) as client:
            response = client.post(
                GOOGLE_TOKEN,
                headers={"Accept": "application/json"},
                data={
                    "client_id": settings.google_client_id,
                    "client_secret": settings.google_client_secret,
                    "code": code,
                    "redirect_uri": settings.google_redirect_uri,
                    "grant_type": "authorization_code",
                    "code_verifier": code_verifier,
                },
            )
            response.raise_for_status()
            tok = response.json()
    except (httpx.HTTPError, ValueError) as exc:
        raise _exchange_failed() from exc

    id_token = tok.get("id_token") if isinstance(tok, dict) else None
    if not id_token:
        raise _exchange_failed()

    claims = _decode_id_token(settings, id_token)
    subject = claims.get("sub")
    if not subject:
        raise _exchange_failed("Invalid ID token")

    return ExternalIdentity(
        external_id=str(subject),
        email=claims.get("email") if claims.get("email_verified") else None,
        name=claims.get("name"),
        avatar_url=claims.get("picture"),
    )

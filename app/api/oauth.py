import logging
import secrets

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import RedirectResponse
from redis import Redis
from sqlalchemy.orm import Session

from app.api.auth import set_auth_cookie
from app.core.config import Settings, get_settings
from app.core.database import get_db
from app.core.redis import get_redis
from app.core.security import gen_pkce
from app.services import auth_service, oauth_service
from app.services.redis_service import load_oauth_tx, save_oauth_tx

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth/google", tags=["auth"])


def _require_google(settings: Settings) -> None:
    if not settings.google_enabled:
        raise HTTPException(
            status_code=status.HTTP_501_NOT_IMPLEMENTED,
            detail="Google sign-in is not configured",
        )


@router.get("")
def google_start(
    settings: Settings = Depends(get_settings),
    redis_client: Redis = Depends(get_redis),
):
    _require_google(settings)

    code_verifier, code_challenge = gen_pkce()
    state = secrets.token_urlsafe(16)
    save_oauth_tx(redis_client, state, {"code_verifier": code_verifier})

    return {
        "authorize_url": oauth_service.build_google_authorize_url(
            settings, state, code_challenge
        )
    }


@router.get("/callback")
def google_callback(
    code: str | None = None,
    state: str | None = None,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    redis_client: Redis = Depends(get_redis),
):
    client_origin = settings.client_origin.rstrip("/")
    failed = RedirectResponse(
        url=f"{client_origin}/?auth=failed", status_code=status.HTTP_303_SEE_OTHER
    )
    if not settings.google_enabled or not code or not state:
        return failed

    tx = load_oauth_tx(redis_client, state)
    if not tx or not tx.get("code_verifier"):
        return failed

    try:
        identity = oauth_service.fetch_google_identity(
            settings, code, tx["code_verifier"]
        )
        user = auth_service.link_external_identity(
            db, oauth_service.GOOGLE_PROVIDER, identity
        )
    except HTTPException as exc:
        logger.warning("Google sign-in failed: %s", exc.detail)
        return failed

    resp = RedirectResponse(url=client_origin, status_code=status.HTTP_303_SEE_OTHER)
    set_auth_cookie(resp, user, settings)
    return resp

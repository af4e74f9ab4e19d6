"""
Stateless signed identity tokens carried in the ``auth_token`` cookie.

A token is ``<payload>.<signature>`` where ``payload`` is the unpadded
base64url encoding of ``{"uid": <int>, "exp": <unix seconds>}`` and
``signature`` is the unpadded base64url HMAC-SHA256 of the payload text
under the server secret. Nothing is stored server-side, so a token stays
valid until it expires or the secret is rotated.
"""

import base64
import hashlib
import hmac
import json
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from urllib.parse import unquote

TOKEN_COOKIE_NAME = "auth_token"
_DELIMITER = "."


@dataclass(frozen=True)
class AuthTokenPayload:
    uid: int
    exp: int


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64url_decode(value: str) -> bytes:
    return base64.urlsafe_b64decode(value + "=" * (-len(value) % 4))


def _sign(payload: str, secret: str) -> str:
    digest = hmac.new(
        secret.encode("utf-8"), payload.encode("utf-8"), hashlib.sha256
    ).digest()
    return _b64url_encode(digest)


def _timestamp(now: datetime | None) -> int:
    return int((now or datetime.now(UTC)).timestamp())


def issue_auth_token(
    user_id: int,
    *,
    secret: str,
    ttl: timedelta,
    now: datetime | None = None,
) -> str:
    exp = _timestamp(now) + int(ttl.total_seconds())
    body = json.dumps({"uid": int(user_id), "exp": exp}, separators=(",", ":"))
    payload = _b64url_encode(body.encode("utf-8"))
    return f"{payload}{_DELIMITER}{_sign(payload, secret)}"


def verify_auth_token(
    token: str | None,
    *,
    secret: str,
    now: datetime | None = None,
) -> AuthTokenPayload | None:
    """Return the payload of a well-signed, unexpired token, otherwise ``None``."""
    if not token or not isinstance(token, str):
        return None

    payload, _, signature = token.partition(_DELIMITER)
    if not payload or not signature:
        return None

    expected = _sign(payload, secret).encode("utf-8")
    incoming = signature.encode("utf-8")
    # Lengths are public; only equal-length buffers reach the constant-time compare.
    if len(expected) != len(incoming):
        return None
    if not hmac.compare_digest(expected, incoming):
        return None

    try:
        decoded = json.loads(_b64url_decode(payload))
    except ValueError:
        return None
    if not isinstance(decoded, dict):
        return None

    uid = decoded.get("uid")
    exp = decoded.get("exp")
    if isinstance(uid, bool) or not isinstance(uid, int) or uid <= 0:
        return None
    if isinstance(exp, bool) or not isinstance(exp, int):
        return None
    if exp <= _timestamp(now):
        return None
    return AuthTokenPayload(uid=uid, exp=exp)


def parse_cookie_header(raw_header: str | None) -> dict[str, str]:
    cookies: dict[str, str] = {}
    for part in (raw_header or "").split(";"):
        part = part.strip()
        if not part:
            continue
        key, sep, value = part.partition("=")
        key = key.strip()
        if not sep or not key:
            continue
        cookies[key] = unquote(value.strip())
    return cookies


def auth_cookie_options(*, production: bool, ttl: timedelta) -> dict[str, object]:
    return {
        "httponly": True,
        "samesite": "none" if production else "lax",
        "secure": production,
        "path": "/",
        "max_age": int(ttl.total_seconds()),
    }

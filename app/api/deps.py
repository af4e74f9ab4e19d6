import logging
from collections.abc import Callable

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.auth_token import TOKEN_COOKIE_NAME, parse_cookie_header, verify_auth_token
from app.core.config import Settings, get_settings
from app.core.database import get_db
from app.models.users import User
from app.schemas.users import UserRole

logger = logging.getLogger(__name__)


def resolve_principal(
    cookie_header: str | None,
    db: Session,
    settings: Settings,
) -> User | None:
    """
    Turn a raw ``Cookie`` header into the signed-in user, or ``None``.

    Missing, malformed, expired or forged tokens and tokens for accounts that
    no longer exist all resolve to an anonymous request instead of an error.
    """
    token = parse_cookie_header(cookie_header).get(TOKEN_COOKIE_NAME)
    if not token:
        return None

    payload = verify_auth_token(token, secret=settings.signing_secret)
    if payload is None:
        return None

    try:
        return db.get(User, payload.uid)
    except SQLAlchemyError:
        logger.warning("Session lookup failed for user %s", payload.uid, exc_info=True)
        db.rollback()
        return None


def get_optional_user(
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> User | None:
    user = resolve_principal(request.headers.get("cookie"), db, settings)
    request.state.user = user
    return user


def get_current_user(user: User | None = Depends(get_optional_user)) -> User:
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    return user


def require_role(*roles: UserRole) -> Callable[..., User]:
    allowed = frozenset(roles)

    def _require_role(user: User = Depends(get_current_user)) -> User:
        if user.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return user

    return _require_role

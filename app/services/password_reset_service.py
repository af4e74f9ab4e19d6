from datetime import UTC, datetime, timedelta

from fastapi import HTTPException, status
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.core.security import generate_raw_token, hash_password, hash_token
from app.models.users import PasswordResetToken, User
from app.services.auth_service import ensure_password_policy, get_user_by_email

RESET_TTL_MINUTES = 60


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _ensure_unique_token_hash(db: Session, raw_token: str) -> tuple[str, str]:
    token_hash = hash_token(raw_token)
    existing = db.execute(
        select(PasswordResetToken.id).where(PasswordResetToken.token_hash == token_hash)
    ).first()
    if existing:
        return _ensure_unique_token_hash(db, generate_raw_token(32))
    return raw_token, token_hash


def create_password_reset_token(
    db: Session,
    user: User,
    ttl_minutes: int = RESET_TTL_MINUTES,
) -> tuple[PasswordResetToken, str]:
    now = datetime.now(UTC)
    db.execute(
        update(PasswordResetToken)
        .where(
            PasswordResetToken.user_id == user.id,
            PasswordResetToken.used_at.is_(None),
        )
        .values(used_at=now)
    )

    raw_token = generate_raw_token(32)
    raw_token, token_hash = _ensure_unique_token_hash(db, raw_token)
    expires_at = (now + timedelta(minutes=ttl_minutes)).replace(microsecond=0)

    token = PasswordResetToken(
        user_id=user.id,
        token_hash=token_hash,
        expires_at=expires_at,
    )
    db.add(token)
    db.commit()
    db.refresh(token)
    return token, raw_token


def request_password_reset(
    db: Session, email: str
) -> tuple[User, str] | None:
    """Issue a reset token for a known email; ``None`` when nobody owns it."""
    user = get_user_by_email(db, email)
    if not user:
        return None
    _, raw_token = create_password_reset_token(db, user)
    return user, raw_token


def validate_password_reset_token(db: Session, raw_token: str) -> PasswordResetToken:
    token = db.execute(
        select(PasswordResetToken).where(
            PasswordResetToken.token_hash == hash_token(raw_token)
        )
    ).scalar_one_or_none()
    if not token:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Reset link is invalid or expired",
        )
    if token.used_at is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Reset link has already been used",
        )
    if _as_utc(token.expires_at) <= datetime.now(UTC):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Reset link has expired",
        )
    return token


def complete_password_reset(db: Session, raw_token: str, new_password: str) -> User:
    ensure_password_policy(new_password)
    token = validate_password_reset_token(db, raw_token.strip())

    consumed = db.execute(
        update(PasswordResetToken)
        .where(
            PasswordResetToken.id == token.id,
            PasswordResetToken.used_at.is_(None),
        )
        .values(used_at=datetime.now(UTC))
    )
    if consumed.rowcount != 1:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Reset link has already been used",
        )

    user = db.get(User, token.user_id)
    if not user:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Reset link is invalid or expired",
        )
    user.password_hash = hash_password(new_password)
    db.add(user)
    db.commit()
    return user

import logging

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.security import hash_password, verify_password
from app.models.users import SocialIdentity, User
from app.schemas.users import ExternalIdentity, ProfileUpdate

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8
INVALID_CREDENTIALS = "Invalid email or password"
UNNAMED_USER = "Unnamed user"


def normalize_email(value: str | None) -> str:
    return (value or "").strip().lower()


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def ensure_password_policy(password: str) -> None:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
        )


def get_user_by_email(db: Session, email: str) -> User | None:
    return db.execute(
        select(User).where(User.email == normalize_email(email))
    ).scalar_one_or_none()


def _email_taken(db: Session, email: str, *, exclude_user_id: int | None = None) -> bool:
    stmt = select(User.id).where(User.email == email)
    if exclude_user_id is not None:
        stmt = stmt.where(User.id != exclude_user_id)
    return db.execute(stmt.limit(1)).first() is not None


def _email_conflict() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail="Email is already registered",
    )


def _save_unique_email(db: Session, *, flush_only: bool = False) -> None:
    # A concurrent registration can claim the email between the check and the commit.
    try:
        if flush_only:
            db.flush()
        else:
            db.commit()
    except IntegrityError:
        db.rollback()
        raise _email_conflict() from None


def register_user(db: Session, name: str, email: str, password: str) -> User:
    name = name.strip()
    email = normalize_email(email)
    if not name or not email or not password:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Name, email, and password are required",
        )
    ensure_password_policy(password)

    if _email_taken(db, email):
        raise _email_conflict()

    user = User(email=email, name=name, password_hash=hash_password(password))
    db.add(user)
    _save_unique_email(db)
    db.refresh(user)
    logger.info("Registered user %s", user.id)
    return user


def authenticate(db: Session, email: str, password: str) -> User:
    """
    Resolve an email/password pair to a user.

    Unknown emails, accounts without a password and wrong passwords all
    produce the same 401 so callers cannot probe which accounts exist.
    """
    user = get_user_by_email(db, email)
    if (
        not user
        or not user.password_hash
        or not verify_password(password, user.password_hash)
    ):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=INVALID_CREDENTIALS,
        )
    return user


def change_password(
    db: Session,
    user: User,
    current_password: str | None,
    new_password: str | None,
    confirm_password: str | None,
    *,
    commit: bool = True,
) -> None:
    if not current_password or not new_password or not confirm_password:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Current password, new password, and confirmation are required",
        )
    if new_password != confirm_password:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="New passwords do not match",
        )
    ensure_password_policy(new_password)

    if not user.password_hash:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Password change is not available for this account",
        )
    if not verify_password(current_password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Current password is incorrect",
        )

    user.password_hash = hash_password(new_password)
    db.add(user)
    if commit:
        db.commit()


def update_profile(db: Session, user: User, payload: ProfileUpdate) -> User:
    name = payload.name.strip()
    email = normalize_email(payload.email)
    if not name or not email:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Name and email are required",
        )

    if email != user.email and _email_taken(db, email, exclude_user_id=user.id):
        raise _email_conflict()

    if payload.current_password or payload.new_password or payload.confirm_password:
        change_password(
            db,
            user,
            payload.current_password,
            payload.new_password,
            payload.confirm_password,
            commit=False,
        )

    user.name = name
    user.email = email
    user.avatar_url = _clean(payload.avatar_url)
    user.bio = _clean(payload.bio)
    user.location = _clean(payload.location)
    user.interests = _clean(payload.interests)
    user.privacy_contact = payload.privacy_contact
    db.add(user)
    _save_unique_email(db)
    db.refresh(user)
    return user


def link_external_identity(
    db: Session, provider: str, identity: ExternalIdentity
) -> User:
    """
    Map a provider identity to a local user, creating or linking as needed.

    An existing link wins; otherwise an account with the same email is
    linked; otherwise a new password-less account is created. A provider that
    shares no email cannot create an account.
    """
    name = _clean(identity.name) or UNNAMED_USER
    avatar_url = _clean(identity.avatar_url)
    email = normalize_email(identity.email) or None

    link = db.execute(
        select(SocialIdentity).where(
            SocialIdentity.provider == provider,
            SocialIdentity.provider_user_id == identity.external_id,
        )
    ).scalar_one_or_none()

    if link:
        user = link.user
        user.name = name
        if avatar_url:
            user.avatar_url = avatar_url
        db.commit()
        db.refresh(user)
        return user

    if not email:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="The identity provider did not share an email address",
        )

    user = get_user_by_email(db, email)
    if user:
        user.name = name
        if avatar_url:
            user.avatar_url = avatar_url
    else:
        user = User(email=email, name=name, password_hash=None, avatar_url=avatar_url)
        db.add(user)
        _save_unique_email(db, flush_only=True)

    db.add(
        SocialIdentity(
            user_id=user.id,
            provider=provider,
            provider_user_id=identity.external_id,
            email_verified=True,
        )
    )
    _save_unique_email(db)
    db.refresh(user)
    logger.info("Linked %s identity to user %s", provider, user.id)
    return user

import datetime

from sqlalchemy import (
    DateTime,
    Enum,
    ForeignKey,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base
from app.schemas.users import ContactPrivacy, UserRole


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, init=False)
    email: Mapped[str] = mapped_column(unique=True)
    name: Mapped[str]
    password_hash: Mapped[str | None] = mapped_column(default=None, repr=False)
    role: Mapped[UserRole] = mapped_column(
        Enum(
            UserRole,
            name="userrole",
            values_callable=lambda enum_cls: [e.value for e in enum_cls],
        ),
        default=UserRole.user,
        server_default=UserRole.user.value,
    )
    avatar_url: Mapped[str | None] = mapped_column(default=None)
    bio: Mapped[str | None] = mapped_column(default=None)
    location: Mapped[str | None] = mapped_column(default=None)
    interests: Mapped[str | None] = mapped_column(default=None)
    privacy_contact: Mapped[ContactPrivacy] = mapped_column(
        Enum(
            ContactPrivacy,
            name="contactprivacy",
            values_callable=lambda enum_cls: [e.value for e in enum_cls],
        ),
        default=ContactPrivacy.members,
        server_default=ContactPrivacy.members.value,
    )
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        insert_default=func.now(),
        server_default=func.now(),
        init=False,
    )
    social_identities: Mapped[list["SocialIdentity"]] = relationship(
        back_populates="user",
        cascade="all, delete-orphan",
        init=False,
    )
    password_reset_tokens: Mapped[list["PasswordResetToken"]] = relationship(
        back_populates="user",
        cascade="all, delete-orphan",
        init=False,
    )


class SocialIdentity(Base):
    __tablename__ = "social_identities"
    id: Mapped[int] = mapped_column(primary_key=True, init=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    user: Mapped[User] = relationship(back_populates="social_identities", init=False)
    provider: Mapped[str] = mapped_column(index=True)
    provider_user_id: Mapped[str] = mapped_column(index=True)
    email_verified: Mapped[bool] = mapped_column(default=False)

    __table_args__ = (
        UniqueConstraint("provider", "provider_user_id", name="uq_provider_sub"),
    )


class PasswordResetToken(Base):
    __tablename__ = "password_reset_tokens"

    id: Mapped[int] = mapped_column(primary_key=True, init=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    user: Mapped[User] = relationship(
        back_populates="password_reset_tokens", init=False
    )
    token_hash: Mapped[str] = mapped_column(unique=True, index=True, repr=False)
    expires_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True))
    used_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        insert_default=func.now(),
        server_default=func.now(),
        init=False,
    )

from __future__ import annotations

import datetime

from sqlalchemy import (
    DateTime,
    Enum,
    ForeignKey,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base
from app.models.users import User
from app.schemas.communities import (
    InviteStatus,
    MemberRole,
    MemberStatus,
    Visibility,
)


def _enum_column(enum_cls, name: str) -> Enum:
    return Enum(
        enum_cls,
        name=name,
        values_callable=lambda members: [e.value for e in members],
    )


class Community(Base):
    __tablename__ = "communities"

    id: Mapped[int] = mapped_column(primary_key=True, init=False)
    creator_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    creator: Mapped[User] = relationship(init=False)
    name: Mapped[str]
    visibility: Mapped[Visibility] = mapped_column(
        _enum_column(Visibility, "communityvisibility"),
        default=Visibility.public,
        server_default=Visibility.public.value,
    )
    max_members: Mapped[int | None] = mapped_column(default=None)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    sport: Mapped[str | None] = mapped_column(default=None)
    region: Mapped[str | None] = mapped_column(default=None)
    image_url: Mapped[str | None] = mapped_column(default=None)
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        insert_default=func.now(),
        server_default=func.now(),
        init=False,
    )

    members: Mapped[list[CommunityMember]] = relationship(
        back_populates="community",
        cascade="all, delete-orphan",
        init=False,
    )


class CommunityMember(Base):
    __tablename__ = "community_members"

    id: Mapped[int] = mapped_column(primary_key=True, init=False)
    community_id: Mapped[int] = mapped_column(
        ForeignKey("communities.id", ondelete="CASCADE"), index=True
    )
    community: Mapped[Community] = relationship(back_populates="members", init=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    user: Mapped[User] = relationship(
        foreign_keys="CommunityMember.user_id", init=False
    )
    role: Mapped[MemberRole] = mapped_column(
        _enum_column(MemberRole, "memberrole"),
        default=MemberRole.member,
        server_default=MemberRole.member.value,
    )
    status: Mapped[MemberStatus] = mapped_column(
        _enum_column(MemberStatus, "memberstatus"),
        default=MemberStatus.pending,
        server_default=MemberStatus.pending.value,
    )
    approved_by: Mapped[int | None] = mapped_column(
        ForeignKey("users.id"), default=None
    )
    approved_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        insert_default=func.now(),
        server_default=func.now(),
        init=False,
    )

    __table_args__ = (
        UniqueConstraint("community_id", "user_id", name="uq_community_member"),
    )


class CommunityInvite(Base):
    __tablename__ = "community_invites"

    id: Mapped[int] = mapped_column(primary_key=True, init=False)
    community_id: Mapped[int] = mapped_column(
        ForeignKey("communities.id", ondelete="CASCADE"), index=True
    )
    email: Mapped[str] = mapped_column(index=True)
    invited_by: Mapped[int] = mapped_column(ForeignKey("users.id"))
    invited_user_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id"), default=None
    )
    status: Mapped[InviteStatus] = mapped_column(
        _enum_column(InviteStatus, "invitestatus"),
        default=InviteStatus.pending,
        server_default=InviteStatus.pending.value,
    )
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        insert_default=func.now(),
        server_default=func.now(),
        init=False,
    )

    __table_args__ = (
        UniqueConstraint("community_id", "email", name="uq_community_invite_email"),
    )


class CommunityMessage(Base):
    __tablename__ = "community_messages"

    id: Mapped[int] = mapped_column(primary_key=True, init=False)
    community_id: Mapped[int] = mapped_column(
        ForeignKey("communities.id", ondelete="CASCADE"), index=True
    )
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"))
    user: Mapped[User] = relationship(init=False)
    message: Mapped[str] = mapped_column(Text)
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        insert_default=func.now(),
        server_default=func.now(),
        init=False,
    )


class DirectMessage(Base):
    __tablename__ = "private_messages"

    id: Mapped[int] = mapped_column(primary_key=True, init=False)
    sender_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    sender: Mapped[User] = relationship(foreign_keys="DirectMessage.sender_id", init=False)
    recipient_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    message: Mapped[str] = mapped_column(Text)
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        insert_default=func.now(),
        server_default=func.now(),
        init=False,
    )
    read_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )

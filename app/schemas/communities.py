from datetime import datetime
from enum import StrEnum
from typing import Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


class Visibility(StrEnum):
    public = "public"
    private = "private"
    invite = "invite"


class MemberRole(StrEnum):
    owner = "owner"
    admin = "admin"
    member = "member"


class MemberStatus(StrEnum):
    pending = "pending"
    approved = "approved"
    banned = "banned"


class InviteStatus(StrEnum):
    pending = "pending"
    accepted = "accepted"
    declined = "declined"


def _strip_optional(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


class CommunityCreate(BaseModel):
    name: str
    visibility: Visibility = Visibility.public
    max_members: int | None = Field(default=None, ge=1)
    description: str | None = None
    sport: str | None = None
    region: str | None = None
    image_url: str | None = None

    @field_validator("description", "sport", "region", "image_url")
    @classmethod
    def strip_text(cls, value: str | None) -> str | None:
        return _strip_optional(value)


class CommunityUpdate(BaseModel):
    name: str | None = None
    visibility: Visibility | None = None
    max_members: int | None = Field(default=None, ge=1)
    description: str | None = None
    sport: str | None = None
    region: str | None = None
    image_url: str | None = None

    @field_validator("description", "sport", "region", "image_url")
    @classmethod
    def strip_text(cls, value: str | None) -> str | None:
        return _strip_optional(value)


class CommunityOut(BaseModel):
    id: int
    name: str
    description: str | None
    sport: str | None
    region: str | None
    image_url: str | None
    max_members: int | None
    visibility: Visibility
    created_at: datetime | None
    creator_id: int
    creator_name: str
    member_count: int
    is_member: bool = False
    is_owner: bool = False
    role: MemberRole | None = None
    membership_status: Literal["none", "pending", "approved", "banned"] = "none"
    invite_id: int | None = None


class JoinOut(BaseModel):
    status: MemberStatus
    already_member: bool = False


class InviteIn(BaseModel):
    email: EmailStr


class InviteOut(BaseModel):
    id: int
    community_id: int
    email: str
    status: InviteStatus
    created_at: datetime | None

    model_config = ConfigDict(
        from_attributes=True,
    )


class MemberOut(BaseModel):
    user_id: int
    user_name: str
    role: MemberRole
    status: MemberStatus
    approved_at: datetime | None = None


class JoinRequestOut(BaseModel):
    user_id: int
    user_name: str
    user_email: str
    created_at: datetime | None


class MemberRoleUpdate(BaseModel):
    role: MemberRole


class OperationOut(BaseModel):
    ok: bool = True
    affected: int | None = None

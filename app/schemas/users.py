from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class UserRole(StrEnum):
    user = "user"
    admin = "admin"
    superadmin = "superadmin"


class ContactPrivacy(StrEnum):
    everyone = "everyone"
    members = "members"
    no_one = "no_one"


class UserCreate(BaseModel):
    name: str
    email: EmailStr
    password: str


class LoginIn(BaseModel):
    email: EmailStr
    password: str


class UserOut(BaseModel):
    id: int
    name: str
    email: EmailStr
    role: UserRole
    avatar_url: str | None = None
    bio: str | None = None
    location: str | None = None
    interests: str | None = None
    privacy_contact: ContactPrivacy
    created_at: datetime | None = None

    model_config = ConfigDict(
        from_attributes=True,
    )


class AuthOut(BaseModel):
    user: UserOut


class MeOut(BaseModel):
    user: UserOut | None
    google_enabled: bool


class ProfileUpdate(BaseModel):
    name: str
    email: EmailStr
    avatar_url: str | None = None
    bio: str | None = None
    location: str | None = None
    interests: str | None = None
    privacy_contact: ContactPrivacy = ContactPrivacy.members
    current_password: str | None = None
    new_password: str | None = None
    confirm_password: str | None = None


class UserRoleUpdate(BaseModel):
    role: UserRole


class UserSummary(BaseModel):
    id: int
    name: str
    email: EmailStr
    role: UserRole

    model_config = ConfigDict(
        from_attributes=True,
    )


class ExternalIdentity(BaseModel):
    """Identity handed over by an OAuth provider after a successful sign-in."""

    external_id: str = Field(min_length=1)
    email: str | None = None
    name: str | None = None
    avatar_url: str | None = None

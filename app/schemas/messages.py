from datetime import datetime

from pydantic import BaseModel, Field


class MessageIn(BaseModel):
    message: str = Field(max_length=4000)


class CommunityMessageOut(BaseModel):
    id: int
    message: str
    created_at: datetime | None
    user_id: int
    user_name: str
    user_avatar: str | None = None


class DirectMessageIn(BaseModel):
    recipient_id: int
    message: str = Field(max_length=4000)


class DirectMessageOut(BaseModel):
    id: int
    sender_id: int
    recipient_id: int
    message: str
    created_at: datetime | None
    read_at: datetime | None = None
    sender_name: str | None = None
    sender_avatar: str | None = None

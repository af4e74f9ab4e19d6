from app.core.database import Base
from app.models.communities import (
    Community,
    CommunityInvite,
    CommunityMember,
    CommunityMessage,
    DirectMessage,
)
from app.models.users import (
    PasswordResetToken,
    SocialIdentity,
    User,
)

__all__ = [
    "Base",
    "Community",
    "CommunityInvite",
    "CommunityMember",
    "CommunityMessage",
    "DirectMessage",
    "PasswordResetToken",
    "SocialIdentity",
    "User",
]

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session, aliased

from app.models.communities import CommunityMember, CommunityMessage, DirectMessage
from app.models.users import User
from app.schemas.communities import MemberStatus
from app.schemas.messages import CommunityMessageOut, DirectMessageOut
from app.schemas.users import ContactPrivacy
from app.services.access_policy import CommunityAction, ensure_allowed
from app.services.membership_service import get_community_or_404, get_membership

CHAT_HISTORY_LIMIT = 200
DEFAULT_INBOX_LIMIT = 20
MAX_INBOX_LIMIT = 100


def _require_text(message: str) -> str:
    message = message.strip()
    if not message:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Message cannot be empty",
        )
    return message


def _render_chat(message: CommunityMessage) -> CommunityMessageOut:
    return CommunityMessageOut(
        id=message.id,
        message=message.message,
        created_at=message.created_at,
        user_id=message.user.id,
        user_name=message.user.name,
        user_avatar=message.user.avatar_url,
    )


def list_community_messages(
    db: Session, community_id: int, viewer: User | None
) -> list[CommunityMessageOut]:
    community = get_community_or_404(db, community_id)
    membership = get_membership(db, community.id, viewer.id) if viewer else None
    ensure_allowed(CommunityAction.chat, viewer, membership)

    latest = (
        select(CommunityMessage)
        .where(CommunityMessage.community_id == community.id)
        .order_by(CommunityMessage.created_at.desc(), CommunityMessage.id.desc())
        .limit(CHAT_HISTORY_LIMIT)
    )
    messages = list(db.execute(latest).scalars())
    messages.reverse()
    return [_render_chat(message) for message in messages]


def post_community_message(
    db: Session, community_id: int, author: User, text: str
) -> CommunityMessageOut:
    community = get_community_or_404(db, community_id)
    ensure_allowed(
        CommunityAction.chat, author, get_membership(db, community.id, author.id)
    )

    message = CommunityMessage(
        community_id=community.id,
        user_id=author.id,
        message=_require_text(text),
    )
    db.add(message)
    db.commit()
    db.refresh(message)
    return _render_chat(message)


def _share_a_community(db: Session, first_user_id: int, second_user_id: int) -> bool:
    other = aliased(CommunityMember)
    stmt = (
        select(CommunityMember.id)
        .join(other, other.community_id == CommunityMember.community_id)
        .where(
            CommunityMember.user_id == first_user_id,
            other.user_id == second_user_id,
            CommunityMember.status == MemberStatus.approved,
            other.status == MemberStatus.approved,
        )
        .limit(1)
    )
    return db.execute(stmt).first() is not None


def send_direct_message(
    db: Session, sender: User, recipient_id: int, text: str
) -> DirectMessageOut:
    text = _require_text(text)
    if recipient_id == sender.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You cannot message yourself",
        )

    recipient = db.get(User, recipient_id)
    if not recipient:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        )

    if recipient.privacy_contact == ContactPrivacy.no_one:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="This user does not accept messages",
        )
    if recipient.privacy_contact == ContactPrivacy.members and not _share_a_community(
        db, sender.id, recipient.id
    ):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only shared community members can message this user",
        )

    message = DirectMessage(sender_id=sender.id, recipient_id=recipient.id, message=text)
    db.add(message)
    db.commit()
    db.refresh(message)
    return DirectMessageOut(
        id=message.id,
        sender_id=message.sender_id,
        recipient_id=message.recipient_id,
        message=message.message,
        created_at=message.created_at,
        read_at=message.read_at,
    )


def list_inbox(
    db: Session, user: User, limit: int = DEFAULT_INBOX_LIMIT
) -> list[DirectMessageOut]:
    limit = min(max(limit, 1), MAX_INBOX_LIMIT)
    messages = db.execute(
        select(DirectMessage)
        .where(DirectMessage.recipient_id == user.id)
        .order_by(DirectMessage.created_at.desc(), DirectMessage.id.desc())
        .limit(limit)
    ).scalars()
    return [
        DirectMessageOut(
            id=message.id,
            sender_id=message.sender_id,
            recipient_id=message.recipient_id,
            message=message.message,
            created_at=message.created_at,
            read_at=message.read_at,
            sender_name=message.sender.name,
            sender_avatar=message.sender.avatar_url,
        )
        for message in messages
    ]

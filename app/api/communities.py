from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_optional_user
from app.core.database import get_db
from app.models.communities import CommunityMember
from app.models.users import User
from app.schemas.communities import (
    CommunityCreate,
    CommunityOut,
    CommunityUpdate,
    InviteIn,
    InviteOut,
    JoinOut,
    JoinRequestOut,
    MemberOut,
    MemberRoleUpdate,
    OperationOut,
)
from app.schemas.messages import CommunityMessageOut, MessageIn
from app.services import community_service, membership_service, message_service

router = APIRouter(prefix="/communities", tags=["communities"])


def _member_out(member: CommunityMember) -> MemberOut:
    return MemberOut(
        user_id=member.user_id,
        user_name=member.user.name,
        role=member.role,
        status=member.status,
        approved_at=member.approved_at,
    )


@router.get("", response_model=list[CommunityOut])
def list_communities(
    limit: int = Query(default=community_service.DEFAULT_LIST_LIMIT),
    db: Session = Depends(get_db),
    viewer: User | None = Depends(get_optional_user),
):
    return community_service.list_communities(db, viewer, limit)


@router.post("", response_model=CommunityOut, status_code=status.HTTP_201_CREATED)
def create_community(
    payload: CommunityCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return community_service.create_community(db, user, payload)


@router.get("/{community_id}", response_model=CommunityOut)
def get_community(
    community_id: int,
    db: Session = Depends(get_db),
    viewer: User | None = Depends(get_optional_user),
):
    return community_service.get_community_detail(db, community_id, viewer)


@router.patch("/{community_id}", response_model=CommunityOut)
def update_community(
    community_id: int,
    payload: CommunityUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return community_service.update_community(db, community_id, user, payload)


@router.post("/{community_id}/join", response_model=JoinOut)
def join_community(
    community_id: int,
    response: Response,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    result = membership_service.request_join(db, community_id, user)
    if not result.already_member:
        response.status_code = status.HTTP_201_CREATED
    return result


@router.delete("/{community_id}/join", response_model=OperationOut)
def leave_community(
    community_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    affected = membership_service.leave_community(db, community_id, user)
    return OperationOut(affected=affected)


@router.get("/{community_id}/invites", response_model=list[InviteOut])
def list_invites(
    community_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return membership_service.list_invites(db, community_id, user)


@router.post(
    "/{community_id}/invites",
    response_model=InviteOut,
    status_code=status.HTTP_201_CREATED,
)
def create_invite(
    community_id: int,
    payload: InviteIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return membership_service.create_invite(db, community_id, user, payload.email)


@router.get("/{community_id}/requests", response_model=list[JoinRequestOut])
def list_join_requests(
    community_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return membership_service.list_join_requests(db, community_id, user)


@router.post(
    "/{community_id}/requests/{user_id}/approve", response_model=OperationOut
)
def approve_join_request(
    community_id: int,
    user_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    affected = membership_service.approve_request(db, community_id, user, user_id)
    return OperationOut(affected=affected)


@router.post("/{community_id}/requests/{user_id}/reject", response_model=OperationOut)
def reject_join_request(
    community_id: int,
    user_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    affected = membership_service.reject_request(db, community_id, user, user_id)
    return OperationOut(affected=affected)


@router.get("/{community_id}/members", response_model=list[MemberOut])
def list_members(
    community_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return membership_service.list_members(db, community_id, user)


@router.patch("/{community_id}/members/{user_id}/role", response_model=MemberOut)
def set_member_role(
    community_id: int,
    user_id: int,
    payload: MemberRoleUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    member = membership_service.set_member_role(
        db, community_id, user, user_id, payload.role
    )
    return _member_out(member)


@router.delete("/{community_id}/members/{user_id}", response_model=OperationOut)
def kick_member(
    community_id: int,
    user_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    affected = membership_service.kick_member(db, community_id, user, user_id)
    return OperationOut(affected=affected)


@router.post("/{community_id}/members/{user_id}/ban", response_model=MemberOut)
def ban_member(
    community_id: int,
    user_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    member = membership_service.ban_member(db, community_id, user, user_id)
    return _member_out(member)


@router.get("/{community_id}/messages", response_model=list[CommunityMessageOut])
def list_messages(
    community_id: int,
    db: Session = Depends(get_db),
    viewer: User | None = Depends(get_optional_user),
):
    return message_service.list_community_messages(db, community_id, viewer)


@router.post(
    "/{community_id}/messages",
    response_model=CommunityMessageOut,
    status_code=status.HTTP_201_CREATED,
)
def post_message(
    community_id: int,
    payload: MessageIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return message_service.post_community_message(
        db, community_id, user, payload.message
    )

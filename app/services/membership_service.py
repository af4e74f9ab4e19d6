"""
Membership transitions for communities.

A (community, user) pair has at most one ``community_members`` row. Joins and
invite acceptance are single ``INSERT ... ON CONFLICT`` statements keyed on
that pair, so concurrent attempts converge on one row and the caller reports
whatever row ended up stored. Moderation statements carry their own guards
(``status = 'pending'``, ``role <> 'owner'``) so a stale caller can never
touch the owner row or resolve a request twice.
"""

import logging
from datetime import UTC, datetime

from fastapi import HTTPException, status
from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

from app.core.database import insert_on_conflict
from app.models.communities import Community, CommunityInvite, CommunityMember
from app.models.users import User
from app.schemas.communities import (
    InviteStatus,
    JoinOut,
    JoinRequestOut,
    MemberOut,
    MemberRole,
    MemberStatus,
    Visibility,
)
from app.services.access_policy import CommunityAction, ensure_allowed
from app.services.auth_service import normalize_email

logger = logging.getLogger(__name__)

_MEMBER_KEY = ["community_id", "user_id"]
_INVITE_KEY = ["community_id", "email"]


def get_community_or_404(db: Session, community_id: int) -> Community:
    community = db.get(Community, community_id)
    if not community:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Community not found",
        )
    return community


def get_membership(
    db: Session, community_id: int, user_id: int
) -> CommunityMember | None:
    # populate_existing: always reflect the stored row, not a cached identity.
    return db.execute(
        select(CommunityMember)
        .where(
            CommunityMember.community_id == community_id,
            CommunityMember.user_id == user_id,
        )
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()


def approved_member_count(db: Session, community_id: int) -> int:
    return db.execute(
        select(func.count(CommunityMember.id)).where(
            CommunityMember.community_id == community_id,
            CommunityMember.status == MemberStatus.approved,
        )
    ).scalar_one()


def _is_full(db: Session, community: Community) -> bool:
    if not community.max_members:
        return False
    return approved_member_count(db, community.id) >= community.max_members


def _pending_invite_for(
    db: Session, community_id: int, email: str
) -> CommunityInvite | None:
    return db.execute(
        select(CommunityInvite).where(
            CommunityInvite.community_id == community_id,
            CommunityInvite.email == normalize_email(email),
            CommunityInvite.status == InviteStatus.pending,
        )
    ).scalar_one_or_none()


def _banned() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="You are banned from this community",
    )


def _full() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail="Community is full",
    )


def _not_self(actor: User, target_user_id: int, detail: str) -> None:
    if actor.id == target_user_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


def _not_owner(target: CommunityMember | None, detail: str) -> None:
    if target is not None and target.role == MemberRole.owner:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


def request_join(db: Session, community_id: int, user: User) -> JoinOut:
    community = get_community_or_404(db, community_id)
    ensure_allowed(CommunityAction.join, user, None)

    existing = get_membership(db, community.id, user.id)
    if existing:
        if existing.status == MemberStatus.banned:
            raise _banned()
        return JoinOut(status=existing.status, already_member=True)

    if community.visibility == Visibility.invite and not _pending_invite_for(
        db, community.id, user.email
    ):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invitation required to join this community",
        )
    if _is_full(db, community):
        raise _full()

    auto_approve = community.visibility == Visibility.public
    result = insert_on_conflict(
        db,
        CommunityMember,
        {
            "community_id": community.id,
            "user_id": user.id,
            "role": MemberRole.member,
            "status": MemberStatus.approved if auto_approve else MemberStatus.pending,
            "approved_by": user.id if auto_approve else None,
            "approved_at": datetime.now(UTC) if auto_approve else None,
        },
        index_elements=_MEMBER_KEY,
    )
    db.commit()

    stored = get_membership(db, community.id, user.id)
    if stored is None:
        # Removed again between the insert and the read; report the attempt.
        return JoinOut(
            status=MemberStatus.approved if auto_approve else MemberStatus.pending
        )
    if stored.status == MemberStatus.banned:
        raise _banned()
    return JoinOut(status=stored.status, already_member=result.rowcount == 0)


def leave_community(db: Session, community_id: int, user: User) -> int:
    community = get_community_or_404(db, community_id)
    ensure_allowed(CommunityAction.leave, user, None)

    membership = get_membership(db, community.id, user.id)
    if membership and membership.role == MemberRole.owner:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="The owner cannot leave their community",
        )

    # A banned row stays so the ban keeps blocking future joins.
    result = db.execute(
        delete(CommunityMember).where(
            CommunityMember.community_id == community.id,
            CommunityMember.user_id == user.id,
            CommunityMember.role != MemberRole.owner,
            CommunityMember.status.in_([MemberStatus.pending, MemberStatus.approved]),
        )
    )
    db.commit()
    return result.rowcount


def create_invite(
    db: Session, community_id: int, actor: User, email: str
) -> CommunityInvite:
    community = get_community_or_404(db, community_id)
    ensure_allowed(
        CommunityAction.manage_invites, actor, get_membership(db, community.id, actor.id)
    )

    email = normalize_email(email)
    invited_user_id = db.execute(
        select(User.id).where(User.email == email)
    ).scalar_one_or_none()

    insert_on_conflict(
        db,
        CommunityInvite,
        {
            "community_id": community.id,
            "email": email,
            "invited_by": actor.id,
            "invited_user_id": invited_user_id,
            "status": InviteStatus.pending,
        },
        index_elements=_INVITE_KEY,
        set_={"status": InviteStatus.pending},
        excluded=["invited_user_id", "invited_by"],
    )
    db.commit()
    return db.execute(
        select(CommunityInvite)
        .where(
            CommunityInvite.community_id == community.id,
            CommunityInvite.email == email,
        )
        .execution_options(populate_existing=True)
    ).scalar_one()


def list_invites(db: Session, community_id: int, actor: User) -> list[CommunityInvite]:
    community = get_community_or_404(db, community_id)
    ensure_allowed(
        CommunityAction.manage_invites, actor, get_membership(db, community.id, actor.id)
    )
    invites = db.execute(
        select(CommunityInvite)
        .where(CommunityInvite.community_id == community.id)
        .order_by(CommunityInvite.created_at.desc(), CommunityInvite.id.desc())
    ).scalars()
    return list(invites)


def _get_invite_for(db: Session, invite_id: int, user: User) -> CommunityInvite:
    invite = db.execute(
        select(CommunityInvite)
        .where(CommunityInvite.id == invite_id)
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if not invite:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Invite not found",
        )
    if invite.email != normalize_email(user.email):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invite does not match your account",
        )
    if invite.status != InviteStatus.pending:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Invite has already been {invite.status.value}",
        )
    return invite


def accept_invite(db: Session, invite_id: int, user: User) -> JoinOut:
    invite = _get_invite_for(db, invite_id, user)
    community = get_community_or_404(db, invite.community_id)

    existing = get_membership(db, community.id, user.id)
    if existing and existing.status == MemberStatus.banned:
        raise _banned()
    if not (existing and existing.status == MemberStatus.approved) and _is_full(
        db, community
    ):
        raise _full()

    now = datetime.now(UTC)
    insert_on_conflict(
        db,
        CommunityMember,
        {
            "community_id": community.id,
            "user_id": user.id,
            "role": MemberRole.member,
            "status": MemberStatus.approved,
            "approved_by": user.id,
            "approved_at": now,
        },
        index_elements=_MEMBER_KEY,
        set_={
            "status": MemberStatus.approved,
            "approved_by": user.id,
            "approved_at": now,
        },
        where=CommunityMember.status == MemberStatus.pending,
    )
    # A ban that landed after the check above leaves the invite pending.
    stored = get_membership(db, community.id, user.id)
    if stored is None or stored.status == MemberStatus.banned:
        raise _banned()

    invite.status = InviteStatus.accepted
    invite.invited_user_id = user.id
    db.add(invite)
    db.commit()
    return JoinOut(status=stored.status, already_member=existing is not None)


def decline_invite(db: Session, invite_id: int, user: User) -> CommunityInvite:
    invite = _get_invite_for(db, invite_id, user)
    invite.status = InviteStatus.declined
    invite.invited_user_id = user.id
    db.add(invite)
    db.commit()
    return invite


def list_join_requests(
    db: Session, community_id: int, actor: User
) -> list[JoinRequestOut]:
    community = get_community_or_404(db, community_id)
    ensure_allowed(
        CommunityAction.manage_requests, actor, get_membership(db, community.id, actor.id)
    )
    rows = db.execute(
        select(CommunityMember, User)
        .join(User, User.id == CommunityMember.user_id)
        .where(
            CommunityMember.community_id == community.id,
            CommunityMember.status == MemberStatus.pending,
        )
        .order_by(CommunityMember.created_at.asc(), CommunityMember.id.asc())
    ).all()
    return [
        JoinRequestOut(
            user_id=user.id,
            user_name=user.name,
            user_email=user.email,
            created_at=member.created_at,
        )
        for member, user in rows
    ]


def approve_request(
    db: Session, community_id: int, actor: User, target_user_id: int
) -> int:
    """Approve a pending request; returns 0 when there was nothing pending."""
    community = get_community_or_404(db, community_id)
    ensure_allowed(
        CommunityAction.manage_requests, actor, get_membership(db, community.id, actor.id)
    )
    result = db.execute(
        update(CommunityMember)
        .where(
            CommunityMember.community_id == community.id,
            CommunityMember.user_id == target_user_id,
            CommunityMember.status == MemberStatus.pending,
        )
        .values(
            status=MemberStatus.approved,
            approved_by=actor.id,
            approved_at=datetime.now(UTC),
        )
    )
    db.commit()
    return result.rowcount


def reject_request(
    db: Session, community_id: int, actor: User, target_user_id: int
) -> int:
    community = get_community_or_404(db, community_id)
    ensure_allowed(
        CommunityAction.manage_requests, actor, get_membership(db, community.id, actor.id)
    )
    result = db.execute(
        delete(CommunityMember).where(
            CommunityMember.community_id == community.id,
            CommunityMember.user_id == target_user_id,
            CommunityMember.status == MemberStatus.pending,
        )
    )
    db.commit()
    return result.rowcount


def list_members(db: Session, community_id: int, viewer: User) -> list[MemberOut]:
    community = get_community_or_404(db, community_id)
    ensure_allowed(
        CommunityAction.view_members, viewer, get_membership(db, community.id, viewer.id)
    )
    rows = db.execute(
        select(CommunityMember, User)
        .join(User, User.id == CommunityMember.user_id)
        .where(
            CommunityMember.community_id == community.id,
            CommunityMember.status == MemberStatus.approved,
        )
        .order_by(CommunityMember.id.asc())
    ).all()
    return [
        MemberOut(
            user_id=user.id,
            user_name=user.name,
            role=member.role,
            status=member.status,
            approved_at=member.approved_at,
        )
        for member, user in rows
    ]


def set_member_role(
    db: Session,
    community_id: int,
    actor: User,
    target_user_id: int,
    role: MemberRole,
) -> CommunityMember:
    community = get_community_or_404(db, community_id)
    ensure_allowed(
        CommunityAction.assign_roles, actor, get_membership(db, community.id, actor.id)
    )
    if role not in (MemberRole.admin, MemberRole.member):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Role must be admin or member",
        )
    _not_self(actor, target_user_id, "You cannot change your own role")

    target = get_membership(db, community.id, target_user_id)
    if target is None or target.status != MemberStatus.approved:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Member not found",
        )
    _not_owner(target, "The owner's role cannot be changed")

    db.execute(
        update(CommunityMember)
        .where(
            CommunityMember.community_id == community.id,
            CommunityMember.user_id == target_user_id,
            CommunityMember.role != MemberRole.owner,
        )
        .values(role=role)
    )
    db.commit()
    logger.info(
        "User %s set role %s for user %s in community %s",
        actor.id,
        role.value,
        target_user_id,
        community.id,
    )
    return get_membership(db, community.id, target_user_id)


def kick_member(
    db: Session, community_id: int, actor: User, target_user_id: int
) -> int:
    community = get_community_or_404(db, community_id)
    ensure_allowed(
        CommunityAction.remove_members, actor, get_membership(db, community.id, actor.id)
    )
    _not_self(actor, target_user_id, "You cannot remove yourself")
    _not_owner(
        get_membership(db, community.id, target_user_id),
        "The owner cannot be removed",
    )

    # Banned rows stay so the ban keeps blocking future joins.
    result = db.execute(
        delete(CommunityMember).where(
            CommunityMember.community_id == community.id,
            CommunityMember.user_id == target_user_id,
            CommunityMember.role != MemberRole.owner,
            CommunityMember.status != MemberStatus.banned,
        )
    )
    db.commit()
    if result.rowcount:
        logger.info(
            "User %s removed user %s from community %s",
            actor.id,
            target_user_id,
            community.id,
        )
    return result.rowcount


def ban_member(
    db: Session, community_id: int, actor: User, target_user_id: int
) -> CommunityMember:
    community = get_community_or_404(db, community_id)
    ensure_allowed(
        CommunityAction.remove_members, actor, get_membership(db, community.id, actor.id)
    )
    _not_self(actor, target_user_id, "You cannot ban yourself")
    _not_owner(
        get_membership(db, community.id, target_user_id),
        "The owner cannot be banned",
    )
    if db.get(User, target_user_id) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        )

    # The owner guard lives on the statement itself, not only in the check above.
    insert_on_conflict(
        db,
        CommunityMember,
        {
            "community_id": community.id,
            "user_id": target_user_id,
            "role": MemberRole.member,
            "status": MemberStatus.banned,
        },
        index_elements=_MEMBER_KEY,
        set_={
            "role": MemberRole.member,
            "status": MemberStatus.banned,
            "approved_by": None,
            "approved_at": None,
        },
        where=CommunityMember.role != MemberRole.owner,
    )
    db.commit()
    logger.info(
        "User %s banned user %s from community %s",
        actor.id,
        target_user_id,
        community.id,
    )
    return get_membership(db, community.id, target_user_id)

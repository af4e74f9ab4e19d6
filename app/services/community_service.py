from datetime import UTC, datetime

from fastapi import HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.models.communities import Community, CommunityInvite, CommunityMember
from app.models.users import User
from app.schemas.communities import (
    CommunityCreate,
    CommunityOut,
    CommunityUpdate,
    InviteStatus,
    MemberRole,
    MemberStatus,
)
from app.services.access_policy import (
    CommunityAction,
    ensure_allowed,
    is_approved,
    is_owner,
)
from app.services.auth_service import normalize_email
from app.services.membership_service import get_community_or_404, get_membership

DEFAULT_LIST_LIMIT = 12
MAX_LIST_LIMIT = 50

_CORE_FIELDS = frozenset({"name", "visibility", "max_members"})


def _require_name(name: str | None) -> str:
    name = (name or "").strip()
    if not name:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Community name is required",
        )
    return name


def _member_counts(db: Session, community_ids: list[int]) -> dict[int, int]:
    if not community_ids:
        return {}
    rows = db.execute(
        select(CommunityMember.community_id, func.count(CommunityMember.id))
        .where(
            CommunityMember.community_id.in_(community_ids),
            CommunityMember.status == MemberStatus.approved,
        )
        .group_by(CommunityMember.community_id)
    ).all()
    return {community_id: count for community_id, count in rows}


def _viewer_memberships(
    db: Session, community_ids: list[int], viewer: User | None
) -> dict[int, CommunityMember]:
    if viewer is None or not community_ids:
        return {}
    rows = db.execute(
        select(CommunityMember)
        .where(
            CommunityMember.community_id.in_(community_ids),
            CommunityMember.user_id == viewer.id,
        )
        .execution_options(populate_existing=True)
    ).scalars()
    return {row.community_id: row for row in rows}


def _viewer_invites(
    db: Session, community_ids: list[int], viewer: User | None
) -> dict[int, int]:
    if viewer is None or not community_ids:
        return {}
    rows = db.execute(
        select(CommunityInvite.community_id, CommunityInvite.id).where(
            CommunityInvite.community_id.in_(community_ids),
            CommunityInvite.email == normalize_email(viewer.email),
            CommunityInvite.status == InviteStatus.pending,
        )
    ).all()
    return {community_id: invite_id for community_id, invite_id in rows}


def _render(
    community: Community,
    *,
    member_count: int,
    membership: CommunityMember | None,
    invite_id: int | None,
) -> CommunityOut:
    return CommunityOut(
        id=community.id,
        name=community.name,
        description=community.description,
        sport=community.sport,
        region=community.region,
        image_url=community.image_url,
        max_members=community.max_members,
        visibility=community.visibility,
        created_at=community.created_at,
        creator_id=community.creator_id,
        creator_name=community.creator.name,
        member_count=member_count,
        is_member=is_approved(membership),
        is_owner=is_owner(membership),
        role=membership.role if membership else None,
        membership_status=membership.status.value if membership else "none",
        invite_id=invite_id,
    )


def _render_many(
    db: Session, communities: list[Community], viewer: User | None
) -> list[CommunityOut]:
    ids = [community.id for community in communities]
    counts = _member_counts(db, ids)
    memberships = _viewer_memberships(db, ids, viewer)
    invites = _viewer_invites(db, ids, viewer)
    return [
        _render(
            community,
            member_count=counts.get(community.id, 0),
            membership=memberships.get(community.id),
            invite_id=invites.get(community.id),
        )
        for community in communities
    ]


def list_communities(
    db: Session, viewer: User | None, limit: int = DEFAULT_LIST_LIMIT
) -> list[CommunityOut]:
    limit = min(max(limit, 1), MAX_LIST_LIMIT)
    communities = db.execute(
        select(Community)
        .order_by(Community.created_at.desc(), Community.id.desc())
        .limit(limit)
    ).scalars()
    return _render_many(db, list(communities), viewer)


def get_community_detail(
    db: Session, community_id: int, viewer: User | None
) -> CommunityOut:
    community = get_community_or_404(db, community_id)
    ensure_allowed(CommunityAction.view, viewer, None)
    return _render_many(db, [community], viewer)[0]


def create_community(db: Session, creator: User, payload: CommunityCreate) -> CommunityOut:
    community = Community(
        creator_id=creator.id,
        name=_require_name(payload.name),
        visibility=payload.visibility,
        max_members=payload.max_members,
        description=payload.description,
        sport=payload.sport,
        region=payload.region,
        image_url=payload.image_url,
    )
    db.add(community)
    db.flush()

    # The owner row is committed together with the community.
    db.add(
        CommunityMember(
            community_id=community.id,
            user_id=creator.id,
            role=MemberRole.owner,
            status=MemberStatus.approved,
            approved_by=creator.id,
            approved_at=datetime.now(UTC),
        )
    )
    db.commit()
    db.refresh(community)
    return get_community_detail(db, community.id, creator)


def update_community(
    db: Session, community_id: int, actor: User, payload: CommunityUpdate
) -> CommunityOut:
    community = get_community_or_404(db, community_id)
    changes = payload.model_dump(exclude_unset=True)

    membership = get_membership(db, community.id, actor.id)
    if _CORE_FIELDS.intersection(changes):
        ensure_allowed(CommunityAction.edit_core, actor, membership)
    else:
        ensure_allowed(CommunityAction.edit_details, actor, membership)

    if "name" in changes:
        changes["name"] = _require_name(changes["name"])
    if "visibility" in changes and changes["visibility"] is None:
        del changes["visibility"]

    for field, value in changes.items():
        setattr(community, field, value)
    db.add(community)
    db.commit()
    db.refresh(community)
    return get_community_detail(db, community.id, actor)

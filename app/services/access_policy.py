"""
Community authorization decisions.

Every function here is pure: it only looks at the principal and the
membership row handed in, so callers must load the membership fresh for
each request.
"""

from enum import StrEnum

from fastapi import HTTPException, status

from app.models.communities import CommunityMember
from app.schemas.communities import MemberRole, MemberStatus


class CommunityAction(StrEnum):
    view = "view"
    chat = "chat"
    view_members = "view_members"
    edit_core = "edit_core"
    edit_details = "edit_details"
    manage_invites = "manage_invites"
    manage_requests = "manage_requests"
    assign_roles = "assign_roles"
    remove_members = "remove_members"
    join = "join"
    leave = "leave"


_ANY_PRINCIPAL = frozenset({CommunityAction.join, CommunityAction.leave})
_APPROVED_ONLY = frozenset({CommunityAction.chat, CommunityAction.view_members})
_MANAGERS = frozenset({CommunityAction.edit_details, CommunityAction.manage_requests})
_OWNER_ONLY = frozenset(
    {
        CommunityAction.edit_core,
        CommunityAction.manage_invites,
        CommunityAction.assign_roles,
        CommunityAction.remove_members,
    }
)

_DENIED_DETAIL = {
    CommunityAction.chat: "Join the community to use its chat",
    CommunityAction.view_members: "Join the community to view its members",
    CommunityAction.edit_core: "Only the owner can edit this community",
    CommunityAction.edit_details: "Owner or admin access required",
    CommunityAction.manage_invites: "Only the owner can manage invites",
    CommunityAction.manage_requests: "Owner or admin access required",
    CommunityAction.assign_roles: "Only the owner can change member roles",
    CommunityAction.remove_members: "Only the owner can remove or ban members",
}


def is_owner(membership: CommunityMember | None) -> bool:
    return membership is not None and membership.role == MemberRole.owner


def is_approved(membership: CommunityMember | None) -> bool:
    if membership is None:
        return False
    # The owner row is approved from creation and never transitions.
    return is_owner(membership) or membership.status == MemberStatus.approved


def is_manager(membership: CommunityMember | None) -> bool:
    if is_owner(membership):
        return True
    return (
        membership is not None
        and membership.role == MemberRole.admin
        and membership.status == MemberStatus.approved
    )


def is_allowed(
    action: CommunityAction,
    principal: object | None,
    membership: CommunityMember | None,
) -> bool:
    if action == CommunityAction.view:
        return True
    if principal is None:
        return False
    if action in _ANY_PRINCIPAL:
        return True
    if action in _APPROVED_ONLY:
        return is_approved(membership)
    if action in _MANAGERS:
        return is_manager(membership)
    if action in _OWNER_ONLY:
        return is_owner(membership)
    return False


def ensure_allowed(
    action: CommunityAction,
    principal: object | None,
    membership: CommunityMember | None,
) -> None:
    if is_allowed(action, principal, membership):
        return
    if principal is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail=_DENIED_DETAIL.get(action, "Insufficient permissions"),
    )

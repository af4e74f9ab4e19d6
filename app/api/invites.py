from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import get_current_user
from app.core.database import get_db
from app.models.users import User
from app.schemas.communities import InviteOut, JoinOut
from app.services import membership_service

router = APIRouter(prefix="/invites", tags=["communities"])


@router.post("/{invite_id}/accept", response_model=JoinOut)
def accept_invite(
    invite_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return membership_service.accept_invite(db, invite_id, user)


@router.post("/{invite_id}/decline", response_model=InviteOut)
def decline_invite(
    invite_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return membership_service.decline_invite(db, invite_id, user)

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_current_user
from app.core.database import get_db
from app.models.users import User
from app.schemas.messages import DirectMessageIn, DirectMessageOut
from app.services import message_service

router = APIRouter(prefix="/messages", tags=["messages"])


@router.get("/inbox", response_model=list[DirectMessageOut])
def inbox(
    limit: int = Query(default=message_service.DEFAULT_INBOX_LIMIT),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return message_service.list_inbox(db, user, limit)


@router.post("", response_model=DirectMessageOut, status_code=status.HTTP_201_CREATED)
def send_message(
    payload: DirectMessageIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return message_service.send_direct_message(
        db, user, payload.recipient_id, payload.message
    )

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.core.config import Settings, get_settings
from app.core.database import get_db
from app.schemas.password_reset import (
    PasswordForgotIn,
    PasswordForgotOut,
    PasswordResetIn,
)
from app.services import password_reset_service
from app.services.email_service import deliver_password_reset_email

router = APIRouter(prefix="/auth", tags=["auth"])

FORGOT_MESSAGE = "If the email address is registered, instructions will be sent."


def _reset_link(settings: Settings, raw_token: str) -> str:
    base_url = (settings.frontend_url or settings.client_origin).rstrip("/")
    return f"{base_url}/reset?token={raw_token}"


@router.post("/forgot", response_model=PasswordForgotOut)
def forgot_password(
    payload: PasswordForgotIn,
    bg: BackgroundTasks,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    if settings.is_production and not settings.mailer_configured:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Password reset email is not configured",
        )

    issued = password_reset_service.request_password_reset(db, payload.email)
    if issued is None:
        return PasswordForgotOut(message=FORGOT_MESSAGE)

    user, raw_token = issued
    reset_link = _reset_link(settings, raw_token)
    if settings.mailer_configured:
        bg.add_task(deliver_password_reset_email, user.email, reset_link)

    if settings.is_production:
        return PasswordForgotOut(message=FORGOT_MESSAGE)
    # Outside production the link is echoed back so local setups work without SMTP.
    return PasswordForgotOut(
        message=FORGOT_MESSAGE,
        reset_link=reset_link,
        email_sent=settings.mailer_configured,
    )


@router.post("/reset")
def reset_password(payload: PasswordResetIn, db: Session = Depends(get_db)):
    new_password = payload.new_password.get_secret_value()
    if new_password != payload.confirm_password.get_secret_value():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Passwords do not match",
        )
    password_reset_service.complete_password_reset(
        db, payload.token.get_secret_value(), new_password
    )
    return {"message": "Password updated"}

import logging
import smtplib
import ssl
from email.message import EmailMessage

from app.core.config import get_settings

logger = logging.getLogger(__name__)


def _build_reset_message(to_email: str, link: str) -> EmailMessage:
    settings = get_settings()
    app_name = settings.app_name

    msg = EmailMessage()
    msg["Subject"] = f"{app_name} password reset"
    msg["From"] = settings.mail_from
    msg["To"] = to_email
    msg.set_content(
        f"You requested a password reset for {app_name}.\n\n"
        f"Reset your password using this link: {link}\n\n"
        "This link will expire in 1 hour.\n"
    )
    msg.add_alternative(
        f"""<p>You requested a password reset for <strong>{app_name}</strong>.</p>
            <p><a href=\"{link}\">Reset your password</a></p>
            <p>This link will expire in 1 hour.</p>
            <p>If you did not request this, you can safely ignore this email.</p>""",
        subtype="html",
    )
    return msg


def send_password_reset_email(to_email: str, link: str) -> None:
    settings = get_settings()
    msg = _build_reset_message(to_email, link)
    ctx = ssl.create_default_context()

    if settings.smtp_uses_implicit_tls:
        with smtplib.SMTP_SSL(
            settings.smtp_host, settings.smtp_port, timeout=20, context=ctx
        ) as smtp:
            smtp.login(settings.smtp_username, settings.smtp_password)
            smtp.send_message(msg)
        return

    with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=20) as smtp:
        smtp.ehlo()
        smtp.starttls(context=ctx)
        smtp.ehlo()
        smtp.login(settings.smtp_username, settings.smtp_password)
        smtp.send_message(msg)


def deliver_password_reset_email(to_email: str, link: str) -> bool:
    """Best-effort delivery; the reset token stays valid whether or not this works."""
    try:
        send_password_reset_email(to_email, link)
    except (OSError, smtplib.SMTPException):
        logger.exception("Failed to send password reset email")
        return False
    return True

from pydantic import BaseModel, EmailStr, SecretStr


class PasswordForgotIn(BaseModel):
    email: EmailStr


class PasswordForgotOut(BaseModel):
    message: str
    reset_link: str | None = None
    email_sent: bool | None = None


class PasswordResetIn(BaseModel):
    token: SecretStr
    new_password: SecretStr
    confirm_password: SecretStr

from datetime import timedelta
from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    app_env: str = Field(default="development", alias="APP_ENV")
    app_name: str = Field(default="PlayNet", alias="APP_NAME")

    database_url: str = Field(default="sqlite:///./playnet.db", alias="DATABASE_URL")
    redis_url: str = Field(default="redis://localhost:6379/0", alias="REDIS_URL")

    auth_token_secret: str | None = Field(default=None, alias="AUTH_TOKEN_SECRET")
    session_secret: str | None = Field(default=None, alias="SESSION_SECRET")
    auth_token_ttl_days: int = Field(default=30, alias="AUTH_TOKEN_TTL_DAYS", ge=1)

    password_pepper: str = Field(default="", alias="PASSWORD_PEPPER", repr=False)
    password_hash_time_cost: int = Field(
        default=3, alias="PASSWORD_HASH_TIME_COST", ge=1
    )

    google_client_id: str | None = Field(default=None, alias="GOOGLE_CLIENT_ID")
    google_client_secret: str | None = Field(
        default=None, alias="GOOGLE_CLIENT_SECRET", repr=False
    )
    google_redirect_uri: str | None = Field(default=None, alias="GOOGLE_REDIRECT_URI")

    client_origin: str = Field(default="http://localhost:5173", alias="CLIENT_ORIGIN")
    frontend_url: str | None = Field(default=None, alias="FRONTEND_URL")
    cors_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:5173", "http://127.0.0.1:5173"],
        alias="CORS_ORIGINS",
    )

    smtp_host: str | None = Field(default=None, alias="SMTP_HOST")
    smtp_port: int = Field(default=587, alias="SMTP_PORT")
    smtp_username: str | None = Field(default=None, alias="SMTP_USERNAME")
    smtp_password: str | None = Field(default=None, alias="SMTP_PASSWORD", repr=False)
    smtp_secure: bool | None = Field(default=None, alias="SMTP_SECURE")
    mail_from: str | None = Field(default=None, alias="MAIL_FROM")

    @model_validator(mode="after")
    def _require_signing_secret(self) -> "Settings":
        if not self.signing_secret:
            raise ValueError("AUTH_TOKEN_SECRET or SESSION_SECRET must be configured")
        return self

    @property
    def signing_secret(self) -> str | None:
        return self.auth_token_secret or self.session_secret

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def auth_token_ttl(self) -> timedelta:
        return timedelta(days=self.auth_token_ttl_days)

    @property
    def google_enabled(self) -> bool:
        return bool(
            self.google_client_id
            and self.google_client_secret
            and self.google_redirect_uri
        )

    @property
    def mailer_configured(self) -> bool:
        return bool(
            self.smtp_host
            and self.smtp_username
            and self.smtp_password
            and self.mail_from
        )

    @property
    def smtp_uses_implicit_tls(self) -> bool:
        if self.smtp_secure is None:
            return self.smtp_port == 465
        return self.smtp_secure


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore

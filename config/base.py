from __future__ import annotations

from pydantic import model_validator
from pydantic_settings import BaseSettings

from config.database import get_database_url


class AppSettings(BaseSettings):
    """Settings shared by every environment.

    Subclasses pick the env file and provide DATABASE_URL.
    """

    APP_ENV: str = "local"
    SECRET_KEY: str | None = None
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Outbound mail. When SMTP_HOST is unset, mail is written to the log instead.
    SMTP_HOST: str | None = None
    SMTP_PORT: int = 587
    SMTP_USERNAME: str | None = None
    SMTP_PASSWORD: str | None = None
    SMTP_TLS: bool = True
    MAIL_FROM: str = "asset-audit@localhost"

    # Employee portal
    FRONTEND_URL: str = "http://localhost:9002"
    ACCESS_TOKEN_TTL_MINUTES: int = 15
    # Grants portal access on plans that have no audit assignments yet.
    ALLOW_ACCESS_WITHOUT_ASSIGNMENTS: bool = False

    # Audit workflow
    AUDIT_REMINDER_DAYS: list[int] = [7, 3, 1]
    AUTO_RAISE_CORRECTIVE_ACTIONS: bool = True
    CORRECTIVE_ACTION_DUE_DAYS: int = 7


class ComponentDatabaseSettings(AppSettings):
    """
    Deployed environments. DATABASE_URL wins when set; otherwise it is
    assembled from the DB_* parts.
    """

    DATABASE_URL: str | None = None
    DB_DRIVER: str = "postgresql+asyncpg"
    DB_HOST: str | None = None
    DB_PORT: int = 5432
    DB_USER: str | None = None
    DB_PASSWORD: str | None = None
    DB_NAME: str | None = None

    @model_validator(mode="after")
    def _assemble_database_url(self):
        if not self.DATABASE_URL:
            self.DATABASE_URL = get_database_url(
                driver=self.DB_DRIVER,
                host=self.DB_HOST,
                port=self.DB_PORT,
                user=self.DB_USER,
                password=self.DB_PASSWORD,
                name=self.DB_NAME,
            )
        return self

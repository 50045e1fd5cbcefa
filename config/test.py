from __future__ import annotations

from pydantic_settings import SettingsConfigDict

from config.base import AppSettings


class TestSettings(AppSettings):
    DATABASE_URL: str | None = "sqlite+aiosqlite://"
    APP_ENV: str = "test"
    SECRET_KEY: str | None = "test-secret-key"
    DEBUG: bool = False
    LOG_LEVEL: str = "WARNING"
    FRONTEND_URL: str = "http://portal.test"

    model_config = SettingsConfigDict(env_file=None)

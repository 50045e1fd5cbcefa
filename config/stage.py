from __future__ import annotations

from pathlib import Path
from pydantic_settings import SettingsConfigDict

from config.base import ComponentDatabaseSettings

ROOT = Path(__file__).resolve().parents[1]
ENV_FILE = ROOT / "env" / ".env.staging"


class StageSettings(ComponentDatabaseSettings):
    APP_ENV: str = "stage"
    DEBUG: bool = False
    LOG_LEVEL: str = "DEBUG"
    FRONTEND_URL: str = "https://audit-stage.example.com"

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE) if ENV_FILE.exists() else None,
        env_file_encoding="utf-8",
    )

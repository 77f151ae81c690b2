from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_SURVEYS_DIR = Path(__file__).resolve().parent / "surveys" / "data"


class Settings(BaseSettings):
    """Application runtime settings loaded from environment/.env."""

    database_url: str = Field(default="sqlite:///./data.db", alias="DATABASE_URL")
    surveys_dir: Path = Field(default=DEFAULT_SURVEYS_DIR, alias="SURVEYS_DIR")
    api_host: str = Field(default="127.0.0.1", alias="API_HOST")
    api_port: int = Field(default=8080, alias="API_PORT")
    # per HTTP attempt; computed variables carry their own timeout
    webhook_timeout_seconds: float = Field(default=10.0, alias="WEBHOOK_TIMEOUT_SECONDS")
    computed_default_timeout_ms: int = Field(default=5000, alias="COMPUTED_DEFAULT_TIMEOUT_MS")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="",
        extra="ignore",
    )

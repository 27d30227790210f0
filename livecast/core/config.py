from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Secrets(BaseSettings):
    """Secrets configuration, loaded from the environment or a secrets management service."""

    model_config = SettingsConfigDict(
        env_prefix="LIVECAST_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    jwt_secret: str = Field(default="change-me", description="Signing secret for JWT validation.")

    @classmethod
    def from_settings(cls, settings: "Settings") -> "Secrets":
        return cls()


class Settings(BaseSettings):
    """Centralised runtime configuration for the Livecast API."""

    model_config = SettingsConfigDict(
        env_prefix="LIVECAST_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "Livecast API"
    environment: str = Field(default="development", description="Deployment environment label.")
    version: str = Field(default="0.1.0", description="API version for metadata and OpenAPI.")
    log_level: str = Field(default="info")

    database_url: str = Field(
        default="sqlite+aiosqlite:///./livecast.db",
        description="SQLAlchemy compatible DSN.",
    )

    webserver_url: str = Field(
        default="http://localhost:9000",
        description="Public base URL used to build canonical video URLs.",
    )
    rtmp_url: str = Field(
        default="rtmp://localhost:1935/live",
        description="Ingest endpoint handed to broadcasters alongside their stream key.",
    )
    live_enabled: bool = Field(default=True, description="Allow creation of live videos on this instance.")

    storage_backend: Literal["local"] = Field(default="local", description="Active storage implementation.")
    storage_root: Path = Field(default_factory=lambda: Path("storage"), description="Root for stored images.")
    tmp_dir: Path = Field(default_factory=lambda: Path("storage/tmp"), description="Spool directory for uploads.")

    max_image_upload_bytes: int = Field(default=4 * 1024 * 1024, description="Limit for thumbnail/preview uploads.")
    thumbnail_width: int = Field(default=223, ge=1)
    thumbnail_height: int = Field(default=122, ge=1)
    preview_width: int = Field(default=850, ge=1)
    preview_height: int = Field(default=480, ge=1)

    transaction_retry_attempts: int = Field(
        default=5,
        ge=1,
        description="Total attempts for a write transaction hitting transient conflicts.",
    )
    transaction_retry_backoff_s: float = Field(
        default=0.05,
        ge=0,
        description="Multiplier for the exponential backoff between transaction attempts.",
    )

    jwt_algorithm: str = Field(default="HS256", description="Algorithm used for JWT tokens.")
    jwt_issuer: Optional[str] = None
    jwt_audience: Optional[str] = None

    secrets: Secrets = Field(default_factory=Secrets, description="Holds sensitive configuration.")

    @property
    def environment_lower(self) -> str:
        return self.environment.lower()


@lru_cache()
def get_settings() -> Settings:
    load_dotenv(".env", override=False)

    _ENV_ALIAS_MAP = {
        "LIVECAST_ENV": "LIVECAST_ENVIRONMENT",
        "LIVECAST_DB_URL": "LIVECAST_DATABASE_URL",
    }

    for source, target in _ENV_ALIAS_MAP.items():
        value = os.getenv(source)
        if value:
            os.environ[target] = value

    settings = Settings()

    secrets = Secrets.from_settings(settings)

    if settings.environment == "production" and secrets.jwt_secret == "change-me":
        raise ValueError("Production environment must have a non-default JWT secret.")

    settings.secrets = secrets
    return settings


__all__ = ["Settings", "get_settings"]

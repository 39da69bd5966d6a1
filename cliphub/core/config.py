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
        env_prefix="CLIPHUB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    jwt_secret: str = Field(default="change-me", description="Signing secret for session JWT validation.")

    @classmethod
    def from_settings(cls, settings: "Settings") -> "Secrets":
        return cls()


class Settings(BaseSettings):
    """Centralised runtime configuration for the ClipHub API."""

    model_config = SettingsConfigDict(
        env_prefix="CLIPHUB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "ClipHub API"
    environment: str = Field(default="development", description="Deployment environment label.")
    version: str = Field(default="0.1.0", description="API version for metadata and OpenAPI.")
    log_level: str = Field(default="info")

    database_url: str = Field(
        default="sqlite+aiosqlite:///./cliphub.db",
        description="SQLAlchemy compatible DSN.",
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis URL for the worker dispatch queue.",
    )

    storage_backend: Literal["local"] = Field(default="local", description="Active object store implementation.")
    storage_root: Path = Field(default_factory=lambda: Path("media"), description="Root for uploaded source videos.")
    public_base_url: Optional[str] = Field(
        default=None,
        description="Base URL under which storage_root is served; file:// URIs are returned when unset.",
    )
    upload_chunk_size: int = Field(default=1024 * 1024, ge=1, description="Bytes copied per upload step.")

    max_upload_size_bytes: int = Field(default=500 * 1024 * 1024, description="Hard ceiling for uploaded files.")
    allowed_video_extensions: tuple[str, ...] = Field(default=("mp4", "mov", "avi", "mkv"))
    supported_platform_hosts: tuple[str, ...] = Field(
        default=(
            "youtube.com",
            "youtu.be",
            "twitch.tv",
            "kick.com",
            "vimeo.com",
            "dailymotion.com",
            "facebook.com",
            "instagram.com",
            "tiktok.com",
        ),
        description="Hosts accepted for remote imports (case-insensitive substring match).",
    )

    jwt_algorithm: str = Field(default="HS256", description="Algorithm used for JWT tokens.")
    jwt_issuer: Optional[str] = None
    jwt_audience: Optional[str] = None

    worker_backend: Literal["none", "rq"] = Field(
        default="none",
        description="How new clips are handed to the external highlight worker.",
    )
    worker_queue: str = Field(default="cliphub-highlights")
    worker_task: str = Field(
        default="highlight_worker.tasks.process_clip",
        description="Dotted path of the task the external worker registers.",
    )

    download_timeout_s: float = Field(default=60.0, gt=0, description="Timeout for remote artifact downloads.")
    realtime_queue_size: int = Field(default=100, ge=1, description="Pending change events kept per subscriber.")

    secrets: Secrets = Field(default_factory=Secrets, description="Holds sensitive configuration.")

    @property
    def environment_lower(self) -> str:
        return self.environment.lower()


@lru_cache()
def get_settings() -> Settings:
    load_dotenv(".env", override=False)

    _ENV_ALIAS_MAP = {
        "CLIPHUB_ENV": "CLIPHUB_ENVIRONMENT",
        "CLIPHUB_DB_URL": "CLIPHUB_DATABASE_URL",
        "CLIPHUB_WORKER": "CLIPHUB_WORKER_BACKEND",
    }

    for source, target in _ENV_ALIAS_MAP.items():
        value = os.getenv(source)
        if value:
            os.environ[target] = value

    settings = Settings()

    # Secrets could come from a vault; the environment is enough for now.
    secrets = Secrets.from_settings(settings)

    if settings.environment == "production" and secrets.jwt_secret == "change-me":
        raise ValueError("Production environment must have a non-default JWT secret.")

    settings.secrets = secrets
    return settings


__all__ = ["Settings", "Secrets", "get_settings"]

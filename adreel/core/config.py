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
        env_prefix="ADREEL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    jwt_secret: str = Field(default="change-me", description="Signing secret for bearer token validation.")
    supabase_service_key: Optional[str] = Field(default=None, description="Service role key for Supabase storage.")
    youtube_api_key: Optional[str] = Field(default=None, description="YouTube Data API key used by metadata refresh.")

    @classmethod
    def from_settings(cls, settings: "Settings") -> "Secrets":
        return cls()


class Settings(BaseSettings):
    """Centralised runtime configuration for the adreel API, worker and CLI."""

    model_config = SettingsConfigDict(
        env_prefix="ADREEL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "adreel API"
    environment: str = Field(default="development", description="Deployment environment label.")
    version: str = Field(default="0.1.0", description="API version for metadata and OpenAPI.")
    log_level: str = Field(default="info")

    database_url: str = Field(
        default="sqlite+aiosqlite:///./adreel.db",
        description="SQLAlchemy compatible DSN.",
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis URL for background jobs.",
    )

    storage_backend: Literal["local", "supabase"] = Field(default="local", description="Active storage implementation.")
    media_root: Path = Field(default_factory=lambda: Path("media"), description="Root directory for the local storage backend.")
    public_media_base_url: str = Field(
        default="http://localhost:8000/media",
        description="Base URL under which local storage objects are served.",
    )
    supabase_url: Optional[str] = None

    raw_bucket: str = Field(default="ads-raw", description="Bucket holding raw direct uploads.")
    published_bucket: str = Field(default="ads", description="Bucket holding processed videos.")
    thumbs_bucket: str = Field(default="ads-thumbs", description="Bucket holding thumbnails.")
    signed_url_ttl_s: int = Field(default=60, description="Lifetime of signed download URLs for raw objects.")

    max_upload_size_bytes: int = Field(default=200 * 1024 * 1024, description="Limit for direct uploads.")
    max_duration_s: int = Field(default=10, description="Short-form policy ceiling in seconds.")
    transcode_max_height: int = Field(default=720, description="Output height cap for processed videos.")
    thumbnail_offset_s: float = Field(default=1.0, description="Timestamp of the representative still.")
    thumbnail_width: int = Field(default=640, description="Width of generated thumbnails.")

    worker_batch_size: int = Field(default=5, ge=1, description="Intake records fetched per poll.")
    worker_poll_interval_s: float = Field(default=10.0, ge=0, description="Sleep between polls.")
    worker_claim_enabled: bool = Field(default=True, description="Claim intake rows atomically before processing.")
    worker_claim_ttl_s: int = Field(
        default=900, ge=1, description="Age after which a claim is treated as abandoned and may be taken over."
    )
    retry_errored_uploads: bool = Field(default=False, description="Re-admit errored intake rows on every poll.")

    ingest_sources: tuple[str, ...] = Field(
        default=("https://www.youtube.com/feeds/videos.xml?channel_id=UC4R8DWoMoI7CAwX8_LjQHig",),
        description="Feed URLs polled by candidate discovery.",
    )
    ingest_max_items: int = Field(default=6, ge=1, description="Candidates ingested per discovery run.")

    http_timeout_s: float = Field(default=30.0, description="Timeout for outbound HTTP calls.")

    jwt_algorithm: str = Field(default="HS256", description="Algorithm used for JWT tokens.")
    jwt_issuer: Optional[str] = None
    jwt_audience: Optional[str] = None

    job_queue_backend: Literal["immediate", "inline", "rq"] = Field(
        default="immediate",
        description="Backend for ingest/sweep tasks (inline executes inline; rq schedules via Redis).",
    )

    secrets: Secrets = Field(default_factory=Secrets, description="Holds sensitive configuration.")

    @property
    def environment_lower(self) -> str:
        return self.environment.lower()

    @property
    def normalized_job_backend(self) -> str:
        if self.job_queue_backend == "inline":
            return "immediate"
        return self.job_queue_backend


@lru_cache()
def get_settings() -> Settings:
    load_dotenv(".env", override=False)

    _ENV_ALIAS_MAP = {
        "ADREEL_ENV": "ADREEL_ENVIRONMENT",
        "ADREEL_DB_URL": "ADREEL_DATABASE_URL",
        "ADREEL_JOB_BACKEND": "ADREEL_JOB_QUEUE_BACKEND",
    }

    for source, target in _ENV_ALIAS_MAP.items():
        value = os.getenv(source)
        if value:
            os.environ[target] = value

    settings = Settings()

    # In a real application, you would fetch secrets from a secure vault
    # instead of just loading them from the environment.
    secrets = Secrets.from_settings(settings)

    if settings.environment == "production" and secrets.jwt_secret == "change-me":
        raise ValueError("Production environment must have a non-default JWT secret.")

    settings.secrets = secrets
    return settings


__all__ = ["Settings", "Secrets", "get_settings"]

"""
Central configuration for the audio LTI service.

All settings are read from environment variables (e.g. ``LTI_SECRET=...``,
``APP_ENV=production``) or a local ``.env`` file.  Pydantic validates and
casts values on startup.  ``NODE_ENV`` is accepted as an alias for
``APP_ENV`` so existing deployment files keep working.

Usage::

    from audio_api.settings import get_settings
    settings = get_settings()
    print(settings.env, settings.resolved_database_path)
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import AliasChoices, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

FALLBACK_SESSION_SECRET = "fallback-secret-change-in-production"
PRODUCTION_DATABASE_PATH = "/home/bitnami/app-data/submissions.db"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # ── Environment ──────────────────────────────────────────────────
    # Free-form; only "production" switches on the production defaults.
    env: str = Field(
        "development",
        validation_alias=AliasChoices("APP_ENV", "NODE_ENV"),
    )

    # ── Server ───────────────────────────────────────────────────────
    host: str = "0.0.0.0"
    port: int = 3000
    # External base URL (scheme://host[:port]) the LMS signs launches against.
    # Empty = derive from the incoming request.
    public_url: str = ""

    # ── LTI ──────────────────────────────────────────────────────────
    lti_secret: str = ""

    # ── Sessions ─────────────────────────────────────────────────────
    session_secret: str = FALLBACK_SESSION_SECRET
    session_ttl_seconds: int = 86400
    # Empty string = in-process session store (single worker only).
    redis_url: str = ""

    # ── Metadata store ───────────────────────────────────────────────
    # Empty string = production path in production, in-memory otherwise.
    database_path: str = ""

    # ── Storage ──────────────────────────────────────────────────────
    upload_dir: str = "uploads"
    max_upload_bytes: int = 50 * 1024 * 1024
    aws_access_key_id: str = ""
    aws_secret_access_key: str = ""
    aws_region: str = "us-east-1"
    s3_bucket_name: str = ""

    # ── CSP ──────────────────────────────────────────────────────────
    csp_frame_ancestors: str = "*"

    # ── Logging ──────────────────────────────────────────────────────
    log_level: str = "INFO"

    # ── Derived values ───────────────────────────────────────────────

    @property
    def is_production(self) -> bool:
        return self.env == "production"

    @property
    def use_object_storage(self) -> bool:
        """Object storage is selected iff both AWS credentials are present."""
        return bool(self.aws_access_key_id and self.aws_secret_access_key)

    @property
    def resolved_database_path(self) -> str:
        if self.database_path:
            return self.database_path
        return PRODUCTION_DATABASE_PATH if self.is_production else ":memory:"

    @property
    def cookie_secure(self) -> bool:
        return self.is_production

    # ── Startup validation ───────────────────────────────────────────

    @model_validator(mode="after")
    def _validate_config(self) -> Settings:
        """
        Fail fast if required settings are missing or misconfigured.

        All errors are collected before raising so a single startup failure
        reveals every missing variable at once rather than one at a time.
        """
        errors: list[str] = []

        if bool(self.aws_access_key_id) != bool(self.aws_secret_access_key):
            errors.append(
                "AWS_ACCESS_KEY_ID and AWS_SECRET_ACCESS_KEY must be set together"
            )

        if self.use_object_storage and not self.s3_bucket_name:
            errors.append("S3_BUCKET_NAME is required when AWS credentials are set")

        if self.max_upload_bytes <= 0:
            errors.append("MAX_UPLOAD_BYTES must be positive")

        if self.session_ttl_seconds <= 0:
            errors.append("SESSION_TTL_SECONDS must be positive")

        # ── Production only ───────────────────────────────────────────
        if self.is_production:
            if not self.lti_secret:
                errors.append("LTI_SECRET is required in production")

            if self.session_secret == FALLBACK_SESSION_SECRET:
                errors.append(
                    "SESSION_SECRET must be changed from the fallback value in production"
                )

        if errors:
            raise ValueError(
                f"[env={self.env!r}] Configuration errors, fix before deploying:\n  - "
                + "\n  - ".join(errors)
            )

        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the cached application settings singleton."""
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (for testing)."""
    get_settings.cache_clear()

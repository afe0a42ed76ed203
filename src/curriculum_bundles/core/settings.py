"""Environment-driven settings for bundle generation workers.

``BundleSettings`` reads ``BUNDLES_*`` environment variables (and a ``.env``
file) and is validated once at startup.

Examples:
    >>> settings = BundleSettings(max_deferrals=50)
    >>> settings.deferral_policy().max_deferrals
    50
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class BundleSettings(BaseSettings):
    """Settings shared by every job and worker.

    Fields
    ──────
    log_level / log_json       : structlog configuration
    redis_url                  : queue, lock and result backend
    database_path              : sqlite file for results and locks
    s3_bucket / s3_region /
    s3_endpoint_url            : object storage for rendered artifacts
    upload_blocked             : write artifacts to ``local_storage_root`` instead of S3
    bundle_root                : top-level folder for assembled bundles
    drive_root_folder_id       : Google Drive folder that holds ``bundles``
    lock_timeout_seconds       : wait limit for advisory locks
    max_deferrals              : self-requeues allowed per logical request (None = unbounded)
    deferral_deadline_seconds  : wall-clock limit per logical request (None = unbounded)
    child_retry_limit          : attempts the queue grants a failing job
    """

    model_config = SettingsConfigDict(
        env_prefix="BUNDLES_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    log_json: bool | None = None

    # ── Backends ─────────────────────────────────────────────────
    redis_url: str = "redis://localhost:6379/0"
    database_path: Path = Field(
        default_factory=lambda: Path.home() / ".curriculum-bundles" / "bundles.db",
        description="sqlite file backing the result store and row locks",
    )

    # ── Storage ──────────────────────────────────────────────────
    s3_bucket: str = "curriculum-bundles"
    s3_region: str = "us-east-1"
    s3_endpoint_url: str | None = None
    upload_blocked: bool = False
    local_storage_root: Path = Field(default_factory=lambda: Path.cwd() / "s3")
    bundle_root: str = "bundles"
    drive_root_folder_id: str | None = None

    # ── Coordination ─────────────────────────────────────────────
    lock_timeout_seconds: float = 30.0
    max_deferrals: int | None = None
    deferral_deadline_seconds: float | None = 6 * 60 * 60
    child_retry_limit: int = 3

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()

    @field_validator("max_deferrals", "child_retry_limit")
    @classmethod
    def _non_negative(cls, value: int | None) -> int | None:
        if value is not None and value < 0:
            raise ValueError("must be >= 0")
        return value

    def deferral_policy(self):
        """Build the orchestrator's wait-loop policy from these settings."""
        from curriculum_bundles.jobs.bundle import DeferralPolicy

        return DeferralPolicy(
            max_deferrals=self.max_deferrals,
            deadline_seconds=self.deferral_deadline_seconds,
        )


@lru_cache(maxsize=1)
def get_settings() -> BundleSettings:
    """Process-wide settings, loaded once."""
    return BundleSettings()


__all__ = ["BundleSettings", "get_settings"]

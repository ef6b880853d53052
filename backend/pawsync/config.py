# backend/pawsync/config.py
from pathlib import Path
from typing import Dict, List, Optional, Union

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import (
    DEFAULT_BATCH_TIMEOUT_SECONDS,
    DEFAULT_CHROME_FILTERS,
    DEFAULT_COMPLETENESS_TARGET,
    DEFAULT_CONCURRENCY,
    DEFAULT_DISPATCH_BATCH_DELAY_SECONDS,
    DEFAULT_DISPATCH_BATCH_SIZE,
    DEFAULT_FALLBACK_CLIP,
    DEFAULT_INTER_REQUEST_DELAY_SECONDS,
    DEFAULT_JPEG_QUALITY,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_MAX_DIMENSION,
    DEFAULT_MIN_CATS,
    DEFAULT_MIN_COVERAGE,
    DEFAULT_MIN_DOGS,
    DEFAULT_NAVIGATION_TIMEOUT_MS,
    DEFAULT_PENDING_STALL_SECONDS,
    DEFAULT_PHOTO_SELECTORS,
    DEFAULT_RECONCILE_SAMPLE_SIZE,
    DEFAULT_RETRY_AFTER_SECONDS,
    DEFAULT_RETRY_BACKOFF_SECONDS,
    DEFAULT_SETTLE_DELAY_MS,
    DEFAULT_SWEEP_LIMIT,
    DEFAULT_USER_AGENT,
    DEFAULT_WEBP_QUALITY,
)
from .enums import LogLevel, SamplingStrategy, StorageBackend


class Settings(BaseSettings):
    environment: str = "development"

    # Database
    database_url: str = Field(
        default="postgresql://localhost:5432/pawsync",
        description="PostgreSQL connection string",
    )
    db_pool_min_size: int = Field(
        default=2, ge=1, le=50, description="Minimum pooled connections"
    )
    db_pool_max_size: int = Field(
        default=10, ge=1, le=100, description="Maximum pooled connections"
    )
    db_pool_timeout: int = Field(
        default=30,
        ge=5,
        le=300,
        description="Seconds to wait for a pooled connection",
    )

    # API
    api_host: str = Field(default="0.0.0.0", description="API host to bind to")
    api_port: int = Field(
        default=8000, ge=1, le=65535, description="API port to bind to"
    )
    cors_origins: Union[str, List[str]] = Field(
        default=["http://localhost:3000"],
        description="Allowed CORS origins. Can be comma-separated string.",
    )

    @property
    def cors_origins_list(self) -> List[str]:
        """Convert cors_origins to a list of strings"""
        if isinstance(self.cors_origins, str):
            return [origin.strip() for origin in self.cors_origins.split(",")]
        return self.cors_origins

    # ============= OBJECT STORE =============

    storage_backend: StorageBackend = Field(
        default=StorageBackend.S3,
        description="Object store implementation (s3 for R2/S3, local for development)",
    )
    s3_endpoint_url: Optional[str] = Field(
        default=None,
        description="S3-compatible endpoint, e.g. https://<account>.r2.cloudflarestorage.com",
    )
    s3_bucket: str = Field(default="pawsync-images", description="Bucket name")
    s3_access_key_id: Optional[str] = Field(default=None)
    s3_secret_access_key: Optional[str] = Field(default=None)
    s3_region: str = Field(default="auto", description="Region name (R2 uses 'auto')")

    # Local backend root - defaults to relative path, overrideable
    data_directory: str = "./data"

    @property
    def data_path(self) -> Path:
        """Get data directory as Path object"""
        return Path(self.data_directory)

    @property
    def images_directory(self) -> Path:
        """Root of the local object store"""
        return self.data_path / "objects"

    @property
    def logs_directory(self) -> Path:
        """Logs subdirectory path"""
        return self.data_path / "logs"

    def ensure_directories(self) -> None:
        """Create local directories if they don't exist"""
        for directory in (self.data_path, self.images_directory, self.logs_directory):
            directory.mkdir(parents=True, exist_ok=True)

    # ============= CAPTURE =============

    capture_headless: bool = Field(default=True)
    capture_navigation_timeout_ms: int = Field(
        default=DEFAULT_NAVIGATION_TIMEOUT_MS,
        ge=1000,
        le=120000,
        description="Page load timeout; domcontentloaded is treated as loaded",
    )
    capture_settle_delay_ms: int = Field(
        default=DEFAULT_SETTLE_DELAY_MS,
        ge=0,
        le=30000,
        description="Wait after load for client-side rendering to finish",
    )
    capture_viewport_width: int = Field(default=1280, ge=320, le=3840)
    capture_viewport_height: int = Field(default=720, ge=240, le=2160)
    capture_user_agent: str = Field(default=DEFAULT_USER_AGENT)
    capture_fallback_clip: Dict[str, int] = Field(
        default_factory=lambda: dict(DEFAULT_FALLBACK_CLIP),
        description="Page rectangle captured when no photo selector matches",
    )
    capture_photo_selectors: List[str] = Field(
        default_factory=lambda: list(DEFAULT_PHOTO_SELECTORS),
        description="Ordered CSS selectors locating the main pet photo",
    )
    capture_chrome_filters: List[str] = Field(
        default_factory=lambda: list(DEFAULT_CHROME_FILTERS),
        description="Substrings of img src values to reject as UI chrome",
    )

    # ============= CONVERSION =============

    convert_max_dimension: int = Field(default=DEFAULT_MAX_DIMENSION, ge=16, le=8192)
    convert_jpeg_quality: int = Field(default=DEFAULT_JPEG_QUALITY, ge=1, le=95)
    convert_webp_quality: int = Field(default=DEFAULT_WEBP_QUALITY, ge=1, le=100)

    # ============= ORCHESTRATION =============

    pipeline_max_attempts: int = Field(
        default=DEFAULT_MAX_ATTEMPTS,
        ge=1,
        le=10,
        description="Attempts for capture and store operations before a pet fails",
    )
    pipeline_retry_backoff_seconds: float = Field(
        default=DEFAULT_RETRY_BACKOFF_SECONDS,
        ge=0,
        le=60,
        description="Linear backoff base: wait base * attempt between attempts",
    )
    pipeline_concurrency: int = Field(
        default=DEFAULT_CONCURRENCY,
        ge=1,
        le=20,
        description="Pets processed in parallel within one batch",
    )
    pipeline_inter_request_delay_seconds: float = Field(
        default=DEFAULT_INTER_REQUEST_DELAY_SECONDS, ge=0, le=60
    )
    pipeline_batch_timeout_seconds: int = Field(
        default=DEFAULT_BATCH_TIMEOUT_SECONDS, ge=10, le=86400
    )
    pipeline_sweep_limit: int = Field(default=DEFAULT_SWEEP_LIMIT, ge=1, le=1000)

    # Scheduled worker
    worker_sweep_interval_seconds: int = Field(default=21600, ge=60, le=604800)
    worker_reconcile_interval_seconds: int = Field(default=3600, ge=60, le=604800)
    worker_pending_stall_seconds: int = Field(
        default=DEFAULT_PENDING_STALL_SECONDS, ge=60, le=604800
    )

    # ============= READINESS =============

    readiness_min_dogs: int = Field(default=DEFAULT_MIN_DOGS, ge=0)
    readiness_min_cats: int = Field(default=DEFAULT_MIN_CATS, ge=0)
    readiness_min_coverage: float = Field(default=DEFAULT_MIN_COVERAGE, ge=0, le=1)
    readiness_completeness_target: int = Field(
        default=DEFAULT_COMPLETENESS_TARGET, ge=1
    )

    # ============= RECONCILIATION =============

    reconcile_sample_size: int = Field(
        default=DEFAULT_RECONCILE_SAMPLE_SIZE, ge=1, le=10000
    )
    reconcile_sampling_strategy: SamplingStrategy = Field(
        default=SamplingStrategy.RANDOM
    )

    # ============= WORKFLOW DISPATCH =============

    github_token: Optional[str] = Field(default=None)
    github_owner: Optional[str] = Field(default=None)
    github_repo: Optional[str] = Field(default=None)
    github_workflow_file: str = Field(default="pet-screenshot.yml")
    github_ref: str = Field(default="main")
    dispatch_batch_size: int = Field(default=DEFAULT_DISPATCH_BATCH_SIZE, ge=1, le=100)
    dispatch_batch_delay_seconds: float = Field(
        default=DEFAULT_DISPATCH_BATCH_DELAY_SECONDS, ge=0, le=600
    )

    @property
    def dispatch_enabled(self) -> bool:
        """Whether the external workflow runner is configured"""
        return bool(self.github_token and self.github_owner and self.github_repo)

    # ============= IMAGE SERVING =============

    serve_retry_after_seconds: int = Field(
        default=DEFAULT_RETRY_AFTER_SECONDS, ge=1, le=3600
    )

    # Logging
    log_level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    log_file: Optional[str] = Field(
        default=None, description="Log file path (optional)"
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def validate_log_level(cls, v) -> LogLevel:
        """Validate log level is one of the allowed values"""
        if isinstance(v, LogLevel):
            return v
        allowed_levels = LogLevel.__members__.keys()
        v_upper = str(v).upper()
        if v_upper not in allowed_levels:
            raise ValueError(
                f"Invalid log level '{v}'. Must be one of: {', '.join(allowed_levels)}"
            )
        return LogLevel[v_upper]

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment is one of the allowed values"""
        allowed_envs = ["development", "staging", "production"]
        v_lower = v.lower()
        if v_lower not in allowed_envs:
            raise ValueError(
                f"Invalid environment '{v}'. Must be one of: {', '.join(allowed_envs)}"
            )
        return v_lower

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )


# Global settings instance
settings = Settings()

# backend/pawsync/enums.py
"""
Application Enums - Centralized enum definitions.

Kept in one module so constants.py, config.py and the pydantic models can all
import them without circular dependencies.
"""

from enum import Enum


# =============================================================================
# PETS AND IMAGE ASSETS
# =============================================================================


class PetType(str, Enum):
    """Pet species handled by the image pipeline."""

    DOG = "dog"
    CAT = "cat"


class ImageVariant(str, Enum):
    """Stored variants of a pet image. Each maps to exactly one object-store key."""

    SCREENSHOT = "screenshot"
    ORIGINAL = "original"
    OPTIMIZED = "optimized"


class ImageFormat(str, Enum):
    """Formats accepted by the image-serving boundary."""

    AUTO = "auto"
    WEBP = "webp"
    JPEG = "jpeg"
    JPG = "jpg"


# =============================================================================
# CAPTURE AND PIPELINE
# =============================================================================


class CaptureStrategy(str, Enum):
    """Which capture path produced the screenshot bytes."""

    ELEMENT = "element"
    PAGE_AREA = "page-area"


class PipelineStage(str, Enum):
    """Per-pet pipeline states, in the order they are visited."""

    NEEDS_CAPTURE = "needs_capture"
    CAPTURING = "capturing"
    NEEDS_CONVERSION = "needs_conversion"
    CONVERTING = "converting"
    STORING = "storing"
    DONE = "done"
    FAILED = "failed"


class PipelineOutcome(str, Enum):
    """Final disposition of one pet inside a batch."""

    DONE = "done"
    SKIPPED = "skipped"
    FAILED = "failed"
    ABANDONED = "abandoned"


class FailureReason(str, Enum):
    """Why a pet ended in the FAILED stage."""

    CAPTURE_FAILED = "capture_failed"
    NAVIGATION_FAILED = "navigation_failed"
    NO_IMAGE_FOUND = "no_image_found"
    CONVERSION_FAILED = "conversion_failed"
    STORE_WRITE_FAILED = "store_write_failed"
    UNEXPECTED = "unexpected"


class SamplingStrategy(str, Enum):
    """How reconciliation picks a bounded sample of pets."""

    RANDOM = "random"
    OLDEST_CHECKED = "oldest_checked"


# =============================================================================
# SYNC JOBS
# =============================================================================


class SyncJobType(str, Enum):
    """Kinds of sync job accepted by the admin trigger surface."""

    FULL = "full"
    INCREMENTAL = "incremental"
    IMAGE = "image"


class SyncJobStatus(str, Enum):
    """Sync job lifecycle. Terminal states are COMPLETED and FAILED."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class StorageBackend(str, Enum):
    """Object store implementations."""

    S3 = "s3"
    LOCAL = "local"


# =============================================================================
# LOGGING SYSTEM
# =============================================================================


class LogLevel(str, Enum):
    """Log level constants for centralized logging system."""

    TRACE = "TRACE"
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LoggerName(str, Enum):
    """Logger name constants for categorizing log entries."""

    # API/Request loggers
    ERROR_HANDLER = "error_handler"
    MIDDLEWARE = "middleware"
    API = "api"

    # Worker loggers
    PIPELINE_WORKER = "pipeline_worker"
    BATCH_RUNNER = "batch_runner"

    # Pipeline loggers
    CAPTURE_PIPELINE = "capture_pipeline"
    CONVERSION_PIPELINE = "conversion_pipeline"
    PIPELINE_ORCHESTRATOR = "pipeline_orchestrator"

    # Service loggers
    IMAGE_STORE = "image_store"
    SYNC_STATUS_SERVICE = "sync_status_service"
    RECONCILER = "reconciler"
    SYNC_JOB_SERVICE = "sync_job_service"
    DISPATCH_SERVICE = "dispatch_service"
    IMAGE_SERVING = "image_serving"

    # System loggers
    SYSTEM = "system"
    DATABASE = "database"


class LogEmoji(str, Enum):
    """Type-safe emoji constants for log messages."""

    SUCCESS = "✅"
    FAILED = "❌"
    ERROR = "❌"
    WARNING = "⚠️"
    INFO = "ℹ️"
    DEBUG = "🐞"
    PENDING = "⏳"
    PROCESSING = "🔄"
    STARTUP = "🚀"
    SHUTDOWN = "🛑"
    CAMERA = "📸"
    IMAGE = "🖼️"
    STORAGE = "🗄️"
    DATABASE = "🗃️"
    JOB = "📋"
    SEARCH = "🔍"
    DISPATCH = "📤"
    CLEANUP = "🧹"
    REQUEST = "📥"

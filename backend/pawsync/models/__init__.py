"""Pydantic models for pawsync."""

from .dispatch_model import DispatchPayload, DispatchPetItem, DispatchResult
from .integrity_model import (
    IntegrityError,
    IntegrityReport,
    OrphanedImage,
    PetIntegrityCheck,
)
from .pet_model import PetCandidate, PetImageStatus, ReadinessCounts, ReadinessSnapshot
from .pipeline_models import (
    BatchResult,
    CaptureResult,
    ConversionResult,
    PetPipelineResult,
)
from .storage_model import ObjectHead, ObjectListing
from .sync_job_model import SyncJob, SyncJobCreate, SyncJobStarted

__all__ = [
    "BatchResult",
    "CaptureResult",
    "ConversionResult",
    "DispatchPayload",
    "DispatchPetItem",
    "DispatchResult",
    "IntegrityError",
    "IntegrityReport",
    "ObjectHead",
    "ObjectListing",
    "OrphanedImage",
    "PetCandidate",
    "PetImageStatus",
    "PetIntegrityCheck",
    "PetPipelineResult",
    "ReadinessCounts",
    "ReadinessSnapshot",
    "SyncJob",
    "SyncJobCreate",
    "SyncJobStarted",
]

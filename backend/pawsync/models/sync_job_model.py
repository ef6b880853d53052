# backend/pawsync/models/sync_job_model.py
"""
Sync Job Models

A sync job is one pipeline invocation started from the admin surface. Its
status only moves forward: pending -> running -> completed | failed.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from ..enums import PetType, SyncJobStatus, SyncJobType


class SyncJobCreate(BaseModel):
    """Request body for starting a sync job."""

    job_type: SyncJobType = Field(..., description="full, incremental or image")
    source: str = Field(default="manual", max_length=100)
    pet_type: Optional[PetType] = Field(
        None, description="Restrict the job to one pet type"
    )
    batch_size: Optional[int] = Field(
        None, ge=1, le=1000, description="Upper bound on pets processed"
    )


class SyncJob(BaseModel):
    """Complete sync job record."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    job_type: SyncJobType
    status: SyncJobStatus = SyncJobStatus.PENDING
    source: str = "manual"
    pet_type: Optional[PetType] = None
    batch_size: Optional[int] = None
    progress: float = Field(0.0, ge=0, le=100)
    processed_count: int = 0
    failed_count: int = 0
    error: Optional[str] = None
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (SyncJobStatus.COMPLETED, SyncJobStatus.FAILED)

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.started_at is None or self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()


class SyncJobStarted(BaseModel):
    """Response to a start request."""

    job_id: str
    status: SyncJobStatus

# backend/pawsync/models/integrity_model.py
"""Reconciliation report models."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from ..enums import PetType


class IntegrityError(BaseModel):
    """A pet whose store check failed during a reconcile pass."""

    pet_id: str
    error: str


class IntegrityReport(BaseModel):
    """Summary of one reconcile pass."""

    total_checked: int = 0
    mismatched_jpeg: List[str] = Field(
        default_factory=list, description="Pet ids whose JPEG flag disagreed with the store"
    )
    mismatched_webp: List[str] = Field(
        default_factory=list, description="Pet ids whose WebP flag disagreed with the store"
    )
    fixed_count: int = 0
    errors: List[IntegrityError] = Field(default_factory=list)
    auto_fix: bool = False
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def mismatch_count(self) -> int:
        return len(set(self.mismatched_jpeg) | set(self.mismatched_webp))


class PetIntegrityCheck(BaseModel):
    """Believed vs. actual image state for one pet."""

    pet_id: str
    pet_type: PetType
    believed_has_jpeg: bool
    believed_has_webp: bool
    actual_has_jpeg: bool
    actual_has_webp: bool
    jpeg_size: Optional[int] = None
    webp_size: Optional[int] = None
    is_consistent: bool


class OrphanedImage(BaseModel):
    """A stored object under pets/ whose pet id has no record."""

    key: str
    pet_id: str
    pet_type: PetType
    size: int

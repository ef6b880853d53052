# backend/pawsync/models/pet_model.py
"""
Pet Models - pet candidates, per-pet image status and the readiness snapshot.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from ..enums import PetType


class PetCandidate(BaseModel):
    """A pet the pipeline may need to capture imagery for."""

    model_config = ConfigDict(from_attributes=True)

    pet_id: str = Field(..., min_length=1, description="Pet record id")
    pet_type: PetType
    source_url: Optional[str] = Field(
        None, description="Listing page the photo is captured from"
    )
    name: Optional[str] = None


class PetImageStatus(BaseModel):
    """
    Which image variants exist for one pet, as last recorded.

    A pet with no status row is represented with both flags False and every
    timestamp None.
    """

    model_config = ConfigDict(from_attributes=True)

    pet_id: str
    pet_type: PetType
    has_jpeg: bool = False
    has_webp: bool = False
    image_checked_at: Optional[datetime] = None
    screenshot_requested_at: Optional[datetime] = None
    screenshot_completed_at: Optional[datetime] = None

    @property
    def is_screenshot_pending(self) -> bool:
        """Requested, not completed and still without a JPEG: in flight or stalled."""
        return (
            self.screenshot_requested_at is not None
            and self.screenshot_completed_at is None
            and not self.has_jpeg
        )


class ReadinessCounts(BaseModel):
    """Raw counts the readiness snapshot is derived from."""

    total_pets: int = 0
    total_dogs: int = 0
    total_cats: int = 0
    pets_with_jpeg: int = 0
    pets_with_webp: int = 0


class ReadinessSnapshot(ReadinessCounts):
    """Aggregate view of whether the dataset is usable."""

    model_config = ConfigDict(from_attributes=True)

    image_coverage: float = Field(0.0, ge=0, le=1)
    data_completeness: float = Field(0.0, ge=0, le=1)
    is_ready: bool = False
    message: Optional[str] = None
    computed_at: Optional[datetime] = None

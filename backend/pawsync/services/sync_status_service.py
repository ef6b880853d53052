# backend/pawsync/services/sync_status_service.py
"""
Sync Status Service - the durable "is this pet's image data ready" state.

Wraps the pet status and readiness operations. Reads propagate database
errors (the database being unreachable is a setup failure). Writes are
converted to StatusWriteError so the orchestrator can treat a failed status
write after a successful store write as non-fatal drift.
"""

from datetime import datetime
from typing import List, Optional

from ..constants import (
    DEFAULT_COMPLETENESS_TARGET,
    DEFAULT_MIN_CATS,
    DEFAULT_MIN_COVERAGE,
    DEFAULT_MIN_DOGS,
)
from ..database.exceptions import (
    PetStatusOperationError,
    ReadinessOperationError,
)
from ..database.pet_image_status_operations import PetImageStatusOperations
from ..database.readiness_operations import ReadinessOperations
from ..enums import LoggerName, PetType, SamplingStrategy
from ..exceptions import StatusWriteError
from ..models.pet_model import (
    PetCandidate,
    PetImageStatus,
    ReadinessCounts,
    ReadinessSnapshot,
)
from ..utils.time_utils import utc_now
from .logger import get_service_logger

logger = get_service_logger(LoggerName.SYNC_STATUS_SERVICE)

READY_MESSAGE = "Data is ready for use"


def evaluate_readiness(
    counts: ReadinessCounts,
    min_dogs: int = DEFAULT_MIN_DOGS,
    min_cats: int = DEFAULT_MIN_CATS,
    min_coverage: float = DEFAULT_MIN_COVERAGE,
    completeness_target: int = DEFAULT_COMPLETENESS_TARGET,
) -> ReadinessSnapshot:
    """
    Derive the readiness snapshot from raw counts.

    Ready iff dogs >= min_dogs, cats >= min_cats and
    pets_with_jpeg / total_pets >= min_coverage.
    """
    coverage = counts.pets_with_jpeg / counts.total_pets if counts.total_pets else 0.0
    coverage = min(1.0, coverage)
    completeness = min(1.0, counts.total_pets / completeness_target)

    is_ready = (
        counts.total_dogs >= min_dogs
        and counts.total_cats >= min_cats
        and coverage >= min_coverage
    )

    if is_ready:
        message = READY_MESSAGE
    else:
        need_dogs = max(0, min_dogs - counts.total_dogs)
        need_cats = max(0, min_cats - counts.total_cats)
        if need_dogs or need_cats:
            message = f"Need {need_dogs} more dogs and {need_cats} more cats"
        else:
            message = (
                f"Image coverage {coverage:.0%} is below the required "
                f"{min_coverage:.0%}"
            )

    return ReadinessSnapshot(
        **counts.model_dump(),
        image_coverage=coverage,
        data_completeness=completeness,
        is_ready=is_ready,
        message=message,
        computed_at=utc_now(),
    )


class SyncStatusService:
    """Per-pet image flags and the aggregate readiness snapshot."""

    def __init__(
        self,
        status_ops: PetImageStatusOperations,
        readiness_ops: ReadinessOperations,
        min_dogs: int = DEFAULT_MIN_DOGS,
        min_cats: int = DEFAULT_MIN_CATS,
        min_coverage: float = DEFAULT_MIN_COVERAGE,
        completeness_target: int = DEFAULT_COMPLETENESS_TARGET,
    ):
        self.status_ops = status_ops
        self.readiness_ops = readiness_ops
        self.min_dogs = min_dogs
        self.min_cats = min_cats
        self.min_coverage = min_coverage
        self.completeness_target = completeness_target

    @classmethod
    def from_settings(cls, db, settings) -> "SyncStatusService":
        return cls(
            PetImageStatusOperations(db),
            ReadinessOperations(db),
            min_dogs=settings.readiness_min_dogs,
            min_cats=settings.readiness_min_cats,
            min_coverage=settings.readiness_min_coverage,
            completeness_target=settings.readiness_completeness_target,
        )

    # Reads

    async def get_pet(self, pet_id: str) -> Optional[PetCandidate]:
        return await self.status_ops.get_pet(pet_id)

    async def get_status(self, pet_id: str) -> Optional[PetImageStatus]:
        """
        Image status for a pet.

        A pet with no status row reads as both flags False. None means the pet
        itself has no record.
        """
        return await self.status_ops.get_status(pet_id)

    async def get_pets_missing_images(
        self, limit: int, pet_type: Optional[PetType] = None
    ) -> List[PetCandidate]:
        return await self.status_ops.get_pets_missing_images(limit, pet_type)

    async def get_pending_screenshots(
        self, limit: int, requested_before: Optional[datetime] = None
    ) -> List[PetCandidate]:
        return await self.status_ops.get_pending_screenshots(limit, requested_before)

    async def sample_statuses(
        self,
        limit: Optional[int],
        strategy: SamplingStrategy = SamplingStrategy.RANDOM,
        pet_type: Optional[PetType] = None,
    ) -> List[PetImageStatus]:
        return await self.status_ops.sample_statuses(limit, strategy, pet_type)

    async def get_existing_pet_ids(self, pet_ids: List[str]) -> set:
        return await self.status_ops.get_existing_pet_ids(pet_ids)

    async def get_readiness(self) -> Optional[ReadinessSnapshot]:
        """Last persisted snapshot without recomputing."""
        return await self.readiness_ops.get_snapshot()

    # Writes

    async def set_image_flags(self, pet_id: str, has_jpeg: bool, has_webp: bool) -> None:
        """Record which variants exist and stamp image_checked_at."""
        try:
            written = await self.status_ops.set_image_flags(pet_id, has_jpeg, has_webp)
        except PetStatusOperationError as e:
            raise StatusWriteError(
                f"Failed to set image flags for {pet_id}",
                operation="set_image_flags",
                details={"pet_id": pet_id},
            ) from e

        if not written:
            logger.warning(
                f"Image flags not written, pet {pet_id} has no record",
                extra_context={"pet_id": pet_id},
            )

    async def mark_screenshot_requested(self, pet_id: str) -> None:
        try:
            await self.status_ops.mark_screenshot_requested(pet_id)
        except PetStatusOperationError as e:
            raise StatusWriteError(
                f"Failed to mark screenshot requested for {pet_id}",
                operation="mark_screenshot_requested",
                details={"pet_id": pet_id},
            ) from e

    async def mark_screenshots_requested(self, pet_ids: List[str]) -> int:
        try:
            return await self.status_ops.mark_screenshots_requested(pet_ids)
        except PetStatusOperationError as e:
            raise StatusWriteError(
                f"Failed to mark {len(pet_ids)} screenshots requested",
                operation="mark_screenshots_requested",
            ) from e

    async def mark_screenshot_completed(self, pet_id: str) -> None:
        """Stamp completion; also sets has_jpeg."""
        try:
            await self.status_ops.mark_screenshot_completed(pet_id)
        except PetStatusOperationError as e:
            raise StatusWriteError(
                f"Failed to mark screenshot completed for {pet_id}",
                operation="mark_screenshot_completed",
                details={"pet_id": pet_id},
            ) from e

    async def compute_readiness(self) -> ReadinessSnapshot:
        """
        Recount every pet, derive readiness and persist the snapshot.

        Raises:
            ReadinessOperationError: If counting fails
            StatusWriteError: If the snapshot cannot be persisted
        """
        counts = await self.readiness_ops.get_counts()
        snapshot = evaluate_readiness(
            counts,
            min_dogs=self.min_dogs,
            min_cats=self.min_cats,
            min_coverage=self.min_coverage,
            completeness_target=self.completeness_target,
        )

        try:
            snapshot = await self.readiness_ops.save_snapshot(snapshot)
        except ReadinessOperationError as e:
            raise StatusWriteError(
                "Failed to persist readiness snapshot", operation="compute_readiness"
            ) from e

        logger.info(
            f"Readiness recomputed: ready={snapshot.is_ready} "
            f"coverage={snapshot.image_coverage:.1%} ({snapshot.message})",
            extra_context={
                "total_pets": snapshot.total_pets,
                "pets_with_jpeg": snapshot.pets_with_jpeg,
            },
        )
        return snapshot

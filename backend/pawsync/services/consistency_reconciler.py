# backend/pawsync/services/consistency_reconciler.py
"""
Consistency Reconciler - brings recorded image flags back in line with the
object store.

Store and status writes are not transactional, so they drift: a store write
can land while its status write fails, or an object can be deleted out of
band. The reconciler checks the store for each sampled pet, reports every
disagreement, and with auto_fix rewrites the flags to what the store actually
holds. It never captures anything. Re-running it with no intervening change
fixes nothing.
"""

from typing import Dict, List, Optional, Union

from ..constants import RECONCILE_ALL
from ..enums import LogEmoji, LoggerName, PetType, SamplingStrategy
from ..exceptions import PawsyncError
from ..models.integrity_model import (
    IntegrityError,
    IntegrityReport,
    OrphanedImage,
    PetIntegrityCheck,
)
from ..models.pet_model import PetImageStatus
from ..storage.base import ImageStore
from ..utils.storage_keys import original_key, optimized_key, parse_pet_key, type_prefix
from ..utils.time_utils import utc_now
from .logger import get_service_logger
from .sync_status_service import SyncStatusService

logger = get_service_logger(LoggerName.RECONCILER, LogEmoji.SEARCH)

SampleSize = Union[int, str]


class ConsistencyReconciler:
    """Detects and corrects drift between status rows and stored objects."""

    def __init__(
        self,
        image_store: ImageStore,
        status_service: SyncStatusService,
        sampling_strategy: SamplingStrategy = SamplingStrategy.RANDOM,
    ):
        self.image_store = image_store
        self.status_service = status_service
        self.sampling_strategy = sampling_strategy

    async def _inspect(self, status: PetImageStatus) -> PetIntegrityCheck:
        jpeg_head = await self.image_store.head(
            original_key(status.pet_type, status.pet_id)
        )
        webp_head = await self.image_store.head(
            optimized_key(status.pet_type, status.pet_id)
        )
        actual_jpeg = jpeg_head is not None
        actual_webp = webp_head is not None
        return PetIntegrityCheck(
            pet_id=status.pet_id,
            pet_type=status.pet_type,
            believed_has_jpeg=status.has_jpeg,
            believed_has_webp=status.has_webp,
            actual_has_jpeg=actual_jpeg,
            actual_has_webp=actual_webp,
            jpeg_size=jpeg_head.size if jpeg_head else None,
            webp_size=webp_head.size if webp_head else None,
            is_consistent=(
                status.has_jpeg == actual_jpeg and status.has_webp == actual_webp
            ),
        )

    async def reconcile(
        self,
        sample_size: SampleSize = 10,
        auto_fix: bool = False,
        pet_type: Optional[PetType] = None,
    ) -> IntegrityReport:
        """
        Compare recorded flags with the store for a sample of pets.

        Args:
            sample_size: Number of pets, or "all" for a full audit
            auto_fix: Rewrite mismatched flags and recompute readiness
            pet_type: Restrict the pass to one pet type

        Returns:
            IntegrityReport. Per-pet store failures are listed in ``errors``.
        """
        if sample_size == RECONCILE_ALL:
            limit = None
        elif isinstance(sample_size, int) and not isinstance(sample_size, bool) and sample_size > 0:
            limit = sample_size
        else:
            raise ValueError(f"sample_size must be a positive int or '{RECONCILE_ALL}'")

        report = IntegrityReport(auto_fix=auto_fix, started_at=utc_now())
        statuses = await self.status_service.sample_statuses(
            limit, self.sampling_strategy, pet_type
        )

        logger.info(
            f"Reconciling {len(statuses)} pets (sample={sample_size}, auto_fix={auto_fix})"
        )

        for status in statuses:
            context = {"pet_id": status.pet_id}
            try:
                check = await self._inspect(status)
            except PawsyncError as e:
                logger.warning(f"Store check failed: {e}", extra_context=context)
                report.errors.append(IntegrityError(pet_id=status.pet_id, error=str(e)))
                continue
            except Exception as e:
                logger.error("Unexpected store check failure", exception=e, extra_context=context)
                report.errors.append(IntegrityError(pet_id=status.pet_id, error=str(e)))
                continue

            report.total_checked += 1
            if check.is_consistent:
                continue

            if check.believed_has_jpeg != check.actual_has_jpeg:
                report.mismatched_jpeg.append(status.pet_id)
            if check.believed_has_webp != check.actual_has_webp:
                report.mismatched_webp.append(status.pet_id)

            logger.warning(
                f"Drift: recorded jpeg={check.believed_has_jpeg} webp={check.believed_has_webp}, "
                f"stored jpeg={check.actual_has_jpeg} webp={check.actual_has_webp}",
                extra_context=context,
            )

            if auto_fix:
                try:
                    await self.status_service.set_image_flags(
                        status.pet_id, check.actual_has_jpeg, check.actual_has_webp
                    )
                    report.fixed_count += 1
                except PawsyncError as e:
                    logger.error(
                        "Failed to correct image flags", exception=e, extra_context=context
                    )
                    report.errors.append(
                        IntegrityError(pet_id=status.pet_id, error=str(e))
                    )

        if auto_fix and report.fixed_count:
            await self.status_service.compute_readiness()

        report.completed_at = utc_now()
        logger.info(
            f"Reconcile finished: checked={report.total_checked} "
            f"jpeg_mismatches={len(report.mismatched_jpeg)} "
            f"webp_mismatches={len(report.mismatched_webp)} "
            f"fixed={report.fixed_count} errors={len(report.errors)}",
            emoji=LogEmoji.SUCCESS,
        )
        return report

    async def check_pet(self, pet_id: str) -> Optional[PetIntegrityCheck]:
        """Believed vs. stored state for one pet; None if the pet has no record."""
        status = await self.status_service.get_status(pet_id)
        if status is None:
            return None
        return await self._inspect(status)

    async def find_orphaned_images(
        self, pet_type: Optional[PetType] = None
    ) -> List[OrphanedImage]:
        """Objects under pets/ whose pet id has no pet record."""
        pet_types = [PetType(pet_type)] if pet_type else list(PetType)
        objects_by_pet: Dict[str, List[OrphanedImage]] = {}

        for current_type in pet_types:
            async for listing in self.image_store.list_by_prefix(type_prefix(current_type)):
                parsed = parse_pet_key(listing.key)
                if parsed is None:
                    continue
                objects_by_pet.setdefault(parsed.pet_id, []).append(
                    OrphanedImage(
                        key=listing.key,
                        pet_id=parsed.pet_id,
                        pet_type=parsed.pet_type,
                        size=listing.size,
                    )
                )

        if not objects_by_pet:
            return []

        existing = await self.status_service.get_existing_pet_ids(list(objects_by_pet))
        orphans = [
            image
            for pet_id, images in objects_by_pet.items()
            if pet_id not in existing
            for image in images
        ]

        if orphans:
            logger.warning(
                f"Found {len(orphans)} orphaned objects for "
                f"{len({o.pet_id for o in orphans})} unknown pets"
            )
        return orphans

# backend/tests/unit/services/test_sync_status_service.py
"""Tests for readiness evaluation and SyncStatusService writes."""

import pytest

from pawsync.enums import PetType
from pawsync.exceptions import StatusWriteError
from pawsync.models.pet_model import ReadinessCounts
from pawsync.services.sync_status_service import READY_MESSAGE, evaluate_readiness

THRESHOLDS = {"min_dogs": 50, "min_cats": 50, "min_coverage": 0.8, "completeness_target": 1000}


@pytest.mark.unit
class TestEvaluateReadiness:
    def test_ready(self):
        snapshot = evaluate_readiness(
            ReadinessCounts(
                total_pets=110, total_dogs=60, total_cats=50, pets_with_jpeg=100, pets_with_webp=90
            ),
            **THRESHOLDS,
        )

        assert snapshot.is_ready
        assert snapshot.message == READY_MESSAGE
        assert snapshot.image_coverage == pytest.approx(100 / 110)
        assert snapshot.data_completeness == pytest.approx(110 / 1000)

    def test_not_enough_cats(self):
        snapshot = evaluate_readiness(
            ReadinessCounts(total_pets=100, total_dogs=60, total_cats=40, pets_with_jpeg=100),
            **THRESHOLDS,
        )

        assert not snapshot.is_ready
        assert snapshot.message == "Need 0 more dogs and 10 more cats"

    def test_coverage_below_threshold(self):
        snapshot = evaluate_readiness(
            ReadinessCounts(total_pets=100, total_dogs=50, total_cats=50, pets_with_jpeg=50),
            **THRESHOLDS,
        )

        assert not snapshot.is_ready
        assert snapshot.message == "Image coverage 50% is below the required 80%"

    def test_empty_dataset(self):
        snapshot = evaluate_readiness(ReadinessCounts(), **THRESHOLDS)

        assert not snapshot.is_ready
        assert snapshot.image_coverage == 0.0
        assert snapshot.data_completeness == 0.0

    def test_ratios_are_capped(self):
        snapshot = evaluate_readiness(
            ReadinessCounts(total_pets=5000, total_dogs=2500, total_cats=2500, pets_with_jpeg=5000),
            **THRESHOLDS,
        )

        assert snapshot.data_completeness == 1.0
        assert snapshot.image_coverage == 1.0


class TestSyncStatusService:
    @pytest.mark.asyncio
    async def test_pet_without_status_row_reads_all_false(self, status_service, status_ops):
        status_ops.add_pet("pethome_1", PetType.CAT)

        status = await status_service.get_status("pethome_1")

        assert status.has_jpeg is False
        assert status.has_webp is False
        assert await status_service.get_status("unknown") is None

    @pytest.mark.asyncio
    async def test_write_failure_becomes_status_write_error(self, status_service, status_ops):
        status_ops.add_pet("pethome_1")
        status_ops.fail_writes = True

        with pytest.raises(StatusWriteError):
            await status_service.set_image_flags("pethome_1", True, True)
        with pytest.raises(StatusWriteError):
            await status_service.mark_screenshot_completed("pethome_1")

    @pytest.mark.asyncio
    async def test_completion_sets_jpeg_flag(self, status_service, status_ops):
        status_ops.add_pet("pethome_1")

        await status_service.mark_screenshot_requested("pethome_1")
        await status_service.mark_screenshot_completed("pethome_1")

        status = await status_service.get_status("pethome_1")
        assert status.has_jpeg
        assert not status.is_screenshot_pending

    @pytest.mark.asyncio
    async def test_compute_readiness_persists(self, status_service, status_ops, readiness_ops):
        status_ops.add_pet("d1", PetType.DOG, has_jpeg=True)
        status_ops.add_pet("d2", PetType.DOG, has_jpeg=True)
        status_ops.add_pet("c1", PetType.CAT)

        snapshot = await status_service.compute_readiness()

        assert snapshot.is_ready
        assert snapshot.total_pets == 3
        assert readiness_ops.saved == 1
        assert await status_service.get_readiness() == snapshot

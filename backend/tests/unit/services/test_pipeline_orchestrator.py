#!/usr/bin/env python3
# backend/tests/unit/services/test_pipeline_orchestrator.py
"""
Tests for PipelineOrchestrator.

Runs the real converter, a filesystem store and in-memory status rows; only
the browser is faked.
"""

from contextlib import asynccontextmanager
from datetime import timedelta

import pytest

from pawsync.enums import (
    CaptureStrategy,
    FailureReason,
    PetType,
    PipelineOutcome,
    PipelineStage,
)
from pawsync.exceptions import CaptureSetupError, NavigationError, StoreWriteError
from pawsync.models.pet_model import PetCandidate
from pawsync.services.image_converter import ImageConverter
from pawsync.services.pipeline_orchestrator import PipelineOrchestrator
from pawsync.storage.local_store import LocalImageStore
from pawsync.utils.storage_keys import optimized_key, original_key, screenshot_key
from pawsync.utils.time_utils import utc_now


class FailingStore(LocalImageStore):
    """Every put fails."""

    def __init__(self, root):
        super().__init__(root)
        self.put_calls = 0

    async def put(self, key, data, content_type, metadata=None):
        self.put_calls += 1
        raise StoreWriteError(f"Failed to write {key}", operation="put")


def url_for(pet_id: str) -> str:
    return f"https://example.test/pets/{pet_id}"


def add_pets(status_ops, *pet_ids, pet_type=PetType.DOG, **kwargs):
    return [
        status_ops.add_pet(pet_id, pet_type, source_url=url_for(pet_id), **kwargs)
        for pet_id in pet_ids
    ]


@pytest.fixture
def make_orchestrator(local_store, status_service, coordinator_factory, no_sleep):
    def _make(**overrides):
        options = {
            "image_store": local_store,
            "converter": ImageConverter(),
            "status_service": status_service,
            "coordinator_factory": coordinator_factory,
            "max_attempts": 3,
            "retry_backoff_seconds": 1.0,
            "concurrency": 2,
            "inter_request_delay_seconds": 0,
            "batch_timeout_seconds": 30,
            "sleep": no_sleep,
        }
        options.update(overrides)
        return PipelineOrchestrator(**options)

    return _make


@pytest.mark.pipeline
class TestProcessing:
    @pytest.mark.asyncio
    async def test_success_stores_all_variants_and_sets_flags(
        self, make_orchestrator, status_ops, local_store
    ):
        (pet,) = add_pets(status_ops, "pethome_1")

        batch = await make_orchestrator().run_batch([pet], batch_id="b1")

        result = batch.results[0]
        assert result.outcome == PipelineOutcome.DONE
        assert result.stage == PipelineStage.DONE
        assert result.capture_strategy == CaptureStrategy.ELEMENT
        assert batch.success_count == 1
        assert batch.batch_id == "b1"

        for key in (
            screenshot_key(PetType.DOG, "pethome_1"),
            original_key(PetType.DOG, "pethome_1"),
            optimized_key(PetType.DOG, "pethome_1"),
        ):
            assert await local_store.exists(key)
        head = await local_store.head(original_key(PetType.DOG, "pethome_1"))
        assert head.content_type == "image/jpeg"
        assert head.metadata["pet-id"] == "pethome_1"
        assert head.metadata["capture-strategy"] == "element"

        status = status_ops.statuses["pethome_1"]
        assert status.has_jpeg and status.has_webp
        assert status.screenshot_completed_at is not None

    @pytest.mark.asyncio
    async def test_one_unreachable_pet_does_not_stop_batch(
        self, make_orchestrator, status_ops, fake_coordinator, no_sleep
    ):
        pets = add_pets(status_ops, "a", "b", "c")
        fake_coordinator.fail(url_for("b"), *[NavigationError("timed out")] * 3)

        batch = await make_orchestrator().run_batch(pets)

        assert [r.pet_id for r in batch.results] == ["a", "b", "c"]
        assert [r.outcome for r in batch.results] == [
            PipelineOutcome.DONE,
            PipelineOutcome.FAILED,
            PipelineOutcome.DONE,
        ]
        failed = batch.results[1]
        assert failed.failure_reason == FailureReason.NAVIGATION_FAILED
        assert failed.capture_attempts == 3
        assert failed.stage == PipelineStage.FAILED
        assert no_sleep.delays == [1.0, 2.0]
        assert not status_ops.statuses["b"].has_jpeg

    @pytest.mark.asyncio
    async def test_transient_capture_failure_recovers(
        self, make_orchestrator, status_ops, fake_coordinator
    ):
        pets = add_pets(status_ops, "a")
        fake_coordinator.fail(url_for("a"), NavigationError("blip"))

        batch = await make_orchestrator().run_batch(pets)

        assert batch.results[0].outcome == PipelineOutcome.DONE
        assert batch.results[0].capture_attempts == 2

    @pytest.mark.asyncio
    async def test_store_write_retried_then_failed(
        self, make_orchestrator, status_ops, tmp_path
    ):
        store = FailingStore(tmp_path / "failing")
        pets = add_pets(status_ops, "a")

        batch = await make_orchestrator(image_store=store).run_batch(pets)

        result = batch.results[0]
        assert result.outcome == PipelineOutcome.FAILED
        assert result.failure_reason == FailureReason.STORE_WRITE_FAILED
        assert result.store_attempts == 3
        assert store.put_calls == 3
        assert not status_ops.statuses["a"].has_jpeg

    @pytest.mark.asyncio
    async def test_conversion_failure_is_not_retried(
        self, make_orchestrator, status_ops, fake_coordinator, local_store
    ):
        fake_coordinator.png = b"definitely not an image"
        pets = add_pets(status_ops, "a")

        batch = await make_orchestrator().run_batch(pets)

        result = batch.results[0]
        assert result.failure_reason == FailureReason.CONVERSION_FAILED
        assert result.capture_attempts == 1
        assert fake_coordinator.calls == [url_for("a")]
        assert [item async for item in local_store.list_by_prefix("pets/")] == []

    @pytest.mark.asyncio
    async def test_status_write_failure_after_store_is_still_done(
        self, make_orchestrator, status_ops, local_store
    ):
        pets = add_pets(status_ops, "a")
        status_ops.fail_writes = True

        batch = await make_orchestrator().run_batch(pets)

        result = batch.results[0]
        assert result.outcome == PipelineOutcome.DONE
        assert result.status_write_failed
        assert await local_store.exists(original_key(PetType.DOG, "a"))

    @pytest.mark.asyncio
    async def test_pet_without_source_url_fails(self, make_orchestrator, status_ops):
        pet = status_ops.add_pet("nourl", source_url=None)

        batch = await make_orchestrator().run_batch([pet])

        assert batch.results[0].failure_reason == FailureReason.CAPTURE_FAILED


@pytest.mark.pipeline
class TestSkipping:
    @pytest.mark.asyncio
    async def test_unknown_pet_skipped(self, make_orchestrator):
        ghost = PetCandidate(pet_id="ghost", pet_type=PetType.CAT, source_url=url_for("ghost"))

        batch = await make_orchestrator().run_batch([ghost])

        assert batch.results[0].outcome == PipelineOutcome.SKIPPED
        assert batch.skipped_count == 1

    @pytest.mark.asyncio
    async def test_existing_jpeg_skipped_unless_forced(
        self, make_orchestrator, status_ops, fake_coordinator
    ):
        pets = add_pets(status_ops, "done", has_jpeg=True)
        orchestrator = make_orchestrator()

        skipped = await orchestrator.run_batch(pets)
        assert skipped.results[0].outcome == PipelineOutcome.SKIPPED
        assert fake_coordinator.calls == []

        forced = await orchestrator.run_batch(pets, force=True)
        assert forced.results[0].outcome == PipelineOutcome.DONE


@pytest.mark.pipeline
class TestBatchBoundaries:
    @pytest.mark.asyncio
    async def test_empty_batch_opens_no_browser(self, make_orchestrator, coordinator_factory):
        batch = await make_orchestrator().run_batch([])

        assert batch.results == []
        assert coordinator_factory.opened == []

    @pytest.mark.asyncio
    async def test_worker_count_bounded_by_batch(self, make_orchestrator, status_ops, coordinator_factory):
        pets = add_pets(status_ops, "only")

        await make_orchestrator(concurrency=4).run_batch(pets)

        assert coordinator_factory.opened == [1]

    @pytest.mark.asyncio
    async def test_timeout_abandons_in_flight_pets(
        self, make_orchestrator, status_ops, fake_coordinator
    ):
        pets = add_pets(status_ops, "slow", "fast")
        fake_coordinator.hang_urls.add(url_for("slow"))

        batch = await make_orchestrator(batch_timeout_seconds=1.0).run_batch(pets)

        assert batch.timed_out
        slow, fast = batch.results
        assert slow.outcome == PipelineOutcome.ABANDONED
        assert slow.stage == PipelineStage.CAPTURING
        assert fast.outcome == PipelineOutcome.DONE
        assert batch.abandoned_count == 1
        assert not status_ops.statuses["slow"].has_jpeg

    @pytest.mark.asyncio
    async def test_browser_launch_failure_fails_batch(self, make_orchestrator, status_ops):
        @asynccontextmanager
        async def broken_factory(page_count):
            raise CaptureSetupError("chromium missing", operation="browser_launch")
            yield

        pets = add_pets(status_ops, "a")

        with pytest.raises(CaptureSetupError):
            await make_orchestrator(coordinator_factory=broken_factory).run_batch(pets)

    @pytest.mark.asyncio
    async def test_result_callback_per_pet(self, make_orchestrator, status_ops):
        pets = add_pets(status_ops, "a", "b")
        seen = []

        async def on_result(result):
            seen.append(result.pet_id)
            raise RuntimeError("callback errors are ignored")

        batch = await make_orchestrator().run_batch(pets, on_result=on_result)

        assert sorted(seen) == ["a", "b"]
        assert batch.success_count == 2


@pytest.mark.pipeline
class TestSweeps:
    @pytest.mark.asyncio
    async def test_sweep_processes_missing_pets(self, make_orchestrator, status_ops):
        add_pets(status_ops, "has", has_jpeg=True)
        add_pets(status_ops, "missing1", "missing2")
        add_pets(status_ops, "cat1", pet_type=PetType.CAT)

        batch = await make_orchestrator().run_sweep(limit=10, pet_type=PetType.DOG)

        assert sorted(r.pet_id for r in batch.results) == ["missing1", "missing2"]
        assert batch.batch_id.startswith("sweep-")

    @pytest.mark.asyncio
    async def test_retry_pending(self, make_orchestrator, status_ops):
        add_pets(status_ops, "stalled", requested=True)
        add_pets(status_ops, "fresh")

        batch = await make_orchestrator().retry_pending()

        assert [r.pet_id for r in batch.results] == ["stalled"]
        assert not status_ops.statuses["stalled"].is_screenshot_pending

    @pytest.mark.asyncio
    async def test_retry_pending_skips_recent_requests(self, make_orchestrator, status_ops):
        add_pets(status_ops, "stalled", requested=True)
        add_pets(status_ops, "recent")
        await status_ops.mark_screenshot_requested("recent")

        batch = await make_orchestrator().retry_pending(
            requested_before=utc_now() - timedelta(minutes=10)
        )

        assert [r.pet_id for r in batch.results] == ["stalled"]
        assert status_ops.statuses["recent"].is_screenshot_pending

    @pytest.mark.asyncio
    async def test_process_single(self, make_orchestrator, status_ops):
        add_pets(status_ops, "one")
        orchestrator = make_orchestrator()

        assert (await orchestrator.process_single("one")).succeeded
        assert await orchestrator.process_single("unknown") is None

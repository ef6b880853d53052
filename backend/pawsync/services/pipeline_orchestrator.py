# backend/pawsync/services/pipeline_orchestrator.py
"""
Pipeline Orchestrator - capture, convert and store imagery for pets that
have none.

Per pet the pipeline is strictly sequential:

    NeedsCapture -> Capturing -> NeedsConversion -> Converting -> Storing -> Done
                                                           any stage -> Failed

Capture and store calls are retried with linear backoff; conversion is
deterministic and never retried. Every per-pet failure is caught here and
becomes a result record, so one unreachable listing page never stops the rest
of a batch. Only a failure to start the browser fails the batch as a whole.

Within a batch, a fixed number of workers pull pets from a queue and share
one browser session. A batch timeout cancels whatever is still in flight;
those pets are reported as abandoned and their image flags are left alone so
the next sweep picks them up again.
"""

import asyncio
import time
from contextlib import AbstractAsyncContextManager
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from ..constants import (
    DEFAULT_BATCH_TIMEOUT_SECONDS,
    DEFAULT_CONCURRENCY,
    DEFAULT_INTER_REQUEST_DELAY_SECONDS,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_NAVIGATION_TIMEOUT_MS,
    DEFAULT_RETRY_BACKOFF_SECONDS,
    DEFAULT_SWEEP_LIMIT,
    VARIANT_CONTENT_TYPES,
)
from ..enums import (
    FailureReason,
    ImageVariant,
    LogEmoji,
    LoggerName,
    PetType,
    PipelineOutcome,
    PipelineStage,
)
from ..exceptions import (
    CaptureError,
    ConversionError,
    NavigationError,
    NoImageFound,
    StatusWriteError,
    StoreWriteError,
)
from ..models.pet_model import PetCandidate
from ..models.pipeline_models import BatchResult, PetPipelineResult
from ..storage.base import ImageStore
from ..utils.retry import RetryManager
from ..utils.storage_keys import image_key
from ..utils.time_utils import format_iso, utc_now
from .image_converter import ImageConverter
from .logger import get_service_logger
from .sync_status_service import SyncStatusService

logger = get_service_logger(LoggerName.PIPELINE_ORCHESTRATOR, LogEmoji.PROCESSING)

CoordinatorFactory = Callable[[int], AbstractAsyncContextManager]
ResultCallback = Callable[[PetPipelineResult], Awaitable[None]]

STORE_ORDER = (ImageVariant.SCREENSHOT, ImageVariant.ORIGINAL, ImageVariant.OPTIMIZED)


class PipelineOrchestrator:
    """Runs pets through capture, conversion and storage."""

    def __init__(
        self,
        image_store: ImageStore,
        converter: ImageConverter,
        status_service: SyncStatusService,
        coordinator_factory: CoordinatorFactory,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        retry_backoff_seconds: float = DEFAULT_RETRY_BACKOFF_SECONDS,
        concurrency: int = DEFAULT_CONCURRENCY,
        inter_request_delay_seconds: float = DEFAULT_INTER_REQUEST_DELAY_SECONDS,
        batch_timeout_seconds: float = DEFAULT_BATCH_TIMEOUT_SECONDS,
        navigation_timeout_ms: int = DEFAULT_NAVIGATION_TIMEOUT_MS,
        sweep_limit: int = DEFAULT_SWEEP_LIMIT,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Args:
            image_store: Destination for captured and converted images
            converter: JPEG/WebP converter
            status_service: Per-pet status and readiness
            coordinator_factory: Called with a page count, returns an async
                context manager yielding a CaptureCoordinator
            max_attempts: Attempts for capture and for each store write
            retry_backoff_seconds: Linear backoff base between attempts
            concurrency: Pets in flight at once within a batch
            inter_request_delay_seconds: Pause between pets in one worker
            batch_timeout_seconds: Hard limit for a whole batch
            navigation_timeout_ms: Page load timeout per capture
            sweep_limit: Default number of pets per sweep
            sleep: Awaitable sleep, injectable for tests
        """
        self.image_store = image_store
        self.converter = converter
        self.status_service = status_service
        self.coordinator_factory = coordinator_factory
        self.concurrency = max(1, concurrency)
        self.inter_request_delay_seconds = inter_request_delay_seconds
        self.batch_timeout_seconds = batch_timeout_seconds
        self.navigation_timeout_ms = navigation_timeout_ms
        self.sweep_limit = sweep_limit
        self._sleep = sleep
        self.retry = RetryManager(max_attempts, retry_backoff_seconds, sleep=sleep)

    @classmethod
    def from_settings(
        cls,
        settings,
        image_store: ImageStore,
        status_service: SyncStatusService,
        coordinator_factory: CoordinatorFactory,
    ) -> "PipelineOrchestrator":
        return cls(
            image_store=image_store,
            converter=ImageConverter.from_settings(settings),
            status_service=status_service,
            coordinator_factory=coordinator_factory,
            max_attempts=settings.pipeline_max_attempts,
            retry_backoff_seconds=settings.pipeline_retry_backoff_seconds,
            concurrency=settings.pipeline_concurrency,
            inter_request_delay_seconds=settings.pipeline_inter_request_delay_seconds,
            batch_timeout_seconds=settings.pipeline_batch_timeout_seconds,
            navigation_timeout_ms=settings.capture_navigation_timeout_ms,
            sweep_limit=settings.pipeline_sweep_limit,
        )

    # ------------------------------------------------------------------
    # Single pet
    # ------------------------------------------------------------------

    @staticmethod
    def _failed(
        candidate: PetCandidate,
        reason: FailureReason,
        error: Any,
        started: float,
        **fields,
    ) -> PetPipelineResult:
        return PetPipelineResult(
            pet_id=candidate.pet_id,
            outcome=PipelineOutcome.FAILED,
            stage=PipelineStage.FAILED,
            failure_reason=reason,
            error=str(error),
            duration_ms=int((time.monotonic() - started) * 1000),
            **fields,
        )

    @staticmethod
    def _capture_failure_reason(error: Optional[BaseException]) -> FailureReason:
        if isinstance(error, NavigationError):
            return FailureReason.NAVIGATION_FAILED
        if isinstance(error, NoImageFound):
            return FailureReason.NO_IMAGE_FOUND
        if isinstance(error, CaptureError):
            return FailureReason.CAPTURE_FAILED
        return FailureReason.UNEXPECTED

    async def process_pet(
        self,
        coordinator: Any,
        candidate: PetCandidate,
        stages: Optional[Dict[str, PipelineStage]] = None,
        force: bool = False,
    ) -> PetPipelineResult:
        """
        Run one pet through the pipeline. Never raises except on cancellation.

        Args:
            coordinator: CaptureCoordinator bound to an open browser session
            candidate: Pet to process
            stages: Optional map updated with the pet's current stage
            force: Capture even when a JPEG is already recorded
        """
        started = time.monotonic()
        pet_id = candidate.pet_id
        context = {"pet_id": pet_id, "pet_type": candidate.pet_type.value}

        def enter(stage: PipelineStage) -> None:
            if stages is not None:
                stages[pet_id] = stage
            logger.debug(f"Pet entering {stage.value}", extra_context=context)

        try:
            status = await self.status_service.get_status(pet_id)
            if status is None:
                return PetPipelineResult(
                    pet_id=pet_id,
                    outcome=PipelineOutcome.SKIPPED,
                    stage=PipelineStage.NEEDS_CAPTURE,
                    error="Pet has no record",
                )
            if status.has_jpeg and not force:
                return PetPipelineResult(
                    pet_id=pet_id,
                    outcome=PipelineOutcome.SKIPPED,
                    stage=PipelineStage.DONE,
                    error="JPEG already recorded",
                )
            if not candidate.source_url:
                return self._failed(
                    candidate, FailureReason.CAPTURE_FAILED, "Pet has no source URL", started
                )

            # NeedsCapture
            enter(PipelineStage.NEEDS_CAPTURE)
            try:
                await self.status_service.mark_screenshot_requested(pet_id)
            except StatusWriteError as e:
                logger.warning(
                    f"Could not record screenshot request: {e}", extra_context=context
                )

            # Capturing
            enter(PipelineStage.CAPTURING)
            capture = await self.retry.run(
                lambda: coordinator.capture(candidate.source_url, self.navigation_timeout_ms),
                description=f"Capture of {pet_id}",
                retry_on=(CaptureError,),
                context=context,
            )
            if not capture.success:
                logger.warning(
                    f"Capture failed, continuing with next pet: {capture.error}",
                    extra_context=context,
                    emoji=LogEmoji.FAILED,
                )
                return self._failed(
                    candidate,
                    self._capture_failure_reason(capture.error),
                    capture.error,
                    started,
                    capture_attempts=capture.attempts,
                )
            captured = capture.value

            # NeedsConversion / Converting
            enter(PipelineStage.NEEDS_CONVERSION)
            enter(PipelineStage.CONVERTING)
            try:
                converted = await self.converter.convert_async(captured.png_bytes)
            except ConversionError as e:
                logger.warning(f"Conversion failed: {e}", extra_context=context)
                return self._failed(
                    candidate,
                    FailureReason.CONVERSION_FAILED,
                    e,
                    started,
                    capture_strategy=captured.strategy,
                    capture_attempts=capture.attempts,
                )

            # Storing
            enter(PipelineStage.STORING)
            payloads = {
                ImageVariant.SCREENSHOT: captured.png_bytes,
                ImageVariant.ORIGINAL: converted.jpeg_bytes,
                ImageVariant.OPTIMIZED: converted.webp_bytes,
            }
            metadata = {
                "pet-id": pet_id,
                "pet-type": candidate.pet_type.value,
                "capture-strategy": captured.strategy.value,
                "captured-at": format_iso(utc_now()),
            }
            store_attempts = 0
            for variant in STORE_ORDER:
                key = image_key(candidate.pet_type, pet_id, variant)
                write = await self.retry.run(
                    lambda key=key, variant=variant: self.image_store.put(
                        key, payloads[variant], VARIANT_CONTENT_TYPES[variant], metadata
                    ),
                    description=f"Store write of {key}",
                    retry_on=(StoreWriteError,),
                    context={**context, "key": key},
                )
                store_attempts += write.attempts
                if not write.success:
                    return self._failed(
                        candidate,
                        FailureReason.STORE_WRITE_FAILED,
                        write.error,
                        started,
                        capture_strategy=captured.strategy,
                        capture_attempts=capture.attempts,
                        store_attempts=store_attempts,
                    )

            # Done. Status writes past this point are best effort; the
            # reconciler repairs a store-ahead-of-status pet.
            status_write_failed = False
            try:
                await self.status_service.mark_screenshot_completed(pet_id)
                await self.status_service.set_image_flags(pet_id, True, True)
            except StatusWriteError as e:
                status_write_failed = True
                logger.error(
                    "Images stored but status write failed; leaving for reconciliation",
                    exception=e,
                    extra_context=context,
                )

            enter(PipelineStage.DONE)
            result = PetPipelineResult(
                pet_id=pet_id,
                outcome=PipelineOutcome.DONE,
                stage=PipelineStage.DONE,
                capture_strategy=captured.strategy,
                capture_attempts=capture.attempts,
                store_attempts=store_attempts,
                jpeg_size=converted.jpeg_size,
                webp_size=converted.webp_size,
                status_write_failed=status_write_failed,
                duration_ms=int((time.monotonic() - started) * 1000),
            )
            logger.info(
                f"Pet done via {captured.strategy.value} capture "
                f"(jpeg {converted.jpeg_size}B, webp {converted.webp_size}B)",
                extra_context=context,
                emoji=LogEmoji.SUCCESS,
            )
            return result

        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Unexpected pipeline error", exception=e, extra_context=context)
            return self._failed(candidate, FailureReason.UNEXPECTED, e, started)

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    async def _worker(
        self,
        coordinator: Any,
        queue: "asyncio.Queue",
        results: Dict[int, PetPipelineResult],
        stages: Dict[str, PipelineStage],
        force: bool,
        on_result: Optional[ResultCallback],
    ) -> None:
        while True:
            try:
                index, candidate = queue.get_nowait()
            except asyncio.QueueEmpty:
                return

            result = await self.process_pet(coordinator, candidate, stages, force)
            results[index] = result

            if on_result is not None:
                try:
                    await on_result(result)
                except Exception as e:
                    logger.warning(f"Result callback failed: {e}")

            if not queue.empty() and self.inter_request_delay_seconds > 0:
                await self._sleep(self.inter_request_delay_seconds)

    async def run_batch(
        self,
        candidates: Sequence[PetCandidate],
        batch_id: Optional[str] = None,
        force: bool = False,
        on_result: Optional[ResultCallback] = None,
    ) -> BatchResult:
        """
        Process a batch of pets. Partial failure never raises.

        Returns:
            BatchResult with exactly one result per candidate, in input order

        Raises:
            CaptureSetupError: If the browser cannot be launched
        """
        started = time.monotonic()
        candidates = list(candidates)
        if not candidates:
            return BatchResult.from_results([], batch_id=batch_id, duration_ms=0)

        worker_count = min(self.concurrency, len(candidates))
        results: Dict[int, PetPipelineResult] = {}
        stages: Dict[str, PipelineStage] = {}
        timed_out = False

        logger.info(
            f"Starting batch {batch_id or '-'} with {len(candidates)} pets "
            f"({worker_count} workers)",
            emoji=LogEmoji.STARTUP,
        )

        async with self.coordinator_factory(worker_count) as coordinator:
            queue: asyncio.Queue = asyncio.Queue()
            for index, candidate in enumerate(candidates):
                queue.put_nowait((index, candidate))

            workers = [
                asyncio.create_task(
                    self._worker(coordinator, queue, results, stages, force, on_result)
                )
                for _ in range(worker_count)
            ]
            try:
                await asyncio.wait(workers, timeout=self.batch_timeout_seconds)
            finally:
                pending = [task for task in workers if not task.done()]
                for task in pending:
                    task.cancel()
                if pending:
                    await asyncio.gather(*pending, return_exceptions=True)

            if pending:
                timed_out = True
                logger.warning(
                    f"Batch {batch_id or '-'} hit its {self.batch_timeout_seconds}s "
                    f"timeout; abandoning {len(candidates) - len(results)} pets"
                )

        ordered: List[PetPipelineResult] = []
        for index, candidate in enumerate(candidates):
            result = results.get(index)
            if result is None:
                result = PetPipelineResult(
                    pet_id=candidate.pet_id,
                    outcome=PipelineOutcome.ABANDONED,
                    stage=stages.get(candidate.pet_id, PipelineStage.NEEDS_CAPTURE),
                    error="Batch timed out",
                )
            ordered.append(result)

        batch = BatchResult.from_results(
            ordered,
            batch_id=batch_id,
            timed_out=timed_out,
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        logger.info(
            f"Batch {batch_id or '-'} finished: {batch.success_count} done, "
            f"{batch.failed_count} failed, {batch.skipped_count} skipped, "
            f"{batch.abandoned_count} abandoned",
            emoji=LogEmoji.SUCCESS,
        )
        return batch

    async def run_sweep(
        self,
        limit: Optional[int] = None,
        pet_type: Optional[PetType] = None,
        on_result: Optional[ResultCallback] = None,
    ) -> BatchResult:
        """Process pets with no JPEG on record, newest first."""
        candidates = await self.status_service.get_pets_missing_images(
            limit or self.sweep_limit, pet_type
        )
        logger.info(f"Sweep found {len(candidates)} pets missing images")
        return await self.run_batch(
            candidates, batch_id=f"sweep-{int(time.time())}", on_result=on_result
        )

    async def retry_pending(
        self,
        limit: Optional[int] = None,
        on_result: Optional[ResultCallback] = None,
        requested_before: Optional[datetime] = None,
    ) -> BatchResult:
        """
        Re-run screenshot requests that never completed, oldest first.

        ``requested_before`` limits the run to requests stamped before that
        time, so requests made moments ago are not retried straight away.
        """
        candidates = await self.status_service.get_pending_screenshots(
            limit or self.sweep_limit, requested_before
        )
        logger.info(f"Found {len(candidates)} stalled screenshot requests")
        return await self.run_batch(
            candidates, batch_id=f"retry-{int(time.time())}", on_result=on_result
        )

    async def process_single(self, pet_id: str, force: bool = False) -> Optional[PetPipelineResult]:
        """On-demand run for one pet; None if the pet has no record."""
        candidate = await self.status_service.get_pet(pet_id)
        if candidate is None:
            return None
        batch = await self.run_batch([candidate], batch_id=f"single-{pet_id}", force=force)
        return batch.results[0]

# backend/pawsync/services/sync_job_service.py
"""
Sync Job Service - fire-and-forget pipeline invocations with a pollable
status record.

start_job() writes a pending job row and schedules the work on the event
loop, returning the id straight away. The job then moves
pending -> running -> completed | failed and never changes again.

Job types:
- image: capture imagery for pets missing it (in process, or through the
  workflow runner when one is configured)
- incremental: retry stalled screenshot requests, then a sampled reconcile
- full: exhaustive reconcile with auto-fix, then an image sweep
Every job ends by recomputing readiness.
"""

import asyncio
import uuid
from typing import List, Optional, Set

from ..constants import RECONCILE_ALL
from ..database.sync_job_operations import SyncJobOperations
from ..enums import LogEmoji, LoggerName, PipelineOutcome, SyncJobType
from ..exceptions import InvalidJobTransition
from ..models.pet_model import PetCandidate
from ..models.pipeline_models import PetPipelineResult
from ..models.sync_job_model import SyncJob, SyncJobCreate
from .consistency_reconciler import ConsistencyReconciler
from .logger import get_service_logger
from .pipeline_orchestrator import PipelineOrchestrator
from .sync_status_service import SyncStatusService
from .workflow_dispatcher import WorkflowDispatcher

logger = get_service_logger(LoggerName.SYNC_JOB_SERVICE, LogEmoji.JOB)


class _JobCounters:
    """Per-job tally reported as advisory progress."""

    def __init__(self, job_id: str, total: int, job_ops: SyncJobOperations):
        self.job_id = job_id
        self.total = total
        self.job_ops = job_ops
        self.processed = 0
        self.failed = 0

    async def record(self, result: PetPipelineResult) -> None:
        self.processed += 1
        if result.outcome == PipelineOutcome.FAILED:
            self.failed += 1
        progress = 100.0 * self.processed / self.total if self.total else 100.0
        await self.job_ops.update_progress(
            self.job_id, progress, self.processed, self.failed
        )


class SyncJobService:
    """Starts, runs and reports sync jobs."""

    def __init__(
        self,
        job_ops: SyncJobOperations,
        status_service: SyncStatusService,
        orchestrator: PipelineOrchestrator,
        reconciler: ConsistencyReconciler,
        dispatcher: Optional[WorkflowDispatcher] = None,
        default_batch_size: int = 50,
        reconcile_sample_size: int = 10,
    ):
        self.job_ops = job_ops
        self.status_service = status_service
        self.orchestrator = orchestrator
        self.reconciler = reconciler
        self.dispatcher = dispatcher
        self.default_batch_size = default_batch_size
        self.reconcile_sample_size = reconcile_sample_size
        self._tasks: Set[asyncio.Task] = set()

    async def start_job(self, request: SyncJobCreate) -> SyncJob:
        """Create the job record and schedule it. Returns immediately."""
        job = await self.job_ops.create_job(uuid.uuid4().hex, request)
        task = asyncio.create_task(
            self._run_in_background(job), name=f"sync-job-{job.id}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        logger.info(
            f"Started {job.job_type.value} sync job",
            extra_context={"job_id": job.id, "source": job.source},
        )
        return job

    async def get_job(self, job_id: str) -> Optional[SyncJob]:
        return await self.job_ops.get_job(job_id)

    async def get_recent_jobs(self, limit: int = 20) -> List[SyncJob]:
        return await self.job_ops.get_recent_jobs(limit)

    @property
    def active_job_count(self) -> int:
        return len(self._tasks)

    async def _mark_running(self, job: SyncJob) -> SyncJob:
        running = await self.job_ops.mark_running(job.id)
        if running is None:
            raise InvalidJobTransition(
                f"Job {job.id} cannot start from its current state",
                operation="mark_running",
            )
        return running

    async def _run_in_background(self, job: SyncJob) -> Optional[SyncJob]:
        """Task body for start_job. Nobody awaits it, so failures end here."""
        context = {"job_id": job.id}
        try:
            return await self.run_job(job)
        except InvalidJobTransition as e:
            logger.warning(f"Sync job not run: {e}", extra_context=context)
        except Exception as e:
            logger.error("Sync job crashed", exception=e, extra_context=context)
        return None

    async def run_job(self, job: SyncJob) -> SyncJob:
        """
        Execute a pending job to a terminal state.

        Raises:
            InvalidJobTransition: If the job is not pending
        """
        job = await self._mark_running(job)
        context = {"job_id": job.id, "job_type": job.job_type.value}

        try:
            counters = await self._execute(job)
            await self.status_service.compute_readiness()
        except asyncio.CancelledError:
            await self.job_ops.mark_failed(job.id, "Job cancelled")
            raise
        except Exception as e:
            logger.error("Sync job failed", exception=e, extra_context=context)
            failed = await self.job_ops.mark_failed(job.id, str(e))
            return failed or job

        completed = await self.job_ops.mark_completed(
            job.id, counters.processed, counters.failed
        )
        if completed is None:
            raise InvalidJobTransition(
                f"Job {job.id} left running state before completion",
                operation="mark_completed",
            )
        logger.info(
            f"Sync job completed: {counters.processed} processed, {counters.failed} failed",
            extra_context=context,
            emoji=LogEmoji.SUCCESS,
        )
        return completed

    async def _execute(self, job: SyncJob) -> _JobCounters:
        limit = job.batch_size or self.default_batch_size

        if job.job_type == SyncJobType.IMAGE:
            candidates = await self.status_service.get_pets_missing_images(
                limit, job.pet_type
            )
            return await self._capture(job, candidates)

        if job.job_type == SyncJobType.INCREMENTAL:
            candidates = await self.status_service.get_pending_screenshots(limit)
            if job.pet_type is not None:
                candidates = [c for c in candidates if c.pet_type == job.pet_type]
            counters = await self._capture(job, candidates)
            await self.reconciler.reconcile(
                self.reconcile_sample_size, auto_fix=True, pet_type=job.pet_type
            )
            return counters

        # Full audit first so the sweep sees corrected flags
        await self.reconciler.reconcile(RECONCILE_ALL, auto_fix=True, pet_type=job.pet_type)
        candidates = await self.status_service.get_pets_missing_images(limit, job.pet_type)
        return await self._capture(job, candidates)

    async def _capture(self, job: SyncJob, candidates: List[PetCandidate]) -> _JobCounters:
        counters = _JobCounters(job.id, len(candidates), self.job_ops)
        if not candidates:
            return counters

        if self.dispatcher is not None:
            result = await self.dispatcher.dispatch(candidates)
            counters.processed = result.pets_dispatched
            counters.failed = len(candidates) - result.pets_dispatched
            return counters

        await self.orchestrator.run_batch(
            candidates, batch_id=f"job-{job.id}", on_result=counters.record
        )
        return counters

    async def shutdown(self) -> None:
        """Cancel in-flight jobs; each is marked failed as it unwinds."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info(f"Cancelled {len(tasks)} running sync jobs", emoji=LogEmoji.SHUTDOWN)

# backend/pawsync/workers/pipeline_worker.py
"""
Pipeline Worker - periodic image sweep and consistency check.

Each cycle runs whichever tasks are due:
- sweep: pets missing images, then screenshot requests older than the stall
  threshold. Captured in process, or dispatched to the workflow runner when
  one is configured. Requests stamped by this sweep are never stalled yet, so
  no pet is sent twice in one cycle.
- reconcile: a sampled consistency check with auto-fix.
Readiness is recomputed after any cycle that did work. A failing task is
logged and retried on its next interval; it never stops the worker.
"""

import asyncio
import time
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, Optional

from ..constants import DEFAULT_PENDING_STALL_SECONDS
from ..database.exceptions import DatabaseOperationError
from ..enums import LoggerName
from ..exceptions import PawsyncError
from ..services.consistency_reconciler import ConsistencyReconciler
from ..services.pipeline_orchestrator import PipelineOrchestrator
from ..services.sync_status_service import SyncStatusService
from ..services.workflow_dispatcher import WorkflowDispatcher
from ..utils.time_utils import utc_now
from .base_worker import BaseWorker

POLL_INTERVAL_SECONDS = 30.0

TASK_ERRORS = (PawsyncError, DatabaseOperationError)


class PipelineWorker(BaseWorker):
    """Runs image sweeps and reconciliation on fixed intervals."""

    def __init__(
        self,
        orchestrator: PipelineOrchestrator,
        reconciler: ConsistencyReconciler,
        status_service: SyncStatusService,
        dispatcher: Optional[WorkflowDispatcher] = None,
        sweep_interval_seconds: float = 21600,
        reconcile_interval_seconds: float = 3600,
        sweep_limit: int = 50,
        reconcile_sample_size: int = 10,
        pending_stall_seconds: float = DEFAULT_PENDING_STALL_SECONDS,
        poll_interval_seconds: float = POLL_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        now: Callable[[], datetime] = utc_now,
    ):
        super().__init__("PipelineWorker", LoggerName.PIPELINE_WORKER)
        self.orchestrator = orchestrator
        self.reconciler = reconciler
        self.status_service = status_service
        self.dispatcher = dispatcher
        self.sweep_interval_seconds = sweep_interval_seconds
        self.reconcile_interval_seconds = reconcile_interval_seconds
        self.sweep_limit = sweep_limit
        self.reconcile_sample_size = reconcile_sample_size
        self.pending_stall_seconds = pending_stall_seconds
        self.poll_interval_seconds = poll_interval_seconds
        self._clock = clock
        self._sleep = sleep
        self._now = now
        self._last_sweep: Optional[float] = None
        self._last_reconcile: Optional[float] = None
        self.cycles_completed = 0

    @classmethod
    def from_services(cls, services, settings) -> "PipelineWorker":
        return cls(
            orchestrator=services.orchestrator,
            reconciler=services.reconciler,
            status_service=services.status_service,
            dispatcher=services.dispatcher,
            sweep_interval_seconds=settings.worker_sweep_interval_seconds,
            reconcile_interval_seconds=settings.worker_reconcile_interval_seconds,
            sweep_limit=settings.pipeline_sweep_limit,
            reconcile_sample_size=settings.reconcile_sample_size,
            pending_stall_seconds=settings.worker_pending_stall_seconds,
        )

    async def initialize(self) -> None:
        self.log_info(
            f"Sweep every {self.sweep_interval_seconds}s, reconcile every "
            f"{self.reconcile_interval_seconds}s, "
            f"capture {'via workflow dispatch' if self.dispatcher else 'in process'}"
        )

    async def cleanup(self) -> None:
        self.log_info(f"Stopped after {self.cycles_completed} cycles")

    def _is_due(self, last_run: Optional[float], interval: float) -> bool:
        return last_run is None or self._clock() - last_run >= interval

    def _stall_cutoff(self) -> datetime:
        return self._now() - timedelta(seconds=self.pending_stall_seconds)

    async def _sweep(self) -> None:
        # Taken before the sweep restamps anything
        cutoff = self._stall_cutoff()

        if self.dispatcher is not None:
            await self.dispatcher.dispatch_missing(self.sweep_limit)
            pending = await self.status_service.get_pending_screenshots(
                self.sweep_limit, requested_before=cutoff
            )
            if pending:
                await self.dispatcher.dispatch(pending)
            return

        await self.orchestrator.run_sweep(self.sweep_limit)
        await self.orchestrator.retry_pending(self.sweep_limit, requested_before=cutoff)

    async def _reconcile(self) -> None:
        await self.reconciler.reconcile(self.reconcile_sample_size, auto_fix=True)

    async def run_cycle(self) -> Dict[str, bool]:
        """
        Run every task that is due.

        Returns:
            Task name -> whether it ran without error, for tasks that ran
        """
        ran: Dict[str, bool] = {}

        if self._is_due(self._last_sweep, self.sweep_interval_seconds):
            self._last_sweep = self._clock()
            ran["sweep"] = await self._run_task("sweep", self._sweep)

        if self._is_due(self._last_reconcile, self.reconcile_interval_seconds):
            self._last_reconcile = self._clock()
            ran["reconcile"] = await self._run_task("reconcile", self._reconcile)

        if ran:
            await self._run_task("readiness", self.status_service.compute_readiness)
            self.cycles_completed += 1
        return ran

    async def _run_task(self, name: str, task: Callable[[], Awaitable[Any]]) -> bool:
        try:
            await task()
            return True
        except TASK_ERRORS as e:
            self.log_error(f"{name} failed; retrying next interval", e)
            return False

    async def run(self) -> None:
        """Main loop: run due tasks, then wait one poll interval."""
        self.log_info("Starting main loop")
        while self.running:
            try:
                await self.run_cycle()
            except asyncio.CancelledError:
                self.log_info("Main loop cancelled")
                raise
            except Exception as e:
                self.log_error("Unexpected error in worker loop", e)

            if self.running:
                await self._sleep(self.poll_interval_seconds)

    def get_status(self) -> Dict[str, Any]:
        status = super().get_status()
        status["cycles_completed"] = self.cycles_completed
        status["dispatch_enabled"] = self.dispatcher is not None
        return status

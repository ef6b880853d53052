# backend/pawsync/services/service_container.py
"""
Service wiring shared by the API lifespan, the scheduled worker and the CLI.

Every consumer builds the same object graph once per process:

    store -> status service -> converter -> orchestrator
                            -> reconciler
                            -> dispatcher (only when configured)
                            -> sync jobs, image serving
"""

from dataclasses import dataclass
from functools import partial
from typing import Optional

from ..config import Settings
from ..database.core import AsyncDatabase
from ..database.sync_job_operations import SyncJobOperations
from ..enums import LogEmoji, LoggerName
from ..storage import create_image_store
from ..storage.base import ImageStore
from .capture_coordinator import open_capture_coordinator
from .consistency_reconciler import ConsistencyReconciler
from .image_converter import ImageConverter
from .image_serving_service import ImageServingService
from .logger import get_service_logger
from .pipeline_orchestrator import PipelineOrchestrator
from .sync_job_service import SyncJobService
from .sync_status_service import SyncStatusService
from .workflow_dispatcher import WorkflowDispatcher

logger = get_service_logger(LoggerName.SYSTEM, LogEmoji.STARTUP)


@dataclass
class ServiceContainer:
    """The wired service graph for one process."""

    db: AsyncDatabase
    image_store: ImageStore
    status_service: SyncStatusService
    converter: ImageConverter
    orchestrator: PipelineOrchestrator
    reconciler: ConsistencyReconciler
    sync_job_service: SyncJobService
    image_serving_service: ImageServingService
    dispatcher: Optional[WorkflowDispatcher] = None

    async def close(self) -> None:
        """Cancel running jobs and release the object store client."""
        await self.sync_job_service.shutdown()
        await self.image_store.close()


def build_services(
    settings: Settings,
    db: AsyncDatabase,
    image_store: Optional[ImageStore] = None,
) -> ServiceContainer:
    """
    Build every service from settings. The database must be initialized
    before any service is used, not before this is called.
    """
    store = image_store or create_image_store(settings)
    status_service = SyncStatusService.from_settings(db, settings)
    converter = ImageConverter.from_settings(settings)

    orchestrator = PipelineOrchestrator.from_settings(
        settings,
        image_store=store,
        status_service=status_service,
        coordinator_factory=partial(open_capture_coordinator, settings),
    )
    reconciler = ConsistencyReconciler(
        store, status_service, settings.reconcile_sampling_strategy
    )
    dispatcher = WorkflowDispatcher.from_settings(settings, status_service)

    sync_job_service = SyncJobService(
        SyncJobOperations(db),
        status_service,
        orchestrator,
        reconciler,
        dispatcher=dispatcher,
        default_batch_size=settings.pipeline_sweep_limit,
        reconcile_sample_size=settings.reconcile_sample_size,
    )
    image_serving_service = ImageServingService(
        store,
        status_service,
        converter,
        retry_after_seconds=settings.serve_retry_after_seconds,
    )

    logger.info(
        f"Services wired: store={settings.storage_backend.value}, "
        f"dispatch={'enabled' if dispatcher else 'disabled'}"
    )
    return ServiceContainer(
        db=db,
        image_store=store,
        status_service=status_service,
        converter=converter,
        orchestrator=orchestrator,
        reconciler=reconciler,
        sync_job_service=sync_job_service,
        image_serving_service=image_serving_service,
        dispatcher=dispatcher,
    )

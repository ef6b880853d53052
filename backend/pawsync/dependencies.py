# backend/pawsync/dependencies.py
"""
FastAPI dependency injection.

Services are built once in the application lifespan and stored on
``app.state.services``; these providers hand them to endpoints through the
``Annotated`` aliases below.
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from .database.core import AsyncDatabase
from .services.consistency_reconciler import ConsistencyReconciler
from .services.image_serving_service import ImageServingService
from .services.service_container import ServiceContainer
from .services.sync_job_service import SyncJobService
from .services.sync_status_service import SyncStatusService


def get_services(request: Request) -> ServiceContainer:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Service is starting up")
    return services


ServicesDep = Annotated[ServiceContainer, Depends(get_services)]


def get_async_database(services: ServicesDep) -> AsyncDatabase:
    return services.db


def get_sync_status_service(services: ServicesDep) -> SyncStatusService:
    return services.status_service


def get_sync_job_service(services: ServicesDep) -> SyncJobService:
    return services.sync_job_service


def get_reconciler(services: ServicesDep) -> ConsistencyReconciler:
    return services.reconciler


def get_image_serving_service(services: ServicesDep) -> ImageServingService:
    return services.image_serving_service


AsyncDatabaseDep = Annotated[AsyncDatabase, Depends(get_async_database)]
SyncStatusServiceDep = Annotated[SyncStatusService, Depends(get_sync_status_service)]
SyncJobServiceDep = Annotated[SyncJobService, Depends(get_sync_job_service)]
ReconcilerDep = Annotated[ConsistencyReconciler, Depends(get_reconciler)]
ImageServingServiceDep = Annotated[
    ImageServingService, Depends(get_image_serving_service)
]

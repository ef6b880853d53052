# backend/pawsync/routers/sync_routers.py
"""
Sync administration HTTP endpoints.

Role: Admin surface for the image pipeline
Responsibilities: Starting and polling sync jobs, readiness snapshots,
                 integrity checks, pipeline work queues
Interactions: SyncJobService, SyncStatusService and ConsistencyReconciler,
             injected from the application lifespan
"""
# NOTE: THIS FILE SHOULD NOT CONTAIN ANY BUSINESS LOGIC.

from typing import List, Literal, Optional, Union

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, Field

from ..constants import DEFAULT_RECONCILE_SAMPLE_SIZE, DEFAULT_SWEEP_LIMIT
from ..dependencies import ReconcilerDep, SyncJobServiceDep, SyncStatusServiceDep
from ..enums import PetType
from ..models.integrity_model import IntegrityReport, OrphanedImage, PetIntegrityCheck
from ..models.pet_model import PetCandidate, ReadinessSnapshot
from ..models.sync_job_model import SyncJob, SyncJobCreate, SyncJobStarted
from ..utils.router_helpers import handle_exceptions, validate_entity_exists

router = APIRouter(prefix="/sync", tags=["sync"])


# ====================================================================
# REQUEST MODELS
# ====================================================================


class IntegrityCheckRequest(BaseModel):
    """Request model for a reconcile pass"""

    sample_size: Union[int, Literal["all"]] = Field(
        DEFAULT_RECONCILE_SAMPLE_SIZE,
        description="Number of pets to check, or 'all' for a full audit",
    )
    auto_fix: bool = Field(False, description="Rewrite flags that disagree with the store")
    pet_type: Optional[PetType] = None


# ====================================================================
# SYNC JOBS
# ====================================================================


@router.post(
    "/jobs",
    response_model=SyncJobStarted,
    status_code=status.HTTP_202_ACCEPTED,
)
@handle_exceptions("start sync job")
async def start_sync_job(request: SyncJobCreate, sync_job_service: SyncJobServiceDep):
    """Start a sync job in the background and return its id for polling."""
    job = await sync_job_service.start_job(request)
    return SyncJobStarted(job_id=job.id, status=job.status)


@router.get("/jobs", response_model=List[SyncJob])
@handle_exceptions("fetch sync job history")
async def get_sync_jobs(
    sync_job_service: SyncJobServiceDep,
    limit: int = Query(20, ge=1, le=100),
):
    """Recent sync jobs, newest first."""
    return await sync_job_service.get_recent_jobs(limit)


@router.get("/jobs/{job_id}", response_model=SyncJob)
@handle_exceptions("fetch sync job")
async def get_sync_job(job_id: str, sync_job_service: SyncJobServiceDep):
    return await validate_entity_exists(sync_job_service.get_job, job_id, "sync job")


# ====================================================================
# READINESS
# ====================================================================


@router.get("/readiness", response_model=ReadinessSnapshot)
@handle_exceptions("fetch readiness")
async def get_readiness(status_service: SyncStatusServiceDep):
    """Latest readiness snapshot; computed on first request if none is stored."""
    snapshot = await status_service.get_readiness()
    if snapshot is None:
        snapshot = await status_service.compute_readiness()
    return snapshot


@router.post("/readiness/recompute", response_model=ReadinessSnapshot)
@handle_exceptions("recompute readiness")
async def recompute_readiness(status_service: SyncStatusServiceDep):
    return await status_service.compute_readiness()


# ====================================================================
# INTEGRITY
# ====================================================================


@router.post("/integrity", response_model=IntegrityReport)
@handle_exceptions("run integrity check")
async def run_integrity_check(request: IntegrityCheckRequest, reconciler: ReconcilerDep):
    """Compare recorded image flags with the object store, optionally fixing them."""
    try:
        return await reconciler.reconcile(
            request.sample_size, auto_fix=request.auto_fix, pet_type=request.pet_type
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


# Declared before /integrity/{pet_id} so "orphans" is not taken for a pet id
@router.get("/integrity/orphans", response_model=List[OrphanedImage])
@handle_exceptions("find orphaned images")
async def get_orphaned_images(
    reconciler: ReconcilerDep,
    pet_type: Optional[PetType] = Query(None),
):
    return await reconciler.find_orphaned_images(pet_type)


@router.get("/integrity/{pet_id}", response_model=PetIntegrityCheck)
@handle_exceptions("check pet integrity")
async def check_pet_integrity(pet_id: str, reconciler: ReconcilerDep):
    return await validate_entity_exists(reconciler.check_pet, pet_id, "pet")


# ====================================================================
# WORK QUEUES
# ====================================================================


@router.get("/missing-images", response_model=List[PetCandidate])
@handle_exceptions("fetch pets missing images")
async def get_missing_images(
    status_service: SyncStatusServiceDep,
    limit: int = Query(DEFAULT_SWEEP_LIMIT, ge=1, le=1000),
    pet_type: Optional[PetType] = Query(None),
):
    """Pets with no JPEG on record, newest first."""
    return await status_service.get_pets_missing_images(limit, pet_type)


@router.get("/pending-screenshots", response_model=List[PetCandidate])
@handle_exceptions("fetch pending screenshots")
async def get_pending_screenshots(
    status_service: SyncStatusServiceDep,
    limit: int = Query(DEFAULT_SWEEP_LIMIT, ge=1, le=1000),
):
    """Screenshot requests that never completed, oldest first."""
    return await status_service.get_pending_screenshots(limit)

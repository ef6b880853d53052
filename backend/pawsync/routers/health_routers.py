# backend/pawsync/routers/health_routers.py
"""
Health check endpoint for load balancers and monitoring.
"""

from typing import Any, Dict

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from .. import __version__
from ..dependencies import AsyncDatabaseDep, SyncJobServiceDep
from ..utils.router_helpers import handle_exceptions
from ..utils.time_utils import format_iso, utc_now

router = APIRouter(tags=["health"])


@router.get("/health", response_model=Dict[str, Any])
@handle_exceptions("basic health check")
async def health_check(db: AsyncDatabaseDep, sync_job_service: SyncJobServiceDep):
    """Database connectivity plus the number of in-flight sync jobs. 503 when degraded."""
    database = await db.health_check()
    healthy = database.get("status") == "healthy"

    body = {
        "status": "healthy" if healthy else "degraded",
        "version": __version__,
        "timestamp": format_iso(utc_now()),
        "database": database,
        "active_sync_jobs": sync_job_service.active_job_count,
    }
    return JSONResponse(status_code=200 if healthy else 503, content=body)

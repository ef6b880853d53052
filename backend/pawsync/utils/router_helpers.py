# backend/pawsync/utils/router_helpers.py
"""
Router Helper Functions

Decorators and helpers shared by the FastAPI routers so every endpoint maps
failures to HTTP responses the same way.
"""

from functools import wraps
from typing import Awaitable, Callable, Optional, TypeVar

from fastapi import HTTPException

from ..database.exceptions import DatabaseOperationError
from ..enums import LoggerName
from ..exceptions import InvalidJobTransition, PawsyncError
from ..services.logger import get_service_logger

T = TypeVar("T")
logger = get_service_logger(LoggerName.API)


def handle_exceptions(operation_name: str):
    """
    Decorator for standardized exception handling in router endpoints.

    HTTPException passes through untouched, an invalid job transition becomes
    409, and every other failure becomes a generic 500 that names the
    operation but never the internal error.

    Usage:
        @handle_exceptions("start sync job")
        async def start_job(...):
            ...
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except HTTPException:
                raise
            except InvalidJobTransition as e:
                logger.warning(f"Rejected {operation_name}: {e}")
                raise HTTPException(status_code=409, detail=str(e))
            except (PawsyncError, DatabaseOperationError) as e:
                logger.error(f"Error {operation_name}", exception=e)
                raise HTTPException(
                    status_code=500, detail=f"Failed to {operation_name}"
                )
            except Exception as e:
                logger.error(f"Unexpected error {operation_name}", exception=e)
                raise HTTPException(
                    status_code=500, detail=f"Failed to {operation_name}"
                )

        return wrapper

    return decorator


async def validate_entity_exists(
    lookup: Callable[..., Awaitable[Optional[T]]],
    entity_id: str,
    entity_name: str = "entity",
) -> T:
    """
    Fetch an entity or raise 404.

    Usage:
        job = await validate_entity_exists(
            sync_job_service.get_job, job_id, "sync job"
        )
    """
    entity = await lookup(entity_id)
    if entity is None:
        raise HTTPException(
            status_code=404, detail=f"{entity_name.capitalize()} not found"
        )
    return entity

"""
Database Operation Exceptions

Database operations raise these (no logging) and the service layer decides
how to log and whether to re-raise.

    try:
        await cur.execute(query, params)
        return results
    except (psycopg.Error, KeyError, ValueError) as e:
        raise PetStatusOperationError(
            "Failed to retrieve pet status", operation="get_status"
        ) from e
"""

from typing import Any, Dict, Optional


class DatabaseOperationError(Exception):
    """Base exception for all database operation failures."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.operation = operation
        self.details = details or {}

    def __str__(self):
        if self.operation:
            return f"{self.operation}: {super().__str__()}"
        return super().__str__()


class PetStatusOperationError(DatabaseOperationError):
    """Pet and pet image status database operation errors."""

    pass


class ReadinessOperationError(DatabaseOperationError):
    """Data readiness snapshot database operation errors."""

    pass


class SyncJobOperationError(DatabaseOperationError):
    """Sync job database operation errors."""

    pass


class SchemaOperationError(DatabaseOperationError):
    """Schema initialization errors."""

    pass

# backend/pawsync/database/sync_job_operations.py
"""
Sync Job Operations - Database layer for sync job records.

Status transitions are conditional updates: each UPDATE names the status it
expects to move from, so a job can never move backwards or leave a terminal
state. A transition that matches no row returns None.
"""

from typing import List, Optional

import psycopg

from ..enums import SyncJobStatus
from ..models.sync_job_model import SyncJob, SyncJobCreate
from ..utils.time_utils import utc_now
from .core import AsyncDatabase
from .exceptions import SyncJobOperationError


class SyncJobQueryBuilder:
    """Centralized query builder for sync job operations."""

    @staticmethod
    def get_base_select_fields():
        return """
            id, job_type, status, source, pet_type, batch_size, progress,
            processed_count, failed_count, error, created_at, started_at,
            completed_at
        """

    @staticmethod
    def build_insert_query():
        fields = SyncJobQueryBuilder.get_base_select_fields()
        return f"""
            INSERT INTO sync_jobs
                (id, job_type, status, source, pet_type, batch_size, created_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            RETURNING {fields}
        """

    @staticmethod
    def build_transition_query(set_clause: str):
        fields = SyncJobQueryBuilder.get_base_select_fields()
        return f"""
            UPDATE sync_jobs
            SET {set_clause}
            WHERE id = %s AND status = ANY(%s)
            RETURNING {fields}
        """


class SyncJobOperations:
    """Async database operations for sync jobs."""

    def __init__(self, db: AsyncDatabase) -> None:
        self.db = db

    async def _transition(
        self,
        job_id: str,
        set_clause: str,
        params: tuple,
        from_statuses: List[SyncJobStatus],
        operation: str,
    ) -> Optional[SyncJob]:
        try:
            query = SyncJobQueryBuilder.build_transition_query(set_clause)
            async with self.db.get_connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        query,
                        params + (job_id, [status.value for status in from_statuses]),
                    )
                    row = await cur.fetchone()
                    return SyncJob(**dict(row)) if row else None

        except (psycopg.Error, KeyError, ValueError) as e:
            raise SyncJobOperationError(
                f"Failed to update sync job {job_id}: {e}", operation=operation
            ) from e

    async def create_job(self, job_id: str, job_data: SyncJobCreate) -> SyncJob:
        """Insert a new job in pending state."""
        try:
            async with self.db.get_connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        SyncJobQueryBuilder.build_insert_query(),
                        (
                            job_id,
                            job_data.job_type.value,
                            SyncJobStatus.PENDING.value,
                            job_data.source,
                            job_data.pet_type.value if job_data.pet_type else None,
                            job_data.batch_size,
                            utc_now(),
                        ),
                    )
                    row = await cur.fetchone()
                    if not row:
                        raise ValueError("INSERT returned no row")
                    return SyncJob(**dict(row))

        except (psycopg.Error, KeyError, ValueError) as e:
            raise SyncJobOperationError(
                f"Failed to create sync job: {e}", operation="create_job"
            ) from e

    async def mark_running(self, job_id: str) -> Optional[SyncJob]:
        return await self._transition(
            job_id,
            "status = %s, started_at = %s",
            (SyncJobStatus.RUNNING.value, utc_now()),
            [SyncJobStatus.PENDING],
            "mark_running",
        )

    async def update_progress(
        self, job_id: str, progress: float, processed_count: int, failed_count: int
    ) -> Optional[SyncJob]:
        """Advisory progress; only applies while the job is running."""
        return await self._transition(
            job_id,
            "progress = GREATEST(progress, %s), processed_count = %s, failed_count = %s",
            (min(100.0, max(0.0, progress)), processed_count, failed_count),
            [SyncJobStatus.RUNNING],
            "update_progress",
        )

    async def mark_completed(
        self, job_id: str, processed_count: int, failed_count: int
    ) -> Optional[SyncJob]:
        return await self._transition(
            job_id,
            "status = %s, progress = 100, processed_count = %s, failed_count = %s, "
            "completed_at = %s",
            (SyncJobStatus.COMPLETED.value, processed_count, failed_count, utc_now()),
            [SyncJobStatus.RUNNING],
            "mark_completed",
        )

    async def mark_failed(self, job_id: str, error: str) -> Optional[SyncJob]:
        return await self._transition(
            job_id,
            "status = %s, error = %s, completed_at = %s",
            (SyncJobStatus.FAILED.value, error, utc_now()),
            [SyncJobStatus.PENDING, SyncJobStatus.RUNNING],
            "mark_failed",
        )

    async def get_job(self, job_id: str) -> Optional[SyncJob]:
        try:
            fields = SyncJobQueryBuilder.get_base_select_fields()
            async with self.db.get_connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        f"SELECT {fields} FROM sync_jobs WHERE id = %s", (job_id,)
                    )
                    row = await cur.fetchone()
                    return SyncJob(**dict(row)) if row else None

        except (psycopg.Error, KeyError, ValueError) as e:
            raise SyncJobOperationError(
                f"Failed to get sync job {job_id}: {e}", operation="get_job"
            ) from e

    async def get_recent_jobs(self, limit: int = 20) -> List[SyncJob]:
        """Job history, newest first."""
        try:
            fields = SyncJobQueryBuilder.get_base_select_fields()
            async with self.db.get_connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        f"SELECT {fields} FROM sync_jobs ORDER BY created_at DESC LIMIT %s",
                        (limit,),
                    )
                    rows = await cur.fetchall()
                    return [SyncJob(**dict(row)) for row in rows]

        except (psycopg.Error, KeyError, ValueError) as e:
            raise SyncJobOperationError(
                f"Failed to get recent sync jobs: {e}", operation="get_recent_jobs"
            ) from e

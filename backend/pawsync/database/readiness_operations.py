# backend/pawsync/database/readiness_operations.py
"""
Readiness Operations - aggregate counts and the singleton readiness row.
"""

from typing import Optional

import psycopg

from ..constants import READINESS_ROW_ID
from ..models.pet_model import ReadinessCounts, ReadinessSnapshot
from .core import AsyncDatabase
from .exceptions import ReadinessOperationError


class ReadinessQueryBuilder:
    """Centralized query builder for readiness operations."""

    @staticmethod
    def build_counts_query():
        return """
            SELECT
                COUNT(*) AS total_pets,
                COUNT(*) FILTER (WHERE p.type = 'dog') AS total_dogs,
                COUNT(*) FILTER (WHERE p.type = 'cat') AS total_cats,
                COUNT(*) FILTER (WHERE s.has_jpeg) AS pets_with_jpeg,
                COUNT(*) FILTER (WHERE s.has_webp) AS pets_with_webp
            FROM pets p
            LEFT JOIN pet_image_status s ON s.pet_id = p.id
        """

    @staticmethod
    def get_snapshot_fields():
        return """
            total_pets, total_dogs, total_cats, pets_with_jpeg, pets_with_webp,
            image_coverage, data_completeness, is_ready, message, computed_at
        """

    @staticmethod
    def build_upsert_query():
        fields = ReadinessQueryBuilder.get_snapshot_fields()
        return f"""
            INSERT INTO data_readiness (id, {fields})
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (id) DO UPDATE SET
                total_pets = EXCLUDED.total_pets,
                total_dogs = EXCLUDED.total_dogs,
                total_cats = EXCLUDED.total_cats,
                pets_with_jpeg = EXCLUDED.pets_with_jpeg,
                pets_with_webp = EXCLUDED.pets_with_webp,
                image_coverage = EXCLUDED.image_coverage,
                data_completeness = EXCLUDED.data_completeness,
                is_ready = EXCLUDED.is_ready,
                message = EXCLUDED.message,
                computed_at = EXCLUDED.computed_at
            RETURNING {fields}
        """


class ReadinessOperations:
    """Async database operations for the readiness snapshot."""

    def __init__(self, db: AsyncDatabase) -> None:
        self.db = db

    async def get_counts(self) -> ReadinessCounts:
        """Full recount over every pet record."""
        try:
            async with self.db.get_connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(ReadinessQueryBuilder.build_counts_query())
                    row = await cur.fetchone()
                    return ReadinessCounts(**dict(row)) if row else ReadinessCounts()

        except (psycopg.Error, KeyError, ValueError) as e:
            raise ReadinessOperationError(
                f"Failed to count pets: {e}", operation="get_counts"
            ) from e

    async def save_snapshot(self, snapshot: ReadinessSnapshot) -> ReadinessSnapshot:
        try:
            async with self.db.get_connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        ReadinessQueryBuilder.build_upsert_query(),
                        (
                            READINESS_ROW_ID,
                            snapshot.total_pets,
                            snapshot.total_dogs,
                            snapshot.total_cats,
                            snapshot.pets_with_jpeg,
                            snapshot.pets_with_webp,
                            snapshot.image_coverage,
                            snapshot.data_completeness,
                            snapshot.is_ready,
                            snapshot.message,
                            snapshot.computed_at,
                        ),
                    )
                    row = await cur.fetchone()
                    return ReadinessSnapshot(**dict(row)) if row else snapshot

        except (psycopg.Error, KeyError, ValueError) as e:
            raise ReadinessOperationError(
                f"Failed to save readiness snapshot: {e}", operation="save_snapshot"
            ) from e

    async def get_snapshot(self) -> Optional[ReadinessSnapshot]:
        """Last persisted snapshot, or None if readiness was never computed."""
        try:
            fields = ReadinessQueryBuilder.get_snapshot_fields()
            async with self.db.get_connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        f"SELECT {fields} FROM data_readiness WHERE id = %s",
                        (READINESS_ROW_ID,),
                    )
                    row = await cur.fetchone()
                    return ReadinessSnapshot(**dict(row)) if row else None

        except (psycopg.Error, KeyError, ValueError) as e:
            raise ReadinessOperationError(
                f"Failed to get readiness snapshot: {e}", operation="get_snapshot"
            ) from e

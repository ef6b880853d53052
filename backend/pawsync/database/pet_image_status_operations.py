# backend/pawsync/database/pet_image_status_operations.py
"""
Pet Image Status Operations - Database layer for per-pet image availability.

Responsibilities:
- Point lookups of pets and their image status (absent status row reads as
  all-false defaults)
- Flag and timestamp upserts keyed by pet id
- Work-selection scans: pets missing imagery, stalled screenshot requests
- Sampling for consistency checks
"""

from datetime import datetime
from typing import List, Optional, Sequence, Set

import psycopg

from ..enums import PetType, SamplingStrategy
from ..models.pet_model import PetCandidate, PetImageStatus
from ..utils.time_utils import utc_now
from .core import AsyncDatabase
from .exceptions import PetStatusOperationError


class PetStatusQueryBuilder:
    """Centralized query builder for pet image status operations."""

    @staticmethod
    def get_status_select_fields():
        """Status fields with defaults for pets that have no status row yet."""
        return """
            p.id AS pet_id,
            p.type AS pet_type,
            COALESCE(s.has_jpeg, FALSE) AS has_jpeg,
            COALESCE(s.has_webp, FALSE) AS has_webp,
            s.image_checked_at,
            s.screenshot_requested_at,
            s.screenshot_completed_at
        """

    @staticmethod
    def get_candidate_select_fields():
        return "p.id AS pet_id, p.type AS pet_type, p.source_url, p.name"

    @staticmethod
    def build_status_query():
        fields = PetStatusQueryBuilder.get_status_select_fields()
        return f"""
            SELECT {fields}
            FROM pets p
            LEFT JOIN pet_image_status s ON s.pet_id = p.id
            WHERE p.id = %s
        """

    @staticmethod
    def build_missing_images_query(filter_type: bool):
        fields = PetStatusQueryBuilder.get_candidate_select_fields()
        type_clause = "AND p.type = %s" if filter_type else ""
        return f"""
            SELECT {fields}
            FROM pets p
            LEFT JOIN pet_image_status s ON s.pet_id = p.id
            WHERE (s.has_jpeg IS NULL OR s.has_jpeg = FALSE)
              AND p.source_url IS NOT NULL
              {type_clause}
            ORDER BY p.created_at DESC, p.id
            LIMIT %s
        """

    @staticmethod
    def build_pending_screenshots_query(with_cutoff: bool = False):
        fields = PetStatusQueryBuilder.get_candidate_select_fields()
        cutoff_clause = "AND s.screenshot_requested_at < %s" if with_cutoff else ""
        # A request whose JPEG is already on record has nothing left to do
        return f"""
            SELECT {fields}
            FROM pet_image_status s
            JOIN pets p ON p.id = s.pet_id
            WHERE s.screenshot_requested_at IS NOT NULL
              AND s.screenshot_completed_at IS NULL
              AND s.has_jpeg = FALSE
              {cutoff_clause}
            ORDER BY s.screenshot_requested_at ASC, p.id
            LIMIT %s
        """

    @staticmethod
    def build_sample_query(
        strategy: SamplingStrategy, filter_type: bool, limited: bool
    ):
        fields = PetStatusQueryBuilder.get_status_select_fields()
        type_clause = "WHERE p.type = %s" if filter_type else ""
        if strategy == SamplingStrategy.RANDOM:
            order_clause = "ORDER BY RANDOM()"
        else:
            order_clause = "ORDER BY s.image_checked_at ASC NULLS FIRST, p.id"
        limit_clause = "LIMIT %s" if limited else ""
        return f"""
            SELECT {fields}
            FROM pets p
            LEFT JOIN pet_image_status s ON s.pet_id = p.id
            {type_clause}
            {order_clause}
            {limit_clause}
        """

    @staticmethod
    def build_set_flags_query():
        # Clearing has_jpeg also clears the completion stamp so that a
        # completed capture always implies a JPEG on record.
        return """
            INSERT INTO pet_image_status
                (pet_id, pet_type, has_jpeg, has_webp, image_checked_at, updated_at)
            SELECT p.id, p.type, %s, %s, %s, %s
            FROM pets p
            WHERE p.id = %s
            ON CONFLICT (pet_id) DO UPDATE SET
                has_jpeg = EXCLUDED.has_jpeg,
                has_webp = EXCLUDED.has_webp,
                image_checked_at = EXCLUDED.image_checked_at,
                screenshot_completed_at = CASE
                    WHEN EXCLUDED.has_jpeg THEN pet_image_status.screenshot_completed_at
                    ELSE NULL
                END,
                updated_at = EXCLUDED.updated_at
        """

    @staticmethod
    def build_mark_requested_query():
        return """
            INSERT INTO pet_image_status
                (pet_id, pet_type, screenshot_requested_at, updated_at)
            SELECT p.id, p.type, %s, %s
            FROM pets p
            WHERE p.id = %s
            ON CONFLICT (pet_id) DO UPDATE SET
                screenshot_requested_at = EXCLUDED.screenshot_requested_at,
                screenshot_completed_at = NULL,
                updated_at = EXCLUDED.updated_at
        """

    @staticmethod
    def build_mark_completed_query():
        return """
            INSERT INTO pet_image_status
                (pet_id, pet_type, has_jpeg, screenshot_completed_at, updated_at)
            SELECT p.id, p.type, TRUE, %s, %s
            FROM pets p
            WHERE p.id = %s
            ON CONFLICT (pet_id) DO UPDATE SET
                has_jpeg = TRUE,
                screenshot_completed_at = EXCLUDED.screenshot_completed_at,
                updated_at = EXCLUDED.updated_at
        """


class PetImageStatusOperations:
    """
    Async database operations for pets and their image status.

    Writes are single-row upserts keyed by pet id, so concurrent pipelines for
    different pets never contend.
    """

    def __init__(self, db: AsyncDatabase) -> None:
        """Initialize with async database instance."""
        self.db = db

    async def get_pet(self, pet_id: str) -> Optional[PetCandidate]:
        """
        Get a pet record.

        Args:
            pet_id: Pet id

        Returns:
            PetCandidate, or None when the pet has no record
        """
        try:
            fields = PetStatusQueryBuilder.get_candidate_select_fields()
            async with self.db.get_connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        f"SELECT {fields} FROM pets p WHERE p.id = %s", (pet_id,)
                    )
                    row = await cur.fetchone()
                    return PetCandidate(**dict(row)) if row else None

        except (psycopg.Error, KeyError, ValueError) as e:
            raise PetStatusOperationError(
                f"Failed to get pet {pet_id}: {e}", operation="get_pet"
            ) from e

    async def get_status(self, pet_id: str) -> Optional[PetImageStatus]:
        """
        Get image status for a pet.

        Returns:
            PetImageStatus with all-false defaults when no status row exists,
            or None when the pet itself has no record
        """
        try:
            query = PetStatusQueryBuilder.build_status_query()
            async with self.db.get_connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(query, (pet_id,))
                    row = await cur.fetchone()
                    return PetImageStatus(**dict(row)) if row else None

        except (psycopg.Error, KeyError, ValueError) as e:
            raise PetStatusOperationError(
                f"Failed to get image status for {pet_id}: {e}",
                operation="get_status",
            ) from e

    async def set_image_flags(self, pet_id: str, has_jpeg: bool, has_webp: bool) -> bool:
        """
        Record which variants exist and stamp image_checked_at.

        Returns:
            True if a row was written, False when the pet has no record
        """
        try:
            now = utc_now()
            query = PetStatusQueryBuilder.build_set_flags_query()
            async with self.db.get_connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(query, (has_jpeg, has_webp, now, now, pet_id))
                    return cur.rowcount > 0

        except (psycopg.Error, KeyError, ValueError) as e:
            raise PetStatusOperationError(
                f"Failed to set image flags for {pet_id}: {e}",
                operation="set_image_flags",
            ) from e

    async def mark_screenshot_requested(self, pet_id: str) -> bool:
        try:
            now = utc_now()
            query = PetStatusQueryBuilder.build_mark_requested_query()
            async with self.db.get_connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(query, (now, now, pet_id))
                    return cur.rowcount > 0

        except (psycopg.Error, KeyError, ValueError) as e:
            raise PetStatusOperationError(
                f"Failed to mark screenshot requested for {pet_id}: {e}",
                operation="mark_screenshot_requested",
            ) from e

    async def mark_screenshots_requested(self, pet_ids: Sequence[str]) -> int:
        """Stamp screenshot_requested_at for several pets in one transaction."""
        if not pet_ids:
            return 0
        try:
            now = utc_now()
            query = PetStatusQueryBuilder.build_mark_requested_query()
            async with self.db.get_connection() as conn:
                async with conn.cursor() as cur:
                    await cur.executemany(
                        query, [(now, now, pet_id) for pet_id in pet_ids]
                    )
                    return len(pet_ids)

        except (psycopg.Error, KeyError, ValueError) as e:
            raise PetStatusOperationError(
                f"Failed to mark screenshots requested: {e}",
                operation="mark_screenshots_requested",
            ) from e

    async def mark_screenshot_completed(self, pet_id: str) -> bool:
        """Stamp screenshot_completed_at; a completed capture always sets has_jpeg."""
        try:
            now = utc_now()
            query = PetStatusQueryBuilder.build_mark_completed_query()
            async with self.db.get_connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(query, (now, now, pet_id))
                    return cur.rowcount > 0

        except (psycopg.Error, KeyError, ValueError) as e:
            raise PetStatusOperationError(
                f"Failed to mark screenshot completed for {pet_id}: {e}",
                operation="mark_screenshot_completed",
            ) from e

    async def get_pets_missing_images(
        self, limit: int, pet_type: Optional[PetType] = None
    ) -> List[PetCandidate]:
        """
        Pets without a JPEG on record, most recently created first.

        Pets without a source URL cannot be captured and are left out.
        """
        try:
            query = PetStatusQueryBuilder.build_missing_images_query(pet_type is not None)
            params = (PetType(pet_type).value, limit) if pet_type else (limit,)
            async with self.db.get_connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(query, params)
                    rows = await cur.fetchall()
                    return [PetCandidate(**dict(row)) for row in rows]

        except (psycopg.Error, KeyError, ValueError) as e:
            raise PetStatusOperationError(
                f"Failed to get pets missing images: {e}",
                operation="get_pets_missing_images",
            ) from e

    async def get_pending_screenshots(
        self, limit: int, requested_before: Optional[datetime] = None
    ) -> List[PetCandidate]:
        """
        Requested but never completed screenshots, oldest request first.

        Args:
            limit: Maximum rows
            requested_before: Only requests stamped before this time
        """
        try:
            with_cutoff = requested_before is not None
            query = PetStatusQueryBuilder.build_pending_screenshots_query(with_cutoff)
            params = (requested_before, limit) if with_cutoff else (limit,)
            async with self.db.get_connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(query, params)
                    rows = await cur.fetchall()
                    return [PetCandidate(**dict(row)) for row in rows]

        except (psycopg.Error, KeyError, ValueError) as e:
            raise PetStatusOperationError(
                f"Failed to get pending screenshots: {e}",
                operation="get_pending_screenshots",
            ) from e

    async def sample_statuses(
        self,
        limit: Optional[int],
        strategy: SamplingStrategy = SamplingStrategy.RANDOM,
        pet_type: Optional[PetType] = None,
    ) -> List[PetImageStatus]:
        """
        Select pets for a consistency check.

        Args:
            limit: Sample size, or None for every pet
            strategy: Uniform random or least-recently-checked first
            pet_type: Restrict to one pet type
        """
        try:
            query = PetStatusQueryBuilder.build_sample_query(
                SamplingStrategy(strategy), pet_type is not None, limit is not None
            )
            params: list = []
            if pet_type is not None:
                params.append(PetType(pet_type).value)
            if limit is not None:
                params.append(limit)

            async with self.db.get_connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(query, tuple(params))
                    rows = await cur.fetchall()
                    return [PetImageStatus(**dict(row)) for row in rows]

        except (psycopg.Error, KeyError, ValueError) as e:
            raise PetStatusOperationError(
                f"Failed to sample pet statuses: {e}", operation="sample_statuses"
            ) from e

    async def get_existing_pet_ids(self, pet_ids: Sequence[str]) -> Set[str]:
        """Subset of ``pet_ids`` that have a pet record."""
        if not pet_ids:
            return set()
        try:
            async with self.db.get_connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        "SELECT id FROM pets WHERE id = ANY(%s)", (list(pet_ids),)
                    )
                    rows = await cur.fetchall()
                    return {row["id"] for row in rows}

        except (psycopg.Error, KeyError, ValueError) as e:
            raise PetStatusOperationError(
                f"Failed to look up pet ids: {e}", operation="get_existing_pet_ids"
            ) from e

# backend/pawsync/database/core.py

"""
Async database core.

Owns the psycopg connection pool. Every connection handed out runs inside a
transaction that commits when the ``async with`` block exits cleanly and rolls
back otherwise.
"""

import asyncio
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

import psycopg
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool, PoolTimeout

from ..config import settings
from ..enums import LogEmoji, LoggerName
from ..services.logger import get_service_logger
from ..utils.time_utils import utc_now

logger = get_service_logger(LoggerName.DATABASE, LogEmoji.DATABASE)


class AsyncDatabase:
    """
    Async connection pool wrapper.

    Usage:
        async with db.get_connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute("SELECT * FROM pets")
                rows = await cur.fetchall()
    """

    def __init__(self, database_url: Optional[str] = None) -> None:
        self._database_url = database_url
        self._pool: Optional[AsyncConnectionPool] = None
        self._connection_attempts = 0
        self._failed_connections = 0
        self._pool_created_at = None

    @property
    def is_initialized(self) -> bool:
        return self._pool is not None

    async def initialize(self) -> None:
        """
        Open the connection pool.

        Raises:
            psycopg.Error, ConnectionError, OSError: If the pool cannot open
        """
        if self._pool is not None:
            return

        try:
            self._pool = AsyncConnectionPool(
                self._database_url or settings.database_url,
                min_size=settings.db_pool_min_size,
                max_size=max(settings.db_pool_min_size, settings.db_pool_max_size),
                timeout=settings.db_pool_timeout,
                kwargs={
                    "row_factory": dict_row,
                    "connect_timeout": 15,
                    "keepalives_idle": 300,
                    "keepalives_interval": 60,
                    "keepalives_count": 5,
                },
                open=False,
            )
            await self._pool.open()
            self._pool_created_at = utc_now()
            logger.info("Async database pool opened")
        except (psycopg.Error, ConnectionError, OSError) as e:
            self._failed_connections += 1
            self._pool = None
            logger.error("Failed to initialize async database pool", exception=e)
            raise

    async def close(self) -> None:
        """Close the connection pool."""
        if self._pool:
            await self._pool.close()
            self._pool = None
            logger.info("Async database pool closed")

    async def _acquire(self, max_retries: int):
        """Get a raw connection from the pool, retrying transient pool errors."""
        if not self._pool:
            raise RuntimeError("Database pool not initialized")

        retries = 0
        while True:
            self._connection_attempts += 1
            try:
                return await self._pool.getconn()
            except (psycopg.OperationalError, PoolTimeout) as e:
                self._failed_connections += 1
                if retries >= max_retries:
                    logger.error(
                        f"Async database connection failed after {max_retries + 1} attempts"
                    )
                    raise ConnectionError("Database connection failed") from e
                logger.warning(
                    f"Async database connection failed "
                    f"(attempt {retries + 1}/{max_retries + 1}): {e}"
                )
                retries += 1
                await asyncio.sleep(0.5 * retries)

    @asynccontextmanager
    async def get_connection(self, max_retries: int = 2) -> AsyncGenerator[Any, None]:
        """
        Get a pooled connection wrapped in a transaction.

        Args:
            max_retries: Attempts to acquire a connection before giving up

        Yields:
            An async psycopg connection with dict_row row factory
        """
        conn = await self._acquire(max_retries)
        try:
            async with conn.transaction():
                yield conn
        finally:
            await self._pool.putconn(conn)

    async def health_check(self, timeout: float = 5.0) -> Dict[str, Any]:
        """
        Check database connectivity.

        Returns:
            Dict with status and response time
        """
        if not self._pool:
            return {"status": "unhealthy", "error": "Pool not initialized"}

        start_time = time.time()
        try:
            async with asyncio.timeout(timeout):
                async with self.get_connection() as conn:
                    async with conn.cursor() as cur:
                        await cur.execute("SELECT 1")
                        await cur.fetchone()

            return {
                "status": "healthy",
                "response_time_ms": round((time.time() - start_time) * 1000, 2),
                "pool_created_at": (
                    self._pool_created_at.isoformat() if self._pool_created_at else None
                ),
                "connection_attempts": self._connection_attempts,
                "failed_connections": self._failed_connections,
            }
        except (psycopg.Error, ConnectionError, RuntimeError, TimeoutError) as e:
            return {
                "status": "unhealthy",
                "error": str(e),
                "response_time_ms": round((time.time() - start_time) * 1000, 2),
            }

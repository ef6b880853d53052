"""
Database initialization for pawsync.

The schema file is written with IF NOT EXISTS throughout, so applying it to an
existing database is a no-op and applying it to a fresh one creates every
table the pipeline needs.
"""

from pathlib import Path
from typing import Any, Dict

import psycopg

from .core import AsyncDatabase
from .exceptions import SchemaOperationError

SCHEMA_FILE = Path(__file__).parent / "schema.sql"

EXPECTED_TABLES = ("pets", "pet_image_status", "data_readiness", "sync_jobs")


def load_schema_sql() -> str:
    """Read the schema file shipped with the package."""
    try:
        return SCHEMA_FILE.read_text(encoding="utf-8")
    except OSError as e:
        raise SchemaOperationError(
            f"Schema file not readable: {SCHEMA_FILE}", operation="load_schema_sql"
        ) from e


async def initialize_database(db: AsyncDatabase) -> Dict[str, Any]:
    """
    Apply the schema and report which tables exist afterwards.

    Args:
        db: Opened AsyncDatabase

    Returns:
        Dictionary with initialization results

    Raises:
        SchemaOperationError: If the schema cannot be applied
    """
    schema_sql = load_schema_sql()

    try:
        async with db.get_connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(schema_sql)
                await cur.execute(
                    """
                    SELECT table_name FROM information_schema.tables
                    WHERE table_schema = 'public' AND table_name = ANY(%s)
                    """,
                    (list(EXPECTED_TABLES),),
                )
                rows = await cur.fetchall()
    except psycopg.Error as e:
        raise SchemaOperationError(
            "Failed to apply database schema", operation="initialize_database"
        ) from e

    present = sorted(row["table_name"] for row in rows)
    missing = [table for table in EXPECTED_TABLES if table not in present]
    if missing:
        raise SchemaOperationError(
            f"Tables missing after schema apply: {', '.join(missing)}",
            operation="initialize_database",
        )

    return {
        "success": True,
        "tables": present,
        "message": "Database schema is up to date",
    }

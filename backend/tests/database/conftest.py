# backend/tests/database/conftest.py
"""
Shared fixtures for database operations tests.

Operations are tested against a mocked pool: the cursor records executed
SQL and parameters and returns whatever rows a test configures.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List
from unittest.mock import AsyncMock, MagicMock, Mock

import pytest


@pytest.fixture
def mock_async_db():
    """
    Mock async database connection for testing database operations.

    Returns:
        tuple: (db_mock, connection_mock, cursor_mock) for easy access in tests
    """
    db = Mock()
    conn = MagicMock()
    cursor = AsyncMock()
    cursor.rowcount = 1

    # Setup async context managers
    db.get_connection.return_value.__aenter__ = AsyncMock(return_value=conn)
    db.get_connection.return_value.__aexit__ = AsyncMock(return_value=None)
    conn.cursor.return_value.__aenter__ = AsyncMock(return_value=cursor)
    conn.cursor.return_value.__aexit__ = AsyncMock(return_value=None)

    return db, conn, cursor


@pytest.fixture
def mock_current_time():
    """Mock current time for consistent testing."""
    return datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


class TestDataFactory:
    """Rows shaped like the dict_row results of the real queries."""

    @staticmethod
    def create_status_row(**overrides) -> Dict[str, Any]:
        defaults = {
            "pet_id": "pethome_100",
            "pet_type": "dog",
            "has_jpeg": False,
            "has_webp": False,
            "image_checked_at": None,
            "screenshot_requested_at": None,
            "screenshot_completed_at": None,
        }
        defaults.update(overrides)
        return defaults

    @staticmethod
    def create_candidate_row(**overrides) -> Dict[str, Any]:
        defaults = {
            "pet_id": "pethome_100",
            "pet_type": "cat",
            "source_url": "https://www.pet-home.jp/cats/pn100/",
            "name": "Mugi",
        }
        defaults.update(overrides)
        return defaults

    @staticmethod
    def create_job_row(**overrides) -> Dict[str, Any]:
        defaults = {
            "id": "job-1",
            "job_type": "image",
            "status": "pending",
            "source": "manual",
            "pet_type": None,
            "batch_size": None,
            "progress": 0.0,
            "processed_count": 0,
            "failed_count": 0,
            "error": None,
            "created_at": datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc),
            "started_at": None,
            "completed_at": None,
        }
        defaults.update(overrides)
        return defaults

    @staticmethod
    def create_rows(factory, count: int, **overrides) -> List[Dict[str, Any]]:
        return [
            factory(**{"pet_id": f"pethome_{i}", **overrides}) for i in range(count)
        ]


@pytest.fixture
def test_data_factory():
    return TestDataFactory


def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "query_builder: marks tests for SQL query builders"
    )

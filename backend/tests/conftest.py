#!/usr/bin/env python3
# backend/tests/conftest.py
"""
Pytest configuration and shared fixtures for pawsync tests.

The in-memory operation classes mirror the database operations closely
enough that services can be exercised end to end without PostgreSQL.
"""

import asyncio
import random
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from io import BytesIO
from typing import Dict, List, Optional, Sequence, Set

import pytest
from PIL import Image

from pawsync.database.exceptions import PetStatusOperationError
from pawsync.enums import CaptureStrategy, PetType, SamplingStrategy
from pawsync.models.pet_model import (
    PetCandidate,
    PetImageStatus,
    ReadinessCounts,
    ReadinessSnapshot,
)
from pawsync.models.pipeline_models import CaptureResult
from pawsync.services.sync_status_service import SyncStatusService
from pawsync.storage.local_store import LocalImageStore
from pawsync.utils.time_utils import utc_now


def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: fast tests with no external services")
    config.addinivalue_line(
        "markers", "integration: tests that wire several components together"
    )
    config.addinivalue_line("markers", "database: database operation tests (mocked pool)")
    config.addinivalue_line("markers", "storage: object store backend tests")
    config.addinivalue_line("markers", "pipeline: capture/convert/store pipeline tests")


# ----------------------------------------------------------------------
# Images
# ----------------------------------------------------------------------


def make_image_bytes(
    size=(400, 300), color=(200, 120, 40), mode="RGB", image_format="PNG"
) -> bytes:
    image = Image.new(mode, size, color)
    output = BytesIO()
    image.save(output, format=image_format)
    return output.getvalue()


@pytest.fixture
def png_bytes() -> bytes:
    return make_image_bytes()


@pytest.fixture
def large_rgba_png() -> bytes:
    return make_image_bytes(size=(1600, 1200), color=(10, 200, 90, 128), mode="RGBA")


@pytest.fixture
def jpeg_bytes() -> bytes:
    return make_image_bytes(image_format="JPEG")


@pytest.fixture
def animated_gif() -> bytes:
    frames = [Image.new("RGB", (64, 64), color) for color in ("red", "green", "blue")]
    output = BytesIO()
    frames[0].save(
        output, format="GIF", save_all=True, append_images=frames[1:], duration=100, loop=0
    )
    return output.getvalue()


# ----------------------------------------------------------------------
# In-memory status and readiness operations
# ----------------------------------------------------------------------


class InMemoryPetStatusOps:
    """Same contract as PetImageStatusOperations, backed by dicts."""

    def __init__(self):
        self.pets: Dict[str, PetCandidate] = {}
        self.statuses: Dict[str, PetImageStatus] = {}
        self._created: Dict[str, int] = {}
        self.fail_writes = False

    def add_pet(
        self,
        pet_id: str,
        pet_type: PetType = PetType.DOG,
        source_url: Optional[str] = "https://example.test/pet",
        name: Optional[str] = None,
        has_jpeg: bool = False,
        has_webp: bool = False,
        requested: bool = False,
    ) -> PetCandidate:
        pet = PetCandidate(pet_id=pet_id, pet_type=pet_type, source_url=source_url, name=name)
        self.pets[pet_id] = pet
        self._created[pet_id] = len(self._created)
        if has_jpeg or has_webp or requested:
            self.statuses[pet_id] = PetImageStatus(
                pet_id=pet_id,
                pet_type=pet_type,
                has_jpeg=has_jpeg,
                has_webp=has_webp,
                screenshot_requested_at=utc_now() - timedelta(hours=1) if requested else None,
            )
        return pet

    def _check_write(self):
        if self.fail_writes:
            raise PetStatusOperationError("write refused", operation="test")

    def _row(self, pet_id: str) -> PetImageStatus:
        pet = self.pets[pet_id]
        return self.statuses.get(pet_id) or PetImageStatus(pet_id=pet_id, pet_type=pet.pet_type)

    async def get_pet(self, pet_id: str) -> Optional[PetCandidate]:
        return self.pets.get(pet_id)

    async def get_status(self, pet_id: str) -> Optional[PetImageStatus]:
        if pet_id not in self.pets:
            return None
        return self._row(pet_id).model_copy()

    async def set_image_flags(self, pet_id: str, has_jpeg: bool, has_webp: bool) -> bool:
        self._check_write()
        if pet_id not in self.pets:
            return False
        row = self._row(pet_id)
        self.statuses[pet_id] = row.model_copy(
            update={
                "has_jpeg": has_jpeg,
                "has_webp": has_webp,
                "image_checked_at": utc_now(),
                "screenshot_completed_at": row.screenshot_completed_at if has_jpeg else None,
            }
        )
        return True

    async def mark_screenshot_requested(self, pet_id: str) -> bool:
        self._check_write()
        if pet_id not in self.pets:
            return False
        self.statuses[pet_id] = self._row(pet_id).model_copy(
            update={"screenshot_requested_at": utc_now(), "screenshot_completed_at": None}
        )
        return True

    async def mark_screenshots_requested(self, pet_ids: Sequence[str]) -> int:
        for pet_id in pet_ids:
            await self.mark_screenshot_requested(pet_id)
        return len(pet_ids)

    async def mark_screenshot_completed(self, pet_id: str) -> bool:
        self._check_write()
        if pet_id not in self.pets:
            return False
        self.statuses[pet_id] = self._row(pet_id).model_copy(
            update={"has_jpeg": True, "screenshot_completed_at": utc_now()}
        )
        return True

    async def get_pets_missing_images(
        self, limit: int, pet_type: Optional[PetType] = None
    ) -> List[PetCandidate]:
        newest_first = sorted(self.pets, key=lambda p: -self._created[p])
        result = [
            self.pets[pet_id]
            for pet_id in newest_first
            if not self._row(pet_id).has_jpeg
            and self.pets[pet_id].source_url
            and (pet_type is None or self.pets[pet_id].pet_type == pet_type)
        ]
        return result[:limit]

    async def get_pending_screenshots(
        self, limit: int, requested_before: Optional[datetime] = None
    ) -> List[PetCandidate]:
        pending = [
            row
            for row in self.statuses.values()
            if row.is_screenshot_pending
            and (requested_before is None or row.screenshot_requested_at < requested_before)
        ]
        pending.sort(key=lambda row: row.screenshot_requested_at)
        return [self.pets[row.pet_id] for row in pending[:limit]]

    async def sample_statuses(
        self,
        limit: Optional[int],
        strategy: SamplingStrategy = SamplingStrategy.RANDOM,
        pet_type: Optional[PetType] = None,
    ) -> List[PetImageStatus]:
        rows = [
            self._row(pet_id).model_copy()
            for pet_id, pet in self.pets.items()
            if pet_type is None or pet.pet_type == pet_type
        ]
        if strategy == SamplingStrategy.RANDOM:
            random.shuffle(rows)
        return rows if limit is None else rows[:limit]

    async def get_existing_pet_ids(self, pet_ids: Sequence[str]) -> Set[str]:
        return {pet_id for pet_id in pet_ids if pet_id in self.pets}


class InMemoryReadinessOps:
    """Readiness counts derived from an InMemoryPetStatusOps."""

    def __init__(self, status_ops: InMemoryPetStatusOps):
        self.status_ops = status_ops
        self.snapshot: Optional[ReadinessSnapshot] = None
        self.saved = 0

    async def get_counts(self) -> ReadinessCounts:
        pets = self.status_ops.pets
        rows = [self.status_ops._row(pet_id) for pet_id in pets]
        return ReadinessCounts(
            total_pets=len(pets),
            total_dogs=sum(1 for p in pets.values() if p.pet_type == PetType.DOG),
            total_cats=sum(1 for p in pets.values() if p.pet_type == PetType.CAT),
            pets_with_jpeg=sum(1 for row in rows if row.has_jpeg),
            pets_with_webp=sum(1 for row in rows if row.has_webp),
        )

    async def save_snapshot(self, snapshot: ReadinessSnapshot) -> ReadinessSnapshot:
        self.snapshot = snapshot
        self.saved += 1
        return snapshot

    async def get_snapshot(self) -> Optional[ReadinessSnapshot]:
        return self.snapshot


@pytest.fixture
def status_ops() -> InMemoryPetStatusOps:
    return InMemoryPetStatusOps()


@pytest.fixture
def readiness_ops(status_ops) -> InMemoryReadinessOps:
    return InMemoryReadinessOps(status_ops)


@pytest.fixture
def status_service(status_ops, readiness_ops) -> SyncStatusService:
    return SyncStatusService(
        status_ops, readiness_ops, min_dogs=2, min_cats=1, min_coverage=0.5, completeness_target=10
    )


@pytest.fixture
def local_store(tmp_path) -> LocalImageStore:
    return LocalImageStore(tmp_path / "images")


# ----------------------------------------------------------------------
# Capture fakes
# ----------------------------------------------------------------------


class FakeCoordinator:
    """
    Returns the configured PNG for every URL, or raises the exception queued
    for that URL. Exceptions are consumed one per call.
    """

    def __init__(self, png: bytes):
        self.png = png
        self.errors: Dict[str, List[BaseException]] = {}
        self.calls: List[str] = []
        self.hang_urls: Set[str] = set()

    def fail(self, url: str, *errors: BaseException) -> None:
        self.errors.setdefault(url, []).extend(errors)

    async def capture(self, source_url: str, timeout_ms: Optional[int] = None) -> CaptureResult:
        self.calls.append(source_url)
        if source_url in self.hang_urls:
            await asyncio.Event().wait()
        queued = self.errors.get(source_url)
        if queued:
            raise queued.pop(0)
        return CaptureResult(png_bytes=self.png, strategy=CaptureStrategy.ELEMENT, selector="img")


@pytest.fixture
def fake_coordinator(png_bytes) -> FakeCoordinator:
    return FakeCoordinator(png_bytes)


@pytest.fixture
def coordinator_factory(fake_coordinator):
    opened = []

    @asynccontextmanager
    async def factory(page_count: int = 1):
        opened.append(page_count)
        yield fake_coordinator

    factory.opened = opened
    return factory


@pytest.fixture
def no_sleep():
    delays = []

    async def sleep(seconds: float) -> None:
        delays.append(seconds)

    sleep.delays = delays
    return sleep

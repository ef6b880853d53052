#!/usr/bin/env python3
"""
Router Integration Tests.

Drives the HTTP layer through TestClient against real serving, status and
reconcile services backed by the in-memory operations and a local store.
Sync job orchestration is mocked; its behaviour is covered by unit tests.
"""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock

import pytest
from fastapi import FastAPI, status
from fastapi.testclient import TestClient

from pawsync.enums import PetType, SyncJobStatus, SyncJobType
from pawsync.middleware.error_handler import CORRELATION_HEADER, ErrorHandlerMiddleware
from pawsync.models.sync_job_model import SyncJob
from pawsync.routers import health_routers, image_routers, sync_routers
from pawsync.services.consistency_reconciler import ConsistencyReconciler
from pawsync.services.image_converter import ImageConverter
from pawsync.services.image_serving_service import ImageServingService
from pawsync.utils.storage_keys import original_key


def build_app() -> FastAPI:
    app = FastAPI()
    app.add_middleware(ErrorHandlerMiddleware)
    app.include_router(image_routers.router, prefix="/api")
    app.include_router(sync_routers.router, prefix="/api")
    app.include_router(health_routers.router, prefix="/api")
    return app


@pytest.fixture
def sync_job_service():
    service = Mock()
    service.start_job = AsyncMock(
        return_value=SyncJob(id="job-1", job_type=SyncJobType.IMAGE)
    )
    service.get_job = AsyncMock(return_value=None)
    service.get_recent_jobs = AsyncMock(return_value=[])
    service.active_job_count = 0
    return service


@pytest.fixture
def services(local_store, status_service, sync_job_service):
    db = Mock()
    db.health_check = AsyncMock(return_value={"status": "healthy"})
    return SimpleNamespace(
        db=db,
        status_service=status_service,
        sync_job_service=sync_job_service,
        reconciler=ConsistencyReconciler(local_store, status_service),
        image_serving_service=ImageServingService(
            local_store, status_service, ImageConverter(), retry_after_seconds=30
        ),
    )


@pytest.fixture
def test_client(services):
    app = build_app()
    app.state.services = services
    with TestClient(app) as client:
        yield client


@pytest.mark.integration
class TestImageRoutes:
    def test_serves_stored_jpeg(self, test_client, status_ops, local_store, jpeg_bytes):
        status_ops.add_pet("p1", PetType.DOG, has_jpeg=True)
        asyncio.run(local_store.put(original_key(PetType.DOG, "p1"), jpeg_bytes, "image/jpeg"))

        response = test_client.get("/api/images/dog/p1/jpeg")

        assert response.status_code == status.HTTP_200_OK
        assert response.headers["content-type"] == "image/jpeg"
        assert response.content == jpeg_bytes
        assert "max-age=86400" in response.headers["cache-control"]

    def test_missing_image_is_accepted_for_capture(self, test_client, status_ops):
        status_ops.add_pet("p2", PetType.CAT)

        response = test_client.get("/api/images/cat/p2/jpeg")

        assert response.status_code == status.HTTP_202_ACCEPTED
        assert response.headers["retry-after"] == "30"
        assert status_ops.statuses["p2"].screenshot_requested_at is not None

    def test_unknown_pet(self, test_client):
        response = test_client.get("/api/images/dog/ghost/jpeg")

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["detail"] == "Pet not found"

    @pytest.mark.parametrize(
        "path", ["/api/images/dog/p1/png", "/api/images/bird/p1/jpeg"]
    )
    def test_invalid_path_values_rejected(self, test_client, path):
        assert test_client.get(path).status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


@pytest.mark.integration
class TestSyncRoutes:
    def test_start_job_returns_202(self, test_client, sync_job_service):
        response = test_client.post("/api/sync/jobs", json={"job_type": "image"})

        assert response.status_code == status.HTTP_202_ACCEPTED
        assert response.json() == {"job_id": "job-1", "status": SyncJobStatus.PENDING.value}
        request = sync_job_service.start_job.await_args.args[0]
        assert request.job_type == SyncJobType.IMAGE

    def test_start_job_rejects_unknown_type(self, test_client, sync_job_service):
        response = test_client.post("/api/sync/jobs", json={"job_type": "everything"})

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        sync_job_service.start_job.assert_not_awaited()

    def test_unknown_job_is_404(self, test_client):
        response = test_client.get("/api/sync/jobs/nope")

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["detail"] == "Sync job not found"

    def test_readiness_computed_on_first_request(self, test_client, status_ops, readiness_ops):
        status_ops.add_pet("d1", PetType.DOG, has_jpeg=True)
        status_ops.add_pet("d2", PetType.DOG, has_jpeg=True)
        status_ops.add_pet("c1", PetType.CAT, has_jpeg=True)

        body = test_client.get("/api/sync/readiness").json()

        assert body["total_pets"] == 3
        assert body["is_ready"] is True
        assert readiness_ops.saved == 1

        test_client.get("/api/sync/readiness")
        assert readiness_ops.saved == 1

    def test_integrity_rejects_non_positive_sample(self, test_client):
        response = test_client.post("/api/sync/integrity", json={"sample_size": 0})

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_integrity_full_audit_fixes_drift(self, test_client, status_ops):
        status_ops.add_pet("p1", PetType.DOG, has_jpeg=True)

        response = test_client.post(
            "/api/sync/integrity", json={"sample_size": "all", "auto_fix": True}
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["total_checked"] == 1
        assert response.json()["mismatched_jpeg"] == ["p1"]
        assert status_ops.statuses["p1"].has_jpeg is False

    def test_orphans_route_is_not_a_pet_id(self, test_client, local_store, jpeg_bytes):
        asyncio.run(local_store.put(original_key(PetType.CAT, "gone"), jpeg_bytes, "image/jpeg"))

        response = test_client.get("/api/sync/integrity/orphans")

        assert response.status_code == status.HTTP_200_OK
        assert [o["pet_id"] for o in response.json()] == ["gone"]

    def test_check_unknown_pet(self, test_client):
        response = test_client.get("/api/sync/integrity/ghost")

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["detail"] == "Pet not found"


@pytest.mark.integration
class TestHealthAndStartup:
    def test_health(self, test_client):
        response = test_client.get("/api/health")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["status"] == "healthy"
        assert CORRELATION_HEADER in response.headers

    def test_degraded_database_is_503(self, test_client, services):
        services.db.health_check.return_value = {"status": "unhealthy", "error": "down"}

        response = test_client.get("/api/health")

        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
        assert response.json()["status"] == "degraded"

    def test_services_not_ready(self):
        with TestClient(build_app()) as client:
            response = client.get("/api/sync/readiness")

        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE

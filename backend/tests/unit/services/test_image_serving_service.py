# backend/tests/unit/services/test_image_serving_service.py
"""Tests for ImageServingService outcomes and format negotiation."""

import pytest

from pawsync.enums import ImageFormat, PetType
from pawsync.exceptions import StoreUnavailableError
from pawsync.services.image_converter import ImageConverter
from pawsync.services.image_serving_service import (
    GENERIC_ERROR_MESSAGE,
    ImageServingService,
    resolve_format,
)
from pawsync.storage.local_store import LocalImageStore
from pawsync.utils.storage_keys import optimized_key, original_key

WEBP_ACCEPT = "image/avif,image/webp,image/apng,*/*;q=0.8"


class BrokenStore(LocalImageStore):
    async def get(self, key):
        raise StoreUnavailableError("bucket unreachable", operation="get")


@pytest.fixture
def serving(local_store, status_service):
    return ImageServingService(local_store, status_service, ImageConverter(), retry_after_seconds=45)


@pytest.mark.unit
class TestResolveFormat:
    @pytest.mark.parametrize(
        "requested,accept,expected",
        [
            (ImageFormat.AUTO, WEBP_ACCEPT, ImageFormat.WEBP),
            (ImageFormat.AUTO, "image/jpeg,*/*", ImageFormat.JPEG),
            (ImageFormat.AUTO, None, ImageFormat.JPEG),
            (ImageFormat.JPG, WEBP_ACCEPT, ImageFormat.JPEG),
            (ImageFormat.WEBP, None, ImageFormat.WEBP),
            ("jpeg", None, ImageFormat.JPEG),
        ],
    )
    def test_resolution(self, requested, accept, expected):
        assert resolve_format(requested, accept) == expected


class TestServe:
    @pytest.mark.asyncio
    async def test_serves_stored_jpeg(self, serving, status_ops, local_store, jpeg_bytes):
        status_ops.add_pet("p1", has_jpeg=True)
        await local_store.put(original_key(PetType.DOG, "p1"), jpeg_bytes, "image/jpeg")

        result = await serving.serve(PetType.DOG, "p1", ImageFormat.JPG)

        assert result.status_code == 200
        assert result.content == jpeg_bytes
        assert result.media_type == "image/jpeg"
        assert result.headers["Cache-Control"] == "public, max-age=86400"
        assert "Vary" not in result.headers

    @pytest.mark.asyncio
    async def test_auto_negotiates_webp(self, serving, status_ops, local_store):
        status_ops.add_pet("p1", PetType.CAT, has_jpeg=True, has_webp=True)
        await local_store.put(optimized_key(PetType.CAT, "p1"), b"webp", "image/webp")

        result = await serving.serve(PetType.CAT, "p1", ImageFormat.AUTO, WEBP_ACCEPT)

        assert result.status_code == 200
        assert result.media_type == "image/webp"
        assert result.headers["Vary"] == "Accept"
        assert result.headers["Cache-Control"] == "public, max-age=604800"

    @pytest.mark.asyncio
    async def test_missing_image_is_accepted_and_requested(self, serving, status_ops):
        status_ops.add_pet("p1")

        result = await serving.serve(PetType.DOG, "p1", ImageFormat.JPEG)

        assert result.status_code == 202
        assert result.headers == {"Retry-After": "45"}
        assert status_ops.statuses["p1"].is_screenshot_pending

    @pytest.mark.asyncio
    async def test_pending_request_is_not_restamped(self, serving, status_ops):
        status_ops.add_pet("p1", requested=True)
        requested_at = status_ops.statuses["p1"].screenshot_requested_at

        result = await serving.serve(PetType.DOG, "p1", ImageFormat.WEBP)

        assert result.status_code == 202
        assert status_ops.statuses["p1"].screenshot_requested_at == requested_at

    @pytest.mark.asyncio
    async def test_lost_object_is_404_and_flag_corrected(self, serving, status_ops):
        status_ops.add_pet("p1", has_jpeg=True, has_webp=True)

        result = await serving.serve(PetType.DOG, "p1", ImageFormat.JPEG)

        assert result.status_code == 404
        assert not status_ops.statuses["p1"].has_jpeg
        assert status_ops.statuses["p1"].has_webp

    @pytest.mark.asyncio
    async def test_unknown_pet_or_wrong_type(self, serving, status_ops):
        status_ops.add_pet("p1", PetType.DOG, has_jpeg=True)

        assert (await serving.serve(PetType.DOG, "nobody", ImageFormat.JPEG)).status_code == 404
        mismatch = await serving.serve(PetType.CAT, "p1", ImageFormat.JPEG)
        assert mismatch.status_code == 404
        assert mismatch.message == "Pet not found"

    @pytest.mark.asyncio
    async def test_webp_generated_from_jpeg(self, serving, status_ops, local_store, jpeg_bytes):
        status_ops.add_pet("p1", has_jpeg=True)
        await local_store.put(original_key(PetType.DOG, "p1"), jpeg_bytes, "image/jpeg")

        result = await serving.serve(PetType.DOG, "p1", ImageFormat.WEBP)

        assert result.status_code == 200
        assert result.media_type == "image/webp"
        assert result.content[8:12] == b"WEBP"
        assert await local_store.get(optimized_key(PetType.DOG, "p1")) == result.content
        assert status_ops.statuses["p1"].has_webp

    @pytest.mark.asyncio
    async def test_unconvertible_jpeg_is_generic_500(self, serving, status_ops, local_store):
        status_ops.add_pet("p1", has_jpeg=True)
        await local_store.put(original_key(PetType.DOG, "p1"), b"corrupt", "image/jpeg")

        result = await serving.serve(PetType.DOG, "p1", ImageFormat.WEBP)

        assert result.status_code == 500
        assert result.message == GENERIC_ERROR_MESSAGE
        assert result.content is None

    @pytest.mark.asyncio
    async def test_store_outage_is_generic_500(self, status_service, status_ops, tmp_path):
        status_ops.add_pet("p1", has_jpeg=True)
        serving = ImageServingService(BrokenStore(tmp_path), status_service, ImageConverter())

        result = await serving.serve(PetType.DOG, "p1", ImageFormat.JPEG)

        assert result.status_code == 500
        assert result.message == GENERIC_ERROR_MESSAGE

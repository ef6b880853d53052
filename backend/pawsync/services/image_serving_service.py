# backend/pawsync/services/image_serving_service.py
"""
Image Serving Service - resolves an image request to bytes, a "come back
later" or a not-found.

Outcomes:
- 200 with bytes when the variant is recorded and present in the store
- 202 with Retry-After when the variant does not exist yet; a screenshot
  request is recorded so the next retry sweep captures the pet
- 404 when the pet has no record, or when the store lost an object that the
  status row claims exists (the flag is corrected on the way out)
- 500 with a generic message for anything else

A WebP request for a pet that only has a JPEG is served by converting the
JPEG on the spot and storing the result.
"""

from typing import Dict, Optional

from pydantic import BaseModel, Field

from ..constants import (
    DEFAULT_RETRY_AFTER_SECONDS,
    JPEG_CACHE_MAX_AGE_SECONDS,
    VARIANT_CONTENT_TYPES,
    WEBP_CACHE_MAX_AGE_SECONDS,
)
from ..database.exceptions import DatabaseOperationError
from ..enums import ImageFormat, ImageVariant, LogEmoji, LoggerName, PetType
from ..exceptions import ConversionError, PawsyncError, StatusWriteError
from ..models.pet_model import PetImageStatus
from ..storage.base import ImageStore
from ..utils.storage_keys import original_key, optimized_key
from .image_converter import ImageConverter
from .logger import get_service_logger
from .sync_status_service import SyncStatusService

logger = get_service_logger(LoggerName.IMAGE_SERVING, LogEmoji.IMAGE)

WEBP_MIME = "image/webp"
GENERIC_ERROR_MESSAGE = "Internal server error"


class ImageServeResult(BaseModel):
    """What the HTTP layer should send back."""

    status_code: int
    content: Optional[bytes] = Field(None, repr=False)
    media_type: Optional[str] = None
    headers: Dict[str, str] = Field(default_factory=dict)
    message: Optional[str] = None


def resolve_format(image_format: ImageFormat, accept_header: Optional[str]) -> ImageFormat:
    """auto -> webp when the client accepts it, else jpeg; jpg -> jpeg."""
    image_format = ImageFormat(image_format)
    if image_format == ImageFormat.AUTO:
        accepts_webp = accept_header is not None and WEBP_MIME in accept_header.lower()
        return ImageFormat.WEBP if accepts_webp else ImageFormat.JPEG
    if image_format == ImageFormat.JPG:
        return ImageFormat.JPEG
    return image_format


class ImageServingService:
    """Serves pet images from the object store."""

    def __init__(
        self,
        image_store: ImageStore,
        status_service: SyncStatusService,
        converter: ImageConverter,
        retry_after_seconds: int = DEFAULT_RETRY_AFTER_SECONDS,
    ):
        self.image_store = image_store
        self.status_service = status_service
        self.converter = converter
        self.retry_after_seconds = retry_after_seconds

    def _ok(self, content: bytes, image_format: ImageFormat, negotiated: bool) -> ImageServeResult:
        if image_format == ImageFormat.WEBP:
            variant, max_age = ImageVariant.OPTIMIZED, WEBP_CACHE_MAX_AGE_SECONDS
        else:
            variant, max_age = ImageVariant.ORIGINAL, JPEG_CACHE_MAX_AGE_SECONDS

        headers = {"Cache-Control": f"public, max-age={max_age}"}
        if negotiated:
            headers["Vary"] = "Accept"
        return ImageServeResult(
            status_code=200,
            content=content,
            media_type=VARIANT_CONTENT_TYPES[variant],
            headers=headers,
        )

    @staticmethod
    def _not_found(message: str) -> ImageServeResult:
        return ImageServeResult(status_code=404, message=message)

    async def _pending(self, status: PetImageStatus, image_format: ImageFormat) -> ImageServeResult:
        if not status.is_screenshot_pending:
            try:
                await self.status_service.mark_screenshot_requested(status.pet_id)
                logger.info(
                    f"Requested capture for missing {image_format.value}",
                    extra_context={"pet_id": status.pet_id},
                )
            except StatusWriteError as e:
                logger.warning(
                    f"Could not record capture request: {e}",
                    extra_context={"pet_id": status.pet_id},
                )

        return ImageServeResult(
            status_code=202,
            headers={"Retry-After": str(self.retry_after_seconds)},
            message=f"Image is being generated, retry in {self.retry_after_seconds} seconds",
        )

    async def _correct_flags(self, status: PetImageStatus, has_jpeg: bool, has_webp: bool) -> None:
        logger.warning(
            f"Stored object missing; correcting flags to jpeg={has_jpeg} webp={has_webp}",
            extra_context={"pet_id": status.pet_id},
        )
        try:
            await self.status_service.set_image_flags(status.pet_id, has_jpeg, has_webp)
        except StatusWriteError as e:
            logger.error(
                "Self-correction of image flags failed",
                exception=e,
                extra_context={"pet_id": status.pet_id},
            )

    async def _serve_jpeg(self, status: PetImageStatus, negotiated: bool) -> ImageServeResult:
        if not status.has_jpeg:
            return await self._pending(status, ImageFormat.JPEG)

        content = await self.image_store.get(original_key(status.pet_type, status.pet_id))
        if content is None:
            await self._correct_flags(status, False, status.has_webp)
            return self._not_found("Image not found")
        return self._ok(content, ImageFormat.JPEG, negotiated)

    async def _serve_webp(self, status: PetImageStatus, negotiated: bool) -> ImageServeResult:
        if status.has_webp:
            content = await self.image_store.get(optimized_key(status.pet_type, status.pet_id))
            if content is not None:
                return self._ok(content, ImageFormat.WEBP, negotiated)
            await self._correct_flags(status, status.has_jpeg, False)
            return self._not_found("Image not found")

        if not status.has_jpeg:
            return await self._pending(status, ImageFormat.WEBP)

        jpeg = await self.image_store.get(original_key(status.pet_type, status.pet_id))
        if jpeg is None:
            await self._correct_flags(status, False, False)
            return self._not_found("Image not found")

        try:
            webp = await self._convert_to_webp(jpeg)
        except ConversionError as e:
            logger.error(
                "On-demand WebP conversion failed",
                exception=e,
                extra_context={"pet_id": status.pet_id},
            )
            return ImageServeResult(status_code=500, message=GENERIC_ERROR_MESSAGE)

        await self.image_store.put(
            optimized_key(status.pet_type, status.pet_id),
            webp,
            VARIANT_CONTENT_TYPES[ImageVariant.OPTIMIZED],
            {"pet-id": status.pet_id, "source": "on-demand"},
        )
        try:
            await self.status_service.set_image_flags(status.pet_id, True, True)
        except StatusWriteError as e:
            logger.warning(f"WebP stored but flag update failed: {e}")

        logger.info(
            "Generated missing WebP from JPEG", extra_context={"pet_id": status.pet_id}
        )
        return self._ok(webp, ImageFormat.WEBP, negotiated)

    async def _convert_to_webp(self, jpeg: bytes) -> bytes:
        result = await self.converter.convert_async(jpeg)
        return result.webp_bytes

    async def serve(
        self,
        pet_type: PetType,
        pet_id: str,
        image_format: ImageFormat,
        accept_header: Optional[str] = None,
    ) -> ImageServeResult:
        """Resolve one image request. Never raises for internal failures."""
        resolved = resolve_format(image_format, accept_header)
        negotiated = ImageFormat(image_format) == ImageFormat.AUTO
        context = {"pet_id": pet_id, "format": resolved.value}

        try:
            status = await self.status_service.get_status(pet_id)
            if status is None or status.pet_type != PetType(pet_type):
                return self._not_found("Pet not found")

            if resolved == ImageFormat.WEBP:
                return await self._serve_webp(status, negotiated)
            return await self._serve_jpeg(status, negotiated)

        except (PawsyncError, DatabaseOperationError) as e:
            logger.error("Image request failed", exception=e, extra_context=context)
            return ImageServeResult(status_code=500, message=GENERIC_ERROR_MESSAGE)

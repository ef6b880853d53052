"""
Object store backends.

    store = create_image_store(settings)
    await store.put(original_key("dog", pet_id), jpeg_bytes, "image/jpeg")
"""

from ..config import Settings
from ..enums import StorageBackend
from .base import ImageStore
from .local_store import LocalImageStore
from .s3_store import S3ImageStore


def create_image_store(settings: Settings) -> ImageStore:
    """Build the configured object store backend."""
    if settings.storage_backend == StorageBackend.LOCAL:
        return LocalImageStore(settings.images_directory)

    return S3ImageStore(
        bucket=settings.s3_bucket,
        endpoint_url=settings.s3_endpoint_url,
        access_key_id=settings.s3_access_key_id,
        secret_access_key=settings.s3_secret_access_key,
        region=settings.s3_region,
    )


__all__ = ["ImageStore", "LocalImageStore", "S3ImageStore", "create_image_store"]

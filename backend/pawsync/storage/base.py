# backend/pawsync/storage/base.py
"""
Object store capability.

The object store is the single source of truth for image bytes. Every
operation is idempotent: put overwrites, and get/head on a missing key return
None so callers treat "not found" as data.
"""

from abc import ABC, abstractmethod
from typing import AsyncIterator, Dict, Optional

from ..models.storage_model import ObjectHead, ObjectListing


class ImageStore(ABC):
    """Abstract object store keyed by string paths."""

    @abstractmethod
    async def get(self, key: str) -> Optional[bytes]:
        """Object bytes, or None when the key does not exist."""

    @abstractmethod
    async def put(
        self,
        key: str,
        data: bytes,
        content_type: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> None:
        """
        Write an object, replacing any existing one.

        Raises:
            StoreWriteError: If the write did not complete
        """

    @abstractmethod
    async def head(self, key: str) -> Optional[ObjectHead]:
        """Size and upload time, or None when the key does not exist."""

    @abstractmethod
    def list_by_prefix(self, prefix: str) -> AsyncIterator[ObjectListing]:
        """Every object under ``prefix`` as one logical iteration."""

    async def exists(self, key: str) -> bool:
        return await self.head(key) is not None

    async def close(self) -> None:
        """Release client resources. Default is a no-op."""
        return None

# backend/pawsync/storage/local_store.py
"""
Filesystem object store for development and tests.

Objects live at ``{root}/{key}``. Content type and user metadata are kept in a
JSON sidecar under ``{root}/.meta/`` so listings only ever see real objects.
"""

import asyncio
import json
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import AsyncIterator, Dict, List, Optional, Union

from ..enums import LogEmoji, LoggerName
from ..exceptions import StoreUnavailableError, StoreWriteError
from ..models.storage_model import ObjectHead, ObjectListing
from ..services.logger import get_service_logger
from ..utils.time_utils import UTC_TIMEZONE
from .base import ImageStore

logger = get_service_logger(LoggerName.IMAGE_STORE, LogEmoji.STORAGE)

META_DIRECTORY = ".meta"


class LocalImageStore(ImageStore):
    """ImageStore backed by a directory tree."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    def _object_path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        root = self.root.resolve()
        if root not in path.parents:
            raise ValueError(f"Key escapes store root: {key}")
        if path.relative_to(root).parts[0] == META_DIRECTORY:
            raise ValueError(f"Key uses reserved prefix: {key}")
        return path

    def _meta_path(self, key: str) -> Path:
        return self.root / META_DIRECTORY / f"{key}.json"

    @staticmethod
    def _atomic_write(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp-")
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
            os.replace(tmp_name, path)
        except OSError:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    async def get(self, key: str) -> Optional[bytes]:
        path = self._object_path(key)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StoreUnavailableError(
                f"Failed to read {key}: {e}", operation="get", details={"key": key}
            ) from e

    async def put(
        self,
        key: str,
        data: bytes,
        content_type: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> None:
        path = self._object_path(key)
        sidecar = json.dumps(
            {
                "content_type": content_type,
                "metadata": {k: str(v) for k, v in (metadata or {}).items()},
            }
        ).encode("utf-8")

        try:
            await asyncio.to_thread(self._atomic_write, path, data)
            await asyncio.to_thread(self._atomic_write, self._meta_path(key), sidecar)
        except OSError as e:
            raise StoreWriteError(
                f"Failed to write {key}: {e}",
                operation="put",
                details={"key": key, "size": len(data)},
            ) from e

        logger.debug(f"Stored {key}", extra_context={"key": key, "size": len(data)})

    def _read_head(self, key: str, path: Path) -> ObjectHead:
        stat = path.stat()

        content_type = None
        metadata: Dict[str, str] = {}
        meta_path = self._meta_path(key)
        if meta_path.exists():
            sidecar = json.loads(meta_path.read_text(encoding="utf-8"))
            if not isinstance(sidecar, dict):
                raise ValueError("metadata sidecar is not an object")
            content_type = sidecar.get("content_type")
            metadata = sidecar.get("metadata") or {}

        return ObjectHead(
            key=key,
            size=stat.st_size,
            uploaded_at=datetime.fromtimestamp(stat.st_mtime, tz=UTC_TIMEZONE),
            content_type=content_type,
            metadata=metadata,
        )

    async def head(self, key: str) -> Optional[ObjectHead]:
        path = self._object_path(key)
        try:
            return await asyncio.to_thread(self._read_head, key, path)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            # ValueError covers unreadable or malformed sidecars
            raise StoreUnavailableError(
                f"Failed to read metadata for {key}: {e}", operation="head", details={"key": key}
            ) from e

    def _scan(self, prefix: str) -> List[ObjectListing]:
        if not self.root.exists():
            return []

        listings = []
        for path in sorted(self.root.rglob("*")):
            if not path.is_file():
                continue
            relative = path.relative_to(self.root)
            if relative.parts[0] == META_DIRECTORY or path.name.startswith(".tmp-"):
                continue
            key = relative.as_posix()
            if not key.startswith(prefix):
                continue
            stat = path.stat()
            listings.append(
                ObjectListing(
                    key=key,
                    size=stat.st_size,
                    last_modified=datetime.fromtimestamp(
                        stat.st_mtime, tz=UTC_TIMEZONE
                    ),
                )
            )
        return listings

    async def list_by_prefix(self, prefix: str) -> AsyncIterator[ObjectListing]:
        try:
            listings = await asyncio.to_thread(self._scan, prefix)
        except OSError as e:
            raise StoreUnavailableError(
                f"Failed to list {prefix}: {e}",
                operation="list_by_prefix",
                details={"prefix": prefix},
            ) from e

        for listing in listings:
            yield listing

    async def delete(self, key: str) -> None:
        """Remove an object. Missing keys are ignored."""
        path = self._object_path(key)
        for target in (path, self._meta_path(key)):
            try:
                await asyncio.to_thread(target.unlink)
            except FileNotFoundError:
                pass

# backend/pawsync/storage/s3_store.py
"""
S3-compatible object store (Cloudflare R2, AWS S3, MinIO).

boto3 is synchronous; every call runs in a worker thread so the event loop
keeps serving other pets while a request is in flight.
"""

import asyncio
from typing import Any, AsyncIterator, Dict, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ..enums import LogEmoji, LoggerName
from ..exceptions import StoreUnavailableError, StoreWriteError
from ..models.storage_model import ObjectHead, ObjectListing
from ..services.logger import get_service_logger
from .base import ImageStore

logger = get_service_logger(LoggerName.IMAGE_STORE, LogEmoji.STORAGE)

NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}
LIST_PAGE_SIZE = 1000


def _is_not_found(error: ClientError) -> bool:
    code = str(error.response.get("Error", {}).get("Code", ""))
    status = error.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
    return code in NOT_FOUND_CODES or status == 404


class S3ImageStore(ImageStore):
    """ImageStore backed by an S3-compatible bucket."""

    def __init__(
        self,
        bucket: str,
        endpoint_url: Optional[str] = None,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        region: str = "auto",
        client: Any = None,
    ):
        """
        Args:
            bucket: Bucket name
            endpoint_url: Custom endpoint for R2/MinIO, None for AWS
            access_key_id: Credentials, None to use the default chain
            secret_access_key: Credentials, None to use the default chain
            region: Region name; R2 uses "auto"
            client: Pre-built boto3 client, mainly for tests
        """
        self.bucket = bucket
        self._client = client or boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            region_name=region,
            config=Config(retries={"max_attempts": 2, "mode": "standard"}),
        )

    async def get(self, key: str) -> Optional[bytes]:
        def _get() -> Optional[bytes]:
            try:
                response = self._client.get_object(Bucket=self.bucket, Key=key)
            except ClientError as e:
                if _is_not_found(e):
                    return None
                raise
            body = response["Body"]
            try:
                return body.read()
            finally:
                body.close()

        try:
            return await asyncio.to_thread(_get)
        except (ClientError, BotoCoreError) as e:
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
        try:
            await asyncio.to_thread(
                self._client.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                Metadata={k: str(v) for k, v in (metadata or {}).items()},
            )
        except (ClientError, BotoCoreError) as e:
            raise StoreWriteError(
                f"Failed to write {key}: {e}",
                operation="put",
                details={"key": key, "size": len(data)},
            ) from e

        logger.debug(
            f"Stored {key}", extra_context={"key": key, "size": len(data)}
        )

    async def head(self, key: str) -> Optional[ObjectHead]:
        def _head() -> Optional[Dict[str, Any]]:
            try:
                return self._client.head_object(Bucket=self.bucket, Key=key)
            except ClientError as e:
                if _is_not_found(e):
                    return None
                raise

        try:
            response = await asyncio.to_thread(_head)
        except (ClientError, BotoCoreError) as e:
            raise StoreUnavailableError(
                f"Failed to read metadata for {key}: {e}", operation="head", details={"key": key}
            ) from e

        if response is None:
            return None
        return ObjectHead(
            key=key,
            size=int(response.get("ContentLength", 0)),
            uploaded_at=response.get("LastModified"),
            content_type=response.get("ContentType"),
            metadata=response.get("Metadata") or {},
        )

    async def list_by_prefix(self, prefix: str) -> AsyncIterator[ObjectListing]:
        continuation_token: Optional[str] = None

        while True:
            params: Dict[str, Any] = {
                "Bucket": self.bucket,
                "Prefix": prefix,
                "MaxKeys": LIST_PAGE_SIZE,
            }
            if continuation_token:
                params["ContinuationToken"] = continuation_token

            try:
                page = await asyncio.to_thread(self._client.list_objects_v2, **params)
            except (ClientError, BotoCoreError) as e:
                raise StoreUnavailableError(
                    f"Failed to list {prefix}: {e}",
                    operation="list_by_prefix",
                    details={"prefix": prefix},
                ) from e

            for item in page.get("Contents", []):
                yield ObjectListing(
                    key=item["Key"],
                    size=int(item.get("Size", 0)),
                    last_modified=item.get("LastModified"),
                )

            if not page.get("IsTruncated"):
                break
            continuation_token = page.get("NextContinuationToken")

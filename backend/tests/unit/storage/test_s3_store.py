# backend/tests/unit/storage/test_s3_store.py
"""Tests for S3ImageStore against a mocked boto3 client."""

from datetime import datetime, timezone
from unittest.mock import Mock

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from pawsync.exceptions import StoreUnavailableError, StoreWriteError
from pawsync.storage.s3_store import S3ImageStore


def client_error(code: str, status: int = 400, operation: str = "GetObject") -> ClientError:
    return ClientError(
        {"Error": {"Code": code, "Message": code}, "ResponseMetadata": {"HTTPStatusCode": status}},
        operation,
    )


@pytest.fixture
def s3_client():
    return Mock()


@pytest.fixture
def s3_store(s3_client):
    return S3ImageStore(bucket="pet-images", client=s3_client)


@pytest.mark.storage
class TestS3ImageStore:
    @pytest.mark.asyncio
    async def test_get_reads_and_closes_body(self, s3_store, s3_client):
        body = Mock()
        body.read.return_value = b"jpeg"
        s3_client.get_object.return_value = {"Body": body}

        assert await s3_store.get("pets/dogs/1/original.jpg") == b"jpeg"
        s3_client.get_object.assert_called_once_with(
            Bucket="pet-images", Key="pets/dogs/1/original.jpg"
        )
        body.close.assert_called_once()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("code,status", [("NoSuchKey", 404), ("404", 404), ("NotFound", 404)])
    async def test_not_found_is_none(self, s3_store, s3_client, code, status):
        s3_client.get_object.side_effect = client_error(code, status)
        s3_client.head_object.side_effect = client_error(code, status, "HeadObject")

        assert await s3_store.get("k") is None
        assert await s3_store.head("k") is None

    @pytest.mark.asyncio
    async def test_other_errors_are_unavailable(self, s3_store, s3_client):
        s3_client.head_object.side_effect = client_error("AccessDenied", 403, "HeadObject")

        with pytest.raises(StoreUnavailableError):
            await s3_store.head("k")

    @pytest.mark.asyncio
    async def test_connection_error_is_unavailable(self, s3_store, s3_client):
        s3_client.get_object.side_effect = EndpointConnectionError(endpoint_url="https://r2")

        with pytest.raises(StoreUnavailableError):
            await s3_store.get("k")

    @pytest.mark.asyncio
    async def test_head_maps_response(self, s3_store, s3_client):
        uploaded = datetime(2024, 5, 1, tzinfo=timezone.utc)
        s3_client.head_object.return_value = {
            "ContentLength": 1234,
            "LastModified": uploaded,
            "ContentType": "image/webp",
            "Metadata": {"pet-id": "1"},
        }

        head = await s3_store.head("pets/dogs/1/optimized.webp")

        assert head.size == 1234
        assert head.uploaded_at == uploaded
        assert head.content_type == "image/webp"
        assert head.metadata == {"pet-id": "1"}

    @pytest.mark.asyncio
    async def test_put_passes_content_type_and_metadata(self, s3_store, s3_client):
        await s3_store.put("k", b"data", "image/png", {"pet-id": 7})

        kwargs = s3_client.put_object.call_args.kwargs
        assert kwargs["ContentType"] == "image/png"
        assert kwargs["Metadata"] == {"pet-id": "7"}
        assert kwargs["Body"] == b"data"

    @pytest.mark.asyncio
    async def test_put_failure_is_write_error(self, s3_store, s3_client):
        s3_client.put_object.side_effect = client_error("InternalError", 500, "PutObject")

        with pytest.raises(StoreWriteError):
            await s3_store.put("k", b"data", "image/png")

    @pytest.mark.asyncio
    async def test_list_follows_continuation(self, s3_store, s3_client):
        s3_client.list_objects_v2.side_effect = [
            {
                "Contents": [{"Key": "pets/dogs/1/original.jpg", "Size": 10}],
                "IsTruncated": True,
                "NextContinuationToken": "t1",
            },
            {
                "Contents": [{"Key": "pets/dogs/2/original.jpg", "Size": 20}],
                "IsTruncated": False,
            },
        ]

        keys = [listing.key async for listing in s3_store.list_by_prefix("pets/dogs/")]

        assert keys == ["pets/dogs/1/original.jpg", "pets/dogs/2/original.jpg"]
        second_call = s3_client.list_objects_v2.call_args_list[1].kwargs
        assert second_call["ContinuationToken"] == "t1"
        assert second_call["Prefix"] == "pets/dogs/"

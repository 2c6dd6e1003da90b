"""
Pytest Configuration and Shared Fixtures.

This module contains shared pytest fixtures for testing the Photo Ingest API.
It provides an in-memory stand-in for the boto3 S3 client, multipart body
builders, service fixtures wired to the fake client, and an HTTP client
bound to a fresh application per test.

Usage:
    Fixtures defined here are automatically available to all tests in the
    photo_ingest/tests directory without needing explicit imports.

Example:
    async def test_example(async_client, fake_s3):
        response = await async_client.post("/api/upload", files=...)
        assert response.status_code == 200
"""

import itertools
import os
import sys
from typing import Any, AsyncGenerator, Dict, List, Optional, Tuple

import pytest
import pytest_asyncio
from botocore.exceptions import ClientError
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from starlette.requests import ClientDisconnect
from tenacity import wait_none

# Ensure the package is in the path
current_directory = os.path.dirname(os.path.realpath(__file__))
app_base_directory = os.path.abspath(os.path.join(current_directory, "../../"))
if app_base_directory not in sys.path:
    sys.path.insert(0, app_base_directory)

from photo_ingest.api import create_app
from photo_ingest.core.config import MIB, Settings
from photo_ingest.deps import get_lister, get_writer
from photo_ingest.services.gallery_service import GalleryLister
from photo_ingest.services.storage_service import RetryPolicy, StorageWriter

BUCKET = "photos"
ENDPOINT = "http://s3.test"
BOUNDARY = "----photoingestboundary7MA4YWxkTrZu0gW"

# Smallest valid headers for a few allowed types
JPEG_BYTES = b"\xff\xd8\xff\xe0\x00\x10JFIF\x00" + b"\x00" * 256
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 256


# ---------------------------------------------------------------------------
# Fake S3 Client
# ---------------------------------------------------------------------------


def make_client_error(
    code: str = "ServiceUnavailable",
    status_code: int = 503,
    operation: str = "PutObject",
) -> ClientError:
    """Build a botocore ClientError as the S3 client would raise it."""
    return ClientError(
        {
            "Error": {"Code": code, "Message": f"{code} from test backend"},
            "ResponseMetadata": {"HTTPStatusCode": status_code},
        },
        operation,
    )


class FakePaginator:
    """Paginator over the fake client's objects."""

    def __init__(self, client: "FakeS3Client") -> None:
        self.client = client

    def paginate(self, Bucket: str, Prefix: str = ""):
        self.client._record("list_objects_v2", {"Bucket": Bucket, "Prefix": Prefix})
        keys = sorted(k for k in self.client.objects if k.startswith(Prefix))
        if not keys:
            yield {"KeyCount": 0}
            return
        size = self.client.page_size
        for start in range(0, len(keys), size):
            chunk = keys[start : start + size]
            yield {"KeyCount": len(chunk), "Contents": [{"Key": k} for k in chunk]}


class FakeS3Client:
    """In-memory subset of the boto3 S3 client API.

    Attributes:
        objects: Stored objects by key, with their body and write parameters.
        uploads: Open multipart uploads by upload id.
        aborted: Upload ids that were aborted.
        calls: Every operation invoked, in order, with its arguments.
    """

    def __init__(self, page_size: int = 1000) -> None:
        self.objects: Dict[str, Dict[str, Any]] = {}
        self.uploads: Dict[str, Dict[str, Any]] = {}
        self.aborted: List[str] = []
        self.calls: List[Tuple[str, Dict[str, Any]]] = []
        self.page_size = page_size
        self._failures: Dict[str, List[BaseException]] = {}
        self._ids = itertools.count(1)

    def fail(self, operation: str, *errors: BaseException) -> None:
        """Queue errors raised by the next calls to ``operation``."""
        self._failures.setdefault(operation, []).extend(errors)

    def count(self, operation: str) -> int:
        return sum(1 for name, _ in self.calls if name == operation)

    def _record(self, operation: str, kwargs: Dict[str, Any]) -> None:
        self.calls.append((operation, kwargs))
        pending = self._failures.get(operation)
        if pending:
            raise pending.pop(0)

    def put_object(self, Bucket: str, Key: str, Body: bytes, **params: Any):
        self._record("put_object", {"Bucket": Bucket, "Key": Key, **params})
        self.objects[Key] = {"Body": bytes(Body), **params}
        return {"ETag": '"single"'}

    def create_multipart_upload(self, Bucket: str, Key: str, **params: Any):
        self._record("create_multipart_upload", {"Bucket": Bucket, "Key": Key, **params})
        upload_id = f"upload-{next(self._ids)}"
        self.uploads[upload_id] = {"Key": Key, "params": params, "parts": {}}
        return {"UploadId": upload_id}

    def upload_part(
        self, Bucket: str, Key: str, UploadId: str, PartNumber: int, Body: bytes
    ):
        self._record(
            "upload_part",
            {"Bucket": Bucket, "Key": Key, "UploadId": UploadId, "PartNumber": PartNumber},
        )
        self.uploads[UploadId]["parts"][PartNumber] = bytes(Body)
        return {"ETag": f'"etag-{PartNumber}"'}

    def complete_multipart_upload(
        self, Bucket: str, Key: str, UploadId: str, MultipartUpload: Dict[str, Any]
    ):
        self._record(
            "complete_multipart_upload",
            {"Bucket": Bucket, "Key": Key, "UploadId": UploadId},
        )
        upload = self.uploads.pop(UploadId)
        body = b"".join(
            upload["parts"][part["PartNumber"]] for part in MultipartUpload["Parts"]
        )
        self.objects[Key] = {"Body": body, **upload["params"]}
        return {"Key": Key}

    def abort_multipart_upload(self, Bucket: str, Key: str, UploadId: str):
        self._record(
            "abort_multipart_upload",
            {"Bucket": Bucket, "Key": Key, "UploadId": UploadId},
        )
        self.uploads.pop(UploadId, None)
        self.aborted.append(UploadId)
        return {}

    def delete_object(self, Bucket: str, Key: str):
        self._record("delete_object", {"Bucket": Bucket, "Key": Key})
        self.objects.pop(Key, None)
        return {}

    def get_paginator(self, operation_name: str) -> FakePaginator:
        assert operation_name == "list_objects_v2"
        return FakePaginator(self)


# ---------------------------------------------------------------------------
# Multipart Body Helpers
# ---------------------------------------------------------------------------


def encode_multipart(
    parts: List[Tuple[str, Optional[str], Optional[str], bytes]],
    boundary: str = BOUNDARY,
) -> bytes:
    """Encode ``(name, filename, content_type, data)`` parts as a form body."""
    body = b""
    for name, filename, content_type, data in parts:
        disposition = f'form-data; name="{name}"'
        if filename is not None:
            disposition += f'; filename="{filename}"'
        head = f"--{boundary}\r\nContent-Disposition: {disposition}\r\n"
        if content_type:
            head += f"Content-Type: {content_type}\r\n"
        head += "\r\n"
        body += head.encode() + data + b"\r\n"
    body += f"--{boundary}--\r\n".encode()
    return body


class ChunkedStream:
    """Async byte stream that records how much of the body was read.

    Attributes:
        consumed: Bytes handed to the reader so far.
    """

    def __init__(
        self,
        body: bytes,
        chunk_size: int = 1024,
        disconnect_after: Optional[int] = None,
    ) -> None:
        self.body = body
        self.chunk_size = chunk_size
        self.disconnect_after = disconnect_after
        self.consumed = 0

    def __aiter__(self):
        return self._chunks()

    async def _chunks(self):
        for start in range(0, len(self.body), self.chunk_size):
            if self.disconnect_after is not None and start >= self.disconnect_after:
                raise ClientDisconnect()
            chunk = self.body[start : start + self.chunk_size]
            self.consumed += len(chunk)
            yield chunk


# ---------------------------------------------------------------------------
# Helper Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def jpeg_bytes() -> bytes:
    return JPEG_BYTES


@pytest.fixture
def png_bytes() -> bytes:
    return PNG_BYTES


@pytest.fixture
def make_multipart():
    """Return a builder producing ``(body, content_type_header)``.

    Example:
        body, content_type = make_multipart([("file", "a.jpg", "image/jpeg", data)])
    """

    def build(parts, boundary: str = BOUNDARY) -> Tuple[bytes, str]:
        return (
            encode_multipart(parts, boundary),
            f"multipart/form-data; boundary={boundary}",
        )

    return build


@pytest.fixture
def chunked_stream():
    """Return the ChunkedStream class for feeding bodies to the decoder."""
    return ChunkedStream


@pytest.fixture
def client_error():
    """Return a factory for botocore ClientError instances."""
    return make_client_error


# ---------------------------------------------------------------------------
# Settings and Service Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def spool_dir(tmp_path) -> str:
    """Directory receiving spool files, so tests can check it is left empty."""
    directory = tmp_path / "spool"
    directory.mkdir()
    return str(directory)


@pytest.fixture
def test_settings(spool_dir: str) -> Settings:
    """Fully configured settings pointing at the fake backend."""
    return Settings(
        _env_file=None,
        max_file_size=64 * 1024,
        multipart_threshold=5 * MIB,
        multipart_chunk_size=5 * MIB,
        spool_dir=spool_dir,
        rate_limit_points=10,
        rate_limit_duration=60,
        retry_count=3,
        retry_delay_ms=0,
        s3_endpoint=ENDPOINT,
        s3_bucket_name=BUCKET,
        s3_access_key_id="test-access-key",
        s3_secret_access_key="test-secret-key",
        s3_region="us-east-1",
    )


@pytest.fixture
def fake_s3() -> FakeS3Client:
    """Provide an empty in-memory S3 client."""
    return FakeS3Client()


@pytest.fixture
def storage_writer(fake_s3: FakeS3Client) -> StorageWriter:
    """StorageWriter against the fake client with no backoff delay."""
    return StorageWriter(
        client=fake_s3,
        bucket_name=BUCKET,
        public_endpoint=ENDPOINT,
        multipart_threshold=5 * MIB,
        chunk_size=5 * MIB,
        retry_policy=RetryPolicy(attempts=3, wait=wait_none()),
        acl="public-read",
    )


@pytest.fixture
def gallery_lister(fake_s3: FakeS3Client) -> GalleryLister:
    """GalleryLister against the fake client."""
    return GalleryLister(client=fake_s3, bucket_name=BUCKET, public_endpoint=ENDPOINT)


# ---------------------------------------------------------------------------
# HTTP Client Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def test_app(
    test_settings: Settings,
    storage_writer: StorageWriter,
    gallery_lister: GalleryLister,
) -> FastAPI:
    """Fresh application with storage services bound to the fake client."""
    app = create_app(settings=test_settings)
    app.dependency_overrides[get_writer] = lambda: storage_writer
    app.dependency_overrides[get_lister] = lambda: gallery_lister
    return app


@pytest_asyncio.fixture(scope="function")
async def async_client(test_app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Provide an async HTTP client for making API requests.

    Yields:
        AsyncClient: An async HTTP client for API testing.
    """
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

"""
Storage Service Module.

Writes uploaded images to S3-compatible object storage.

Architecture:
    StorageWriter -> boto3 S3 client -> object store

Files up to ``multipart_threshold`` bytes go up in one ``put_object`` call.
Larger files use a multipart upload, so no single request has to carry the
whole object. Both paths run inside the same retry loop:

    - every attempt reopens the spool and reads it from the first byte;
    - a failed or cancelled multipart attempt is aborted server-side before
      the next attempt, so no orphaned parts or partial objects remain;
    - only transient failures (connection errors, throttling, 5xx) are
      retried; anything else fails at once;
    - if the client has disconnected, no further attempt is made.

Usage:
    writer = StorageWriter(client=create_s3_client(settings), bucket_name="photos",
                           public_endpoint="https://s3.example.com")
    outcome = await writer.write(key, parsed_file)
    outcome.url  # https://s3.example.com/photos/2024/01/15/<uuid>.jpg
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional
from urllib.parse import quote

import aiofiles
from botocore.exceptions import (
    ClientError,
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    stop_after_delay,
    wait_exponential,
)
from tenacity.stop import stop_base
from tenacity.wait import wait_base

from photo_ingest.core.config import Settings
from photo_ingest.services.base import BaseService
from photo_ingest.services.key_service import StorageKey
from photo_ingest.services.upload_decoder import ParsedFile

MIB = 1024 * 1024

TRANSIENT_ERROR_CODES = frozenset(
    {
        "InternalError",
        "RequestTimeout",
        "RequestTimeTooSkewed",
        "ServiceUnavailable",
        "SlowDown",
        "Throttling",
        "ThrottlingException",
    }
)

TRANSIENT_BOTOCORE_ERRORS = (
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)


class StorageError(Exception):
    """Base exception for storage operations."""

    pass


class TransientStorageError(StorageError):
    """Raised for failures worth another attempt."""

    pass


class StorageWriteError(StorageError):
    """Raised when a write fails for good (terminal or retries exhausted).

    Attributes:
        attempts: Number of attempts made.
    """

    def __init__(self, message: str, attempts: int = 0) -> None:
        self.attempts = attempts
        super().__init__(message)


class UploadCancelledError(StorageError):
    """Raised when the client disconnects before a retry."""

    pass


@dataclass
class UploadOutcome:
    """Result of a successful write.

    Attributes:
        key: The storage key written.
        url: Externally addressable URL of the object.
        size: Bytes written.
        multipart: Whether the multipart path was used.
        attempts: Attempts taken, including the successful one.
    """

    key: StorageKey
    url: str
    size: int
    multipart: bool
    attempts: int = 1


@dataclass
class RetryPolicy:
    """Attempt budget and backoff for storage writes.

    The default wait grows exponentially from ``delay_seconds`` and never
    goes below it. Pass any tenacity wait strategy to replace it. When
    ``max_elapsed_seconds`` is set, no new attempt starts once that much
    time has passed since the first one.

    Attributes:
        attempts: Total attempts, including the first.
        delay_seconds: Minimum delay between attempts.
        max_delay_seconds: Cap for the exponential backoff.
        max_elapsed_seconds: Optional time budget for starting attempts.
        wait: Optional tenacity wait strategy overriding the default.
    """

    attempts: int = 3
    delay_seconds: float = 0.5
    max_delay_seconds: float = 8.0
    max_elapsed_seconds: Optional[float] = None
    wait: Optional[wait_base] = field(default=None)

    def stop_strategy(self) -> stop_base:
        stop = stop_after_attempt(self.attempts)
        if self.max_elapsed_seconds is not None:
            stop = stop | stop_after_delay(self.max_elapsed_seconds)
        return stop

    def wait_strategy(self) -> wait_base:
        if self.wait is not None:
            return self.wait
        return wait_exponential(
            multiplier=self.delay_seconds,
            min=self.delay_seconds,
            max=max(self.delay_seconds, self.max_delay_seconds),
        )


def is_transient(exc: BaseException) -> bool:
    """Return True if ``exc`` is a storage failure worth retrying."""
    if isinstance(exc, TRANSIENT_BOTOCORE_ERRORS):
        return True
    if isinstance(exc, ClientError):
        error = exc.response.get("Error", {})
        status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode") or 0
        return error.get("Code") in TRANSIENT_ERROR_CODES or status >= 500
    return False


def content_disposition(filename: str) -> str:
    """Build an ``inline`` Content-Disposition carrying a percent-encoded name."""
    encoded = quote(filename, safe="!*'()")
    return f'inline; filename="{encoded}"'


def object_url(public_endpoint: str, bucket_name: str, key: str) -> str:
    """Compose the public URL of ``key``."""
    return f"{public_endpoint.rstrip('/')}/{bucket_name}/{quote(key, safe='/')}"


class StorageWriter(BaseService):
    """Persists spooled uploads to the object store.

    Attributes:
        bucket_name: Target bucket.
        public_endpoint: Endpoint used for returned URLs.
        multipart_threshold: Size above which the multipart path is used.
        chunk_size: Multipart part size.
        retry_policy: Attempt budget and backoff.
        acl: Optional canned ACL for new objects.
    """

    def __init__(
        self,
        client: Any,
        bucket_name: str,
        public_endpoint: str,
        multipart_threshold: int = 5 * MIB,
        chunk_size: int = 5 * MIB,
        retry_policy: Optional[RetryPolicy] = None,
        acl: Optional[str] = None,
    ) -> None:
        super().__init__()
        self.client = client
        self.bucket_name = bucket_name
        self.public_endpoint = public_endpoint
        self.multipart_threshold = multipart_threshold
        self.chunk_size = chunk_size
        self.retry_policy = retry_policy or RetryPolicy()
        self.acl = acl

    async def write(
        self,
        key: StorageKey,
        file: ParsedFile,
        is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
    ) -> UploadOutcome:
        """Write ``file`` under ``key``, retrying transient failures.

        Args:
            key: Destination key.
            file: The spooled upload.
            is_disconnected: Async callable reporting whether the client
                went away; checked before every retry.

        Returns:
            UploadOutcome with the key and public URL.

        Raises:
            StorageWriteError: Terminal failure or retry budget exhausted.
            UploadCancelledError: The client disconnected before a retry.
        """
        multipart = file.size > self.multipart_threshold
        extra = {
            "key": key.path,
            "file_size": file.size,
            "threshold": self.multipart_threshold,
        }
        if multipart:
            self.log_info("Using multipart upload", extra=extra)
        else:
            self.log_info("Using single-part upload", extra=extra)

        retrying = AsyncRetrying(
            stop=self.retry_policy.stop_strategy(),
            wait=self.retry_policy.wait_strategy(),
            retry=retry_if_exception_type(TransientStorageError),
            before_sleep=self._log_retry,
            reraise=True,
        )

        attempt_number = 0
        try:
            async for attempt in retrying:
                with attempt:
                    attempt_number = attempt.retry_state.attempt_number
                    if attempt_number > 1 and is_disconnected is not None:
                        if await is_disconnected():
                            self.log_warning(
                                "Client disconnected, not retrying upload",
                                extra={"key": key.path, "attempt": attempt_number},
                            )
                            raise UploadCancelledError("Client disconnected")
                    if multipart:
                        await self._multipart_upload(key, file)
                    else:
                        await self._put_object(key, file)
        except TransientStorageError as e:
            self.log_error(
                "Error uploading to storage, retries exhausted",
                extra={"key": key.path, "attempts": attempt_number},
                exc_info=e,
            )
            raise StorageWriteError(
                f"Upload failed after {attempt_number} attempts", attempts=attempt_number
            ) from e

        url = object_url(self.public_endpoint, self.bucket_name, key.path)
        self.log_info(
            "File uploaded successfully",
            extra={"fileUrl": url, "fileName": key.path, "attempts": attempt_number},
        )
        return UploadOutcome(
            key=key,
            url=url,
            size=file.size,
            multipart=multipart,
            attempts=attempt_number,
        )

    def _log_retry(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        self.log_warning(
            "Storage write failed, retrying",
            extra={
                "attempt": retry_state.attempt_number,
                "error": str(exc),
                "sleep": retry_state.next_action.sleep if retry_state.next_action else None,
            },
        )

    def _object_params(self, key: StorageKey, file: ParsedFile) -> Dict[str, Any]:
        params = {
            "Bucket": self.bucket_name,
            "Key": key.path,
            "ContentType": file.content_type,
            "ContentDisposition": content_disposition(file.filename or key.object_name),
        }
        if self.acl:
            params["ACL"] = self.acl
        return params

    async def _call(self, operation: str, **kwargs: Any) -> Dict[str, Any]:
        """Invoke a client operation, classifying its failure."""
        method = getattr(self.client, operation)
        try:
            return await self.run_blocking(operation, method, **kwargs)
        except Exception as e:
            if is_transient(e):
                raise TransientStorageError(f"{operation} failed: {e}") from e
            self.log_error(
                "Storage operation failed",
                extra={"operation": operation, "key": kwargs.get("Key")},
                exc_info=e,
            )
            raise StorageWriteError(f"{operation} failed: {e}") from e

    async def _publish(self, key: StorageKey, operation: str, **kwargs: Any) -> None:
        """Run the call that makes ``key`` readable.

        The blocking call cannot be interrupted once it is in the threadpool.
        If the caller is cancelled meanwhile, the call is left to finish and
        any object it created is deleted before the cancellation propagates,
        so an upload reported as failed never stays in the bucket.
        """
        call = asyncio.ensure_future(self._call(operation, **kwargs))
        try:
            await asyncio.shield(call)
        except asyncio.CancelledError:
            await asyncio.shield(self._discard_published(key, call))
            raise

    async def _discard_published(self, key: StorageKey, call: "asyncio.Future") -> None:
        try:
            await call
        except Exception:
            # Nothing was written
            return

        self.log_warning(
            "Deleting object written by a cancelled upload",
            extra={"key": key.path},
        )
        try:
            await self.run_blocking(
                "delete_object",
                self.client.delete_object,
                Bucket=self.bucket_name,
                Key=key.path,
            )
        except Exception as e:
            self.log_error(
                "Failed to delete object of a cancelled upload",
                extra={"key": key.path},
                exc_info=e,
            )

    async def _put_object(self, key: StorageKey, file: ParsedFile) -> None:
        # Reopened per attempt so a failed attempt leaves no read position behind
        async with aiofiles.open(file.path, "rb") as handle:
            body = await handle.read()
        await self._publish(
            key, "put_object", Body=body, **self._object_params(key, file)
        )

    async def _multipart_upload(self, key: StorageKey, file: ParsedFile) -> None:
        created = await self._call(
            "create_multipart_upload", **self._object_params(key, file)
        )
        upload_id = created["UploadId"]
        parts: List[Dict[str, Any]] = []

        try:
            async with aiofiles.open(file.path, "rb") as handle:
                part_number = 1
                while chunk := await handle.read(self.chunk_size):
                    response = await self._call(
                        "upload_part",
                        Bucket=self.bucket_name,
                        Key=key.path,
                        UploadId=upload_id,
                        PartNumber=part_number,
                        Body=chunk,
                    )
                    parts.append({"ETag": response["ETag"], "PartNumber": part_number})
                    part_number += 1

            await self._publish(
                key,
                "complete_multipart_upload",
                Bucket=self.bucket_name,
                Key=key.path,
                UploadId=upload_id,
                MultipartUpload={"Parts": parts},
            )
        except BaseException:
            await self._abort_multipart_upload(key, upload_id)
            raise

    async def _abort_multipart_upload(self, key: StorageKey, upload_id: str) -> None:
        self.log_warning(
            "Aborting multipart upload",
            extra={"key": key.path, "upload_id": upload_id},
        )
        try:
            # Shielded so a cancelled request still discards its parts
            await asyncio.shield(
                self.run_blocking(
                    "abort_multipart_upload",
                    self.client.abort_multipart_upload,
                    Bucket=self.bucket_name,
                    Key=key.path,
                    UploadId=upload_id,
                )
            )
        except Exception as e:
            self.log_error(
                "Failed to abort multipart upload",
                extra={"key": key.path, "upload_id": upload_id},
                exc_info=e,
            )


def build_storage_writer(settings: Settings, client: Any) -> StorageWriter:
    """Create a StorageWriter configured from ``settings``."""
    return StorageWriter(
        client=client,
        bucket_name=settings.s3_bucket_name,
        public_endpoint=settings.public_endpoint,
        multipart_threshold=settings.multipart_threshold,
        chunk_size=settings.multipart_chunk_size,
        retry_policy=RetryPolicy(
            attempts=settings.retry_count,
            delay_seconds=settings.retry_delay_seconds,
            max_elapsed_seconds=settings.upload_timeout_seconds,
        ),
        acl=settings.object_acl,
    )


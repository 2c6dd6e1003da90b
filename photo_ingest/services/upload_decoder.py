"""
Upload Decoder Module.

Streams a ``multipart/form-data`` request body through python-multipart and
spools the single ``file`` part to a temporary file on disk.

Behaviour:
    - Only the first part named ``file`` that carries a non-empty filename is
      kept. Later ``file`` parts and all other fields are parsed and
      discarded without being stored.
    - The declared part Content-Type is checked against the image
      allow-list as soon as the part headers are read, before any bytes are
      spooled. This is a UX guard, not a security boundary.
    - The byte cap is enforced while streaming: the parse stops as soon as
      the spooled file passes ``max_bytes``, so an oversized body is never
      fully read.
    - A request without any body bytes is treated as carrying no file,
      whatever its Content-Type.
    - With ``timeout_seconds`` set, a body that is not fully received in
      time is abandoned, so a slow client cannot hold a spool open.
    - The spool is deleted when the ``decode`` context exits, whatever the
      exit path (success, validation error, storage error, cancellation).

Usage:
    decoder = UploadDecoder(max_bytes=40 * 1024 * 1024)
    async with decoder.decode(request) as parsed:
        await writer.write(key, parsed)
"""

import asyncio
import contextlib
import os
import tempfile
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import AsyncIterator, Dict, List, Optional, Tuple

import aiofiles
import aiofiles.os
from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import MultipartParser, parse_options_header
from starlette.requests import ClientDisconnect, Request

from photo_ingest.services.base import BaseService
from photo_ingest.utils.images import (
    ALLOWED_IMAGE_TYPES,
    SIGNATURE_PROBE_BYTES,
    matches_image_signature,
    normalize_mime_type,
)

FILE_FIELD = "file"


class UploadDecodeError(Exception):
    """Base exception for upload decoding failures."""

    pass


class NoFileError(UploadDecodeError):
    """Raised when the request carries no usable ``file`` part."""

    pass


class FileTooLargeError(UploadDecodeError):
    """Raised when the file part exceeds the byte cap."""

    def __init__(self, max_bytes: int) -> None:
        self.max_bytes = max_bytes
        super().__init__(f"File exceeds maximum size of {max_bytes} bytes")


class UnsupportedFileTypeError(UploadDecodeError):
    """Raised when the declared type is not an allowed image type."""

    def __init__(self, media_type: Optional[str], reason: Optional[str] = None) -> None:
        self.media_type = media_type
        super().__init__(reason or f"File type {media_type} is not supported")


class MalformedUploadError(UploadDecodeError):
    """Raised when the body is not valid multipart form data."""

    pass


class ClientDisconnectedError(UploadDecodeError):
    """Raised when the client goes away before the body is complete."""

    pass


class UploadTimeoutError(UploadDecodeError):
    """Raised when the body is not fully received in time."""

    def __init__(self, timeout_seconds: float) -> None:
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Upload not received within {timeout_seconds:g} seconds")


@dataclass
class ParsedFile:
    """A validated file spooled to disk.

    Attributes:
        filename: Original filename as sent by the client (untrusted).
        content_type: Normalized, allow-listed MIME type.
        size: Number of bytes spooled.
        path: Location of the spool file.
    """

    filename: str
    content_type: str
    size: int
    path: Path


@dataclass
class _Part:
    headers: Dict[bytes, bytes] = field(default_factory=dict)
    header_field: bytes = b""
    header_value: bytes = b""


class _Spool:
    """Temporary file holding the payload of the accepted part."""

    def __init__(self, directory: Optional[str]) -> None:
        self.directory = directory
        self.path: Optional[Path] = None
        self.size = 0
        self._handle = None

    async def open(self) -> None:
        fd, name = tempfile.mkstemp(prefix="upload-", dir=self.directory)
        os.close(fd)
        self.path = Path(name)
        self._handle = await aiofiles.open(self.path, "wb")

    async def write(self, data: bytes) -> None:
        await self._handle.write(data)
        self.size += len(data)

    async def close(self) -> None:
        if self._handle is not None:
            await self._handle.close()
            self._handle = None

    async def release(self) -> None:
        await self.close()
        if self.path is not None:
            with contextlib.suppress(FileNotFoundError):
                await aiofiles.os.remove(self.path)
            self.path = None


class UploadDecoder(BaseService):
    """Extracts and validates the ``file`` part of a multipart upload.

    Attributes:
        max_bytes: Maximum accepted file size.
        allowed_types: MIME types accepted for the file part.
        spool_dir: Directory for spool files (None for the system default).
        verify_signature: Also check leading bytes against the declared type.
        timeout_seconds: Time allowed for receiving the body (None for no limit).
    """

    def __init__(
        self,
        max_bytes: int,
        allowed_types=ALLOWED_IMAGE_TYPES,
        spool_dir: Optional[str] = None,
        verify_signature: bool = False,
        field_name: str = FILE_FIELD,
        timeout_seconds: Optional[float] = None,
    ) -> None:
        super().__init__()
        self.max_bytes = max_bytes
        self.allowed_types = frozenset(allowed_types)
        self.spool_dir = spool_dir
        self.verify_signature = verify_signature
        self.field_name = field_name
        self.timeout_seconds = timeout_seconds

    def decode(self, request: Request):
        """Decode the upload carried by ``request``.

        Returns:
            An async context manager yielding a ParsedFile.
        """
        return self.decode_stream(
            request.headers.get("content-type", ""), request.stream()
        )

    @asynccontextmanager
    async def decode_stream(
        self, content_type: str, stream: AsyncIterator[bytes]
    ) -> AsyncIterator[ParsedFile]:
        """Decode a multipart body from a byte stream.

        Args:
            content_type: The request Content-Type header.
            stream: The request body.

        Yields:
            ParsedFile backed by a spool that is removed on exit.

        Raises:
            NoFileError: No usable ``file`` part, or it was empty.
            FileTooLargeError: The file passed ``max_bytes``.
            UnsupportedFileTypeError: The declared type is not allowed.
            MalformedUploadError: The body could not be parsed.
            ClientDisconnectedError: The client disconnected mid-body.
            UploadTimeoutError: The body took longer than ``timeout_seconds``.
        """
        spool = _Spool(self.spool_dir)
        try:
            parsed = await self._parse_in_time(content_type, stream, spool)
            yield parsed
        finally:
            await spool.release()

    async def _parse_in_time(
        self, content_type: str, stream: AsyncIterator[bytes], spool: _Spool
    ) -> ParsedFile:
        if self.timeout_seconds is None:
            return await self._parse(content_type, stream, spool)
        try:
            return await asyncio.wait_for(
                self._parse(content_type, stream, spool), timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError as e:
            self.log_warning(
                "Timed out receiving upload",
                extra={"timeout_seconds": self.timeout_seconds, "received": spool.size},
            )
            raise UploadTimeoutError(self.timeout_seconds) from e

    def _make_parser(
        self, content_type: str, events: List[Tuple[str, bytes]]
    ) -> MultipartParser:
        boundary = self._boundary(content_type)

        def on_data(kind: str):
            def callback(data: bytes, start: int, end: int) -> None:
                events.append((kind, bytes(data[start:end])))

            return callback

        def on_event(kind: str):
            def callback() -> None:
                events.append((kind, b""))

            return callback

        return MultipartParser(
            boundary,
            {
                "on_part_begin": on_event("part_begin"),
                "on_part_data": on_data("part_data"),
                "on_part_end": on_event("part_end"),
                "on_header_field": on_data("header_field"),
                "on_header_value": on_data("header_value"),
                "on_header_end": on_event("header_end"),
                "on_headers_finished": on_event("headers_finished"),
            },
        )

    async def _parse(
        self, content_type: str, stream: AsyncIterator[bytes], spool: _Spool
    ) -> ParsedFile:
        events: List[Tuple[str, bytes]] = []
        # Created on the first body bytes, so an empty request is "no file"
        parser: Optional[MultipartParser] = None
        part = _Part()
        accepting = False
        accepted: Optional[Tuple[str, str]] = None
        completed = False

        try:
            async for chunk in stream:
                if not chunk:
                    continue
                if parser is None:
                    parser = self._make_parser(content_type, events)
                parser.write(chunk)
                for kind, data in events:
                    if kind == "part_begin":
                        part = _Part()
                    elif kind == "header_field":
                        part.header_field += data
                    elif kind == "header_value":
                        part.header_value += data
                    elif kind == "header_end":
                        part.headers[part.header_field.lower()] = part.header_value
                        part.header_field = b""
                        part.header_value = b""
                    elif kind == "headers_finished":
                        if accepted is None:
                            accepted = self._accept_part(part)
                            if accepted is not None:
                                accepting = True
                                await spool.open()
                    elif kind == "part_data" and accepting:
                        if spool.size + len(data) > self.max_bytes:
                            self.log_warning(
                                "Upload exceeds maximum size",
                                extra={"max_bytes": self.max_bytes},
                            )
                            raise FileTooLargeError(self.max_bytes)
                        await spool.write(data)
                    elif kind == "part_end" and accepting:
                        accepting = False
                        completed = True
                        await spool.close()
                events.clear()
            if parser is None:
                self.log_warning("No request body provided")
                raise NoFileError("No request body provided")
            parser.finalize()
        except ClientDisconnect as e:
            self.log_warning("Client disconnected during upload")
            raise ClientDisconnectedError("Client disconnected during upload") from e
        except (MultipartParseError, UnicodeError) as e:
            self.log_warning("Error parsing form data", extra={"error": str(e)})
            raise MalformedUploadError(f"Error parsing form data: {e}") from e

        if accepted is None:
            self.log_warning("No file uploaded")
            raise NoFileError("No file uploaded")
        if not completed:
            raise MalformedUploadError("Error parsing form data: file part is incomplete")
        if spool.size == 0:
            self.log_warning("Uploaded file is empty")
            raise NoFileError("Uploaded file is empty")

        filename, media_type = accepted
        if self.verify_signature:
            await self._verify_signature(spool.path, media_type)

        self.log_info(
            "Upload decoded",
            extra={"media_type": media_type, "size": spool.size},
        )
        return ParsedFile(
            filename=filename,
            content_type=media_type,
            size=spool.size,
            path=spool.path,
        )

    def _boundary(self, content_type: str) -> bytes:
        media_type, params = parse_options_header(content_type)
        if media_type.lower() != b"multipart/form-data":
            raise MalformedUploadError("Expected multipart/form-data request body")
        boundary = params.get(b"boundary")
        if not boundary:
            raise MalformedUploadError("Missing multipart boundary")
        return boundary

    def _accept_part(self, part: _Part) -> Optional[Tuple[str, str]]:
        """Decide whether ``part`` is the file to keep.

        Returns:
            (filename, media_type) for the file part, None for parts to skip.

        Raises:
            UnsupportedFileTypeError: The file part declares a disallowed type.
        """
        disposition, options = parse_options_header(
            part.headers.get(b"content-disposition", b"")
        )
        if disposition.lower() != b"form-data":
            return None
        name = options.get(b"name", b"").decode("utf-8", errors="replace")
        filename = options.get(b"filename")
        if name != self.field_name or not filename:
            return None

        declared = part.headers.get(b"content-type", b"").decode("latin-1")
        media_type = normalize_mime_type(declared)
        if media_type not in self.allowed_types:
            self.log_warning("Invalid file type", extra={"mimetype": media_type})
            raise UnsupportedFileTypeError(media_type)
        return filename.decode("utf-8", errors="replace"), media_type

    async def _verify_signature(self, path: Path, media_type: str) -> None:
        async with aiofiles.open(path, "rb") as handle:
            head = await handle.read(SIGNATURE_PROBE_BYTES)
        if not matches_image_signature(media_type, head):
            self.log_warning(
                "File content does not match declared type",
                extra={"mimetype": media_type},
            )
            raise UnsupportedFileTypeError(
                media_type,
                reason=f"File content does not match declared type {media_type}",
            )

"""
Upload Router Module.

This module defines the ingestion endpoint. A request is admitted by the
per-client rate limit, its ``file`` part is streamed to a spool, a
date-partitioned key is derived, and the spool is written to object
storage.

Endpoints:
    - POST /upload: Store one image and return its key and public URL

Architecture:
    Routes -> AdmissionController -> UploadDecoder -> StorageWriter -> S3

Usage:
    This router is included in the main application with the /api prefix.
"""

import asyncio
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Request

from photo_ingest.core.exceptions import (
    BadRequestError,
    PayloadTooLargeError,
    StorageFailureError,
    UnsupportedMediaTypeError,
    UploadProcessingError,
)
from photo_ingest.deps import (
    ClientIdDep,
    SettingsDep,
    StorageWriterDep,
    UploadDecoderDep,
)
from photo_ingest.schemas.upload import UploadResponse
from photo_ingest.services.key_service import derive_key
from photo_ingest.services.storage_service import StorageError
from photo_ingest.services.upload_decoder import (
    ClientDisconnectedError,
    FileTooLargeError,
    MalformedUploadError,
    NoFileError,
    UnsupportedFileTypeError,
    UploadTimeoutError,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/upload",
    response_model=UploadResponse,
    summary="Upload Image",
    description="Upload one image as the `file` field of a multipart form.",
    responses={
        400: {"description": "No file in the form"},
        413: {"description": "File exceeds the maximum size"},
        415: {"description": "File type is not an allowed image type"},
        429: {"description": "Too many uploads from this client"},
        500: {"description": "Form could not be parsed or storage failed"},
    },
)
async def upload_image(
    request: Request,
    client_id: ClientIdDep,
    decoder: UploadDecoderDep,
    writer: StorageWriterDep,
    settings: SettingsDep,
) -> UploadResponse:
    """
    Store an uploaded image in object storage.

    The body is streamed rather than buffered: the size cap and the type
    check stop the request before the rest of an oversized or disallowed
    body is read. The spool behind the upload is removed whatever the
    outcome.

    Returns:
        UploadResponse with the public URL and the storage key.

    Raises:
        BadRequestError: No file was uploaded, the client disconnected, or
            the body was not received in time.
        PayloadTooLargeError: The file exceeds MAX_FILE_SIZE.
        UnsupportedMediaTypeError: The file is not an allowed image type.
        UploadProcessingError: The multipart body could not be parsed.
        StorageFailureError: The write failed after all retries or ran out
            of time.

    Example:
        ```bash
        curl -F "file=@photo.jpg;type=image/jpeg" http://localhost:8000/api/upload
        ```

        Response:
        ```json
        {
            "message": "Image uploaded successfully",
            "fileUrl": "https://s3.example.com/photos/2024/01/15/550e8400-e29b-41d4-a716-446655440000.jpg",
            "fileName": "2024/01/15/550e8400-e29b-41d4-a716-446655440000.jpg"
        }
        ```
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + settings.upload_timeout_seconds
    try:
        async with decoder.decode(request) as parsed:
            key = derive_key(datetime.now(timezone.utc), parsed.filename)
            outcome = await asyncio.wait_for(
                writer.write(key, parsed, is_disconnected=request.is_disconnected),
                timeout=max(deadline - loop.time(), 0),
            )
    except NoFileError as e:
        raise BadRequestError(message=str(e))
    except FileTooLargeError as e:
        raise PayloadTooLargeError(max_bytes=e.max_bytes)
    except UnsupportedFileTypeError as e:
        raise UnsupportedMediaTypeError(media_type=e.media_type)
    except ClientDisconnectedError:
        raise BadRequestError(message="Client disconnected")
    except UploadTimeoutError as e:
        logger.warning(f"Upload body from {client_id} not received in time")
        raise BadRequestError(message=str(e))
    except MalformedUploadError as e:
        logger.warning(f"Error parsing form data from {client_id}: {e}")
        raise UploadProcessingError()
    except asyncio.TimeoutError:
        logger.error(
            f"Upload from {client_id} timed out after "
            f"{settings.upload_timeout_seconds}s"
        )
        raise StorageFailureError(operation="upload")
    except StorageError as e:
        logger.error(f"Storage error uploading file from {client_id}: {e}")
        raise StorageFailureError(operation="upload")

    logger.info(f"Upload from {client_id} stored as {outcome.key.path}")
    return UploadResponse(file_url=outcome.url, file_name=outcome.key.path)

"""
Services Module.

This module contains the business logic layer for the Photo Ingest API.
Services sit between the routers and the object store.

Architecture:
    Routers -> Services -> Integrations

    - Routers handle HTTP concerns (request/response, error mapping)
    - Services contain admission, decoding, key derivation and storage logic
    - Integrations build the S3 client

Available Services:
    - BaseService: Abstract base class for all services
    - AdmissionController: Per-client fixed-window upload admission
    - UploadDecoder: Streaming multipart decoder with size and type checks
    - StorageWriter: Single-part or multipart writes with retries
    - GalleryLister: Lists the current day's uploads

Note:
    All services should inherit from BaseService to ensure
    consistent logging and interface patterns.
"""

from photo_ingest.services.admission_service import (
    AdmissionController,
    AdmissionDecision,
    get_client_identifier,
)
from photo_ingest.services.base import BaseService
from photo_ingest.services.gallery_service import (
    GalleryItem,
    GalleryLister,
    GalleryListError,
    build_gallery_lister,
)
from photo_ingest.services.key_service import StorageKey, derive_key
from photo_ingest.services.storage_service import (
    RetryPolicy,
    StorageError,
    StorageWriteError,
    StorageWriter,
    UploadCancelledError,
    UploadOutcome,
    build_storage_writer,
)
from photo_ingest.services.upload_decoder import (
    ClientDisconnectedError,
    FileTooLargeError,
    MalformedUploadError,
    NoFileError,
    ParsedFile,
    UnsupportedFileTypeError,
    UploadDecodeError,
    UploadDecoder,
    UploadTimeoutError,
)

__all__ = [
    "AdmissionController",
    "AdmissionDecision",
    "BaseService",
    "ClientDisconnectedError",
    "FileTooLargeError",
    "GalleryItem",
    "GalleryListError",
    "GalleryLister",
    "MalformedUploadError",
    "NoFileError",
    "ParsedFile",
    "RetryPolicy",
    "StorageError",
    "StorageKey",
    "StorageWriteError",
    "StorageWriter",
    "UnsupportedFileTypeError",
    "UploadCancelledError",
    "UploadDecodeError",
    "UploadDecoder",
    "UploadOutcome",
    "UploadTimeoutError",
    "build_gallery_lister",
    "build_storage_writer",
    "derive_key",
    "get_client_identifier",
]

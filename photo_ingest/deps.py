"""
API Dependencies.

FastAPI dependency functions and their ``Annotated`` aliases. Routers
depend on these instead of constructing services, so tests can swap any
of them through ``app.dependency_overrides``.

Everything is built from the settings the running application was created
with (``app.state.settings``). The S3 client and the services on top of it
are created on first use and kept on ``app.state``, so importing the app
does not require storage credentials.
"""

from typing import Annotated, Any

from fastapi import Depends, Request

from photo_ingest.core.config import Settings
from photo_ingest.core.exceptions import RateLimitError
from photo_ingest.integrations.s3 import create_s3_client
from photo_ingest.services.admission_service import (
    AdmissionController,
    get_client_identifier,
)
from photo_ingest.services.gallery_service import GalleryLister, build_gallery_lister
from photo_ingest.services.storage_service import StorageWriter, build_storage_writer
from photo_ingest.services.upload_decoder import UploadDecoder


def get_app_settings(request: Request) -> Settings:
    """Return the settings the running application was built with."""
    return request.app.state.settings


SettingsDep = Annotated[Settings, Depends(get_app_settings)]


def get_admission_controller(request: Request) -> AdmissionController:
    """Return the admission controller owned by the running application."""
    return request.app.state.admission_controller


def get_upload_decoder(settings: SettingsDep) -> UploadDecoder:
    """Build an upload decoder from settings."""
    return UploadDecoder(
        max_bytes=settings.max_file_size,
        spool_dir=settings.spool_dir,
        verify_signature=settings.verify_content_signature,
        timeout_seconds=settings.upload_timeout_seconds,
    )


def get_s3(request: Request, settings: SettingsDep) -> Any:
    """Return the application's S3 client, creating it on first use."""
    state = request.app.state
    if getattr(state, "s3_client", None) is None:
        state.s3_client = create_s3_client(settings)
    return state.s3_client


S3ClientDep = Annotated[Any, Depends(get_s3)]


def get_writer(
    request: Request, settings: SettingsDep, client: S3ClientDep
) -> StorageWriter:
    """Dependency for getting the application's StorageWriter."""
    state = request.app.state
    if getattr(state, "storage_writer", None) is None:
        state.storage_writer = build_storage_writer(settings, client)
    return state.storage_writer


def get_lister(
    request: Request, settings: SettingsDep, client: S3ClientDep
) -> GalleryLister:
    """Dependency for getting the application's GalleryLister."""
    state = request.app.state
    if getattr(state, "gallery_lister", None) is None:
        state.gallery_lister = build_gallery_lister(settings, client)
    return state.gallery_lister


AdmissionControllerDep = Annotated[AdmissionController, Depends(get_admission_controller)]
UploadDecoderDep = Annotated[UploadDecoder, Depends(get_upload_decoder)]
StorageWriterDep = Annotated[StorageWriter, Depends(get_writer)]
GalleryListerDep = Annotated[GalleryLister, Depends(get_lister)]


def enforce_upload_rate_limit(
    request: Request,
    controller: AdmissionControllerDep,
    settings: SettingsDep,
) -> str:
    """Spend one admission point for the calling client.

    Returns:
        The client identifier that was charged.

    Raises:
        RateLimitError: If the client has exhausted its window.
    """
    client_id = get_client_identifier(request, settings.trust_forwarded_for)
    decision = controller.consume(client_id)
    if not decision.allowed:
        raise RateLimitError(retry_after=decision.retry_after)
    return client_id


ClientIdDep = Annotated[str, Depends(enforce_upload_rate_limit)]

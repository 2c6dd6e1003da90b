"""
Photos Router Module.

This module defines the gallery listing endpoint. It returns every object
stored under the current UTC day's ``YYYY/MM/DD/`` partition, which is the
prefix the upload endpoint writes under.

Endpoints:
    - GET /photos: List today's uploads
"""

import logging
from typing import List

from fastapi import APIRouter

from photo_ingest.core.exceptions import StorageFailureError
from photo_ingest.deps import GalleryListerDep
from photo_ingest.schemas.upload import PhotoItem
from photo_ingest.services.gallery_service import GalleryListError

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "/photos",
    response_model=List[PhotoItem],
    summary="List Today's Photos",
    description="List the objects uploaded during the current UTC day.",
)
async def list_photos(lister: GalleryListerDep) -> List[PhotoItem]:
    """
    List today's uploads with their public URLs.

    Raises:
        StorageFailureError: If the bucket listing fails.
    """
    try:
        items = await lister.list_day()
    except GalleryListError as e:
        logger.error(f"Error listing photos: {e}")
        raise StorageFailureError(message="Error listing photos", operation="list")

    return [PhotoItem(key=item.key, url=item.url) for item in items]

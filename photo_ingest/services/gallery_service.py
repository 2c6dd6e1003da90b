"""
Gallery Service Module.

Lists the objects uploaded today so the gallery UI can poll for new photos.
The listing queries the same ``YYYY/MM/DD/`` prefix the key deriver writes
under, so every key produced by an upload on the current UTC day shows up
here.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, List, Optional

from photo_ingest.core.config import Settings
from photo_ingest.services.base import BaseService
from photo_ingest.services.key_service import date_partition
from photo_ingest.services.storage_service import StorageError, object_url


class GalleryListError(StorageError):
    """Raised when the bucket listing fails."""

    pass


@dataclass
class GalleryItem:
    """One listed object."""

    key: str
    url: str


class GalleryLister(BaseService):
    """Lists objects under a day's partition."""

    def __init__(self, client: Any, bucket_name: str, public_endpoint: str) -> None:
        super().__init__()
        self.client = client
        self.bucket_name = bucket_name
        self.public_endpoint = public_endpoint

    async def list_day(self, now: Optional[datetime] = None) -> List[GalleryItem]:
        """Return every object under the partition of ``now`` (default: today, UTC).

        Raises:
            GalleryListError: If the listing request fails.
        """
        now = now or datetime.now(timezone.utc)
        prefix = f"{date_partition(now)}/"
        try:
            keys = await self.run_blocking("list_objects_v2", self._list_keys, prefix)
        except Exception as e:
            self.log_error(
                "Error listing objects",
                extra={"prefix": prefix},
                exc_info=e,
            )
            raise GalleryListError(f"Error listing objects under {prefix}") from e

        self.log_debug("Listed objects", extra={"prefix": prefix, "count": len(keys)})
        return [
            GalleryItem(
                key=key, url=object_url(self.public_endpoint, self.bucket_name, key)
            )
            for key in keys
        ]

    def _list_keys(self, prefix: str) -> List[str]:
        paginator = self.client.get_paginator("list_objects_v2")
        keys: List[str] = []
        for page in paginator.paginate(Bucket=self.bucket_name, Prefix=prefix):
            keys.extend(obj["Key"] for obj in page.get("Contents", []))
        return keys


def build_gallery_lister(settings: Settings, client: Any) -> GalleryLister:
    """Create a GalleryLister configured from ``settings``."""
    return GalleryLister(
        client=client,
        bucket_name=settings.s3_bucket_name,
        public_endpoint=settings.public_endpoint,
    )

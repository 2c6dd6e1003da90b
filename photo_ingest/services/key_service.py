"""
Storage key derivation.

Keys look like ``2024/01/15/550e8400-e29b-41d4-a716-446655440000.jpg``: a UTC
date partition, a random UUID4, and the extension of the client's filename.
Nothing else from the client-supplied name reaches the key. The gallery
lister queries by the same date prefix, so both sides share
``date_partition``.
"""

import posixpath
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional


@dataclass(frozen=True)
class StorageKey:
    """A derived object key.

    Attributes:
        partition: UTC date partition, ``YYYY/MM/DD``.
        unique_id: Canonical UUID string.
        extension: Original extension including the dot, or "".
    """

    partition: str
    unique_id: str
    extension: str = ""

    @property
    def object_name(self) -> str:
        return f"{self.unique_id}{self.extension}"

    @property
    def path(self) -> str:
        return f"{self.partition}/{self.object_name}"

    def __str__(self) -> str:
        return self.path


def date_partition(now: datetime) -> str:
    """Format ``now`` as a zero-padded UTC ``YYYY/MM/DD`` partition.

    Naive datetimes are taken to be UTC already.
    """
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    return f"{now.year:04d}/{now.month:02d}/{now.day:02d}"


def file_extension(filename: Optional[str]) -> str:
    """Return the suffix of ``filename`` including the leading dot.

    Only the final path component is considered, so directory parts of a
    hostile filename never leak. Dotfiles such as ``.bashrc`` have no
    extension.
    """
    if not filename:
        return ""
    basename = posixpath.basename(filename.replace("\\", "/"))
    return posixpath.splitext(basename)[1]


def derive_key(now: datetime, original_filename: Optional[str]) -> StorageKey:
    """Derive a fresh storage key for an upload received at ``now``."""
    return StorageKey(
        partition=date_partition(now),
        unique_id=str(uuid.uuid4()),
        extension=file_extension(original_filename),
    )

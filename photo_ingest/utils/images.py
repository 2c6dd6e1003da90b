"""
Image Type Utilities.

Helpers for the upload decoder's content-type gate.

The allow-list check trusts the MIME type the client declared for the
``file`` part. It keeps obviously wrong uploads out of the gallery but it is
not a security boundary: a client can label any bytes ``image/png``.
``matches_image_signature`` narrows the gap for deployments that enable
``VERIFY_CONTENT_SIGNATURE``.

Usage:
    from photo_ingest.utils.images import ALLOWED_IMAGE_TYPES, normalize_mime_type

    media_type = normalize_mime_type("Image/JPEG; charset=binary")  # "image/jpeg"
    media_type in ALLOWED_IMAGE_TYPES  # True
"""

from typing import Optional

ALLOWED_IMAGE_TYPES = frozenset(
    {
        "image/jpeg",
        "image/png",
        "image/gif",
        "image/webp",
        "image/svg+xml",
        "image/bmp",
        "image/tiff",
        "image/heic",
        "image/heif",
    }
)

# Leading bytes needed by matches_image_signature
SIGNATURE_PROBE_BYTES = 512

_HEIF_BRANDS = (b"heic", b"heix", b"hevc", b"hevx", b"heim", b"heis", b"mif1", b"msf1")


def normalize_mime_type(value: Optional[str]) -> Optional[str]:
    """Strip parameters and whitespace from a MIME type and lowercase it.

    Example:
        >>> normalize_mime_type(" image/PNG ; name=x ")
        'image/png'
    """
    if not value:
        return None
    media_type = value.split(";", 1)[0].strip().lower()
    return media_type or None


def matches_image_signature(media_type: str, head: bytes) -> bool:
    """Check the leading bytes of a payload against its declared type.

    SVG is text, so the check only looks for an XML prolog or ``<svg`` near
    the start. HEIC/HEIF are accepted on any ISO-BMFF ``ftyp`` box with a
    HEIF-family brand.

    Args:
        media_type: Normalized MIME type from the allow-list.
        head: At least the first ``SIGNATURE_PROBE_BYTES`` of the file,
            or the whole file if it is shorter.

    Returns:
        True if the bytes are plausible for ``media_type``.
    """
    if media_type == "image/jpeg":
        return head.startswith(b"\xff\xd8\xff")
    if media_type == "image/png":
        return head.startswith(b"\x89PNG\r\n\x1a\n")
    if media_type == "image/gif":
        return head.startswith((b"GIF87a", b"GIF89a"))
    if media_type == "image/webp":
        return head[:4] == b"RIFF" and head[8:12] == b"WEBP"
    if media_type == "image/bmp":
        return head.startswith(b"BM")
    if media_type == "image/tiff":
        return head.startswith((b"II*\x00", b"MM\x00*"))
    if media_type in ("image/heic", "image/heif"):
        return head[4:8] == b"ftyp" and head[8:12] in _HEIF_BRANDS
    if media_type == "image/svg+xml":
        text = head.lstrip(b"\xef\xbb\xbf").lstrip().lower()
        return text.startswith(b"<?xml") or b"<svg" in text
    return False

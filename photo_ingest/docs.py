description = """
The Photo Ingest API accepts image uploads and stores them in an S3-compatible bucket under date-partitioned keys.

## Uploading
Send a `multipart/form-data` request to `/api/upload` with the image in a field named `file`.

- Allowed types: JPEG, PNG, GIF, WebP, BMP, TIFF, SVG, HEIC and HEIF.
- Files larger than the configured maximum (40MB by default) are rejected with `413`.
- Each client may upload a limited number of images per window (10 per minute by default). Excess requests get `429` with a `Retry-After` header.

A successful upload returns the public URL of the object and its key, `YYYY/MM/DD/<uuid>.<ext>`.

## Gallery
`/api/photos` lists the images uploaded during the current UTC day.
"""

tags_metadata = [
    {"name": "Uploads", "description": "Image ingestion into object storage."},
    {"name": "Gallery", "description": "Listing of the current day's uploads."},
    {"name": "Health", "description": "Liveness probe."},
]

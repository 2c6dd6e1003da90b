"""Photo Ingest API: streaming image uploads to S3-compatible object storage."""

__version__ = "0.1.0"

"""
S3 Integration Module.

Builds the boto3 client used by the storage writer and the gallery lister.

The client talks to any S3-compatible service (AWS, MinIO, Cubbit, ...) with
path-style addressing, so object URLs take the form
``<endpoint>/<bucket>/<key>``. Botocore's built-in retries are switched off:
the storage writer applies its own retry policy and must see every failure.
Socket timeouts never exceed ``UPLOAD_TIMEOUT_SECONDS``, so no single call
outlives the budget of the request that made it.

Architecture:
    Services -> boto3 S3 client -> object store

Usage:
    from photo_ingest.integrations.s3 import create_s3_client

    client = create_s3_client(settings)
    client.list_objects_v2(Bucket="photos", Prefix="2024/01/15/")
"""

import logging
from typing import Any

import boto3
from botocore.config import Config

from photo_ingest.core.config import Settings

# Module-level logger
logger = logging.getLogger(__name__)


def create_s3_client(settings: Settings) -> Any:
    """Create an S3 client from settings.

    Args:
        settings: Application settings.

    Returns:
        A boto3 S3 client.

    Raises:
        ConfigurationError: If any required S3 setting is missing.
    """
    settings.require_storage_settings()

    config = Config(
        s3={"addressing_style": "path"},
        retries={"total_max_attempts": 1, "mode": "standard"},
        connect_timeout=min(settings.s3_connect_timeout, settings.upload_timeout_seconds),
        read_timeout=min(settings.s3_read_timeout, settings.upload_timeout_seconds),
    )
    logger.info(
        "Creating S3 client",
        extra={"endpoint": settings.s3_endpoint, "region": settings.s3_region},
    )
    return boto3.client(
        "s3",
        endpoint_url=settings.s3_endpoint,
        region_name=settings.s3_region,
        aws_access_key_id=settings.s3_access_key_id,
        aws_secret_access_key=settings.s3_secret_access_key,
        config=config,
    )


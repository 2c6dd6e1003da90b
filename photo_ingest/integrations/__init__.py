"""
Integrations Module.

This module contains the client factories for external services, kept
separate from the business logic in the services layer.

Architecture:
    Services -> Integrations -> External APIs

Usage:
    from photo_ingest.integrations.s3 import create_s3_client

Available Integrations:
    - s3: boto3 client for any S3-compatible object store
"""

from photo_ingest.integrations.s3 import create_s3_client

__all__ = ["create_s3_client"]

"""
Application Configuration

Centralized configuration management using Pydantic Settings.
Supports environment variables and .env files.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

MIB = 1024 * 1024


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid.

    This is not an API error: it must stop the process from starting
    rather than fail individual requests.
    """

    pass


class Settings(BaseSettings):
    """
    Application settings.

    All settings can be overridden via environment variables.
    Example: MAX_FILE_SIZE=10485760
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # API Configuration
    app_name: str = Field(default="Photo Ingest API", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    debug: bool = Field(default=False, description="Debug mode")
    environment: str = Field(
        default="development",
        description="Application environment (development, staging, production)",
    )
    log_level: str = Field(default="INFO", description="Root logging level")

    # Upload Limits
    max_file_size: int = Field(
        default=40 * MIB, gt=0, description="Maximum accepted file size in bytes"
    )
    multipart_threshold: int = Field(
        default=5 * MIB,
        ge=0,
        description="Files larger than this many bytes use a multipart upload",
    )
    multipart_chunk_size: int = Field(
        default=5 * MIB,
        ge=5 * MIB,
        description="Part size for multipart uploads (S3 minimum is 5 MiB)",
    )
    spool_dir: Optional[str] = Field(
        default=None,
        description="Directory for spooled request payloads (defaults to system temp)",
    )
    verify_content_signature: bool = Field(
        default=False,
        description="Check leading bytes of the payload against the declared image type",
    )

    # Rate Limiting
    rate_limit_points: int = Field(
        default=10, gt=0, description="Uploads allowed per client per window"
    )
    rate_limit_duration: int = Field(
        default=60, gt=0, description="Rate limit window length in seconds"
    )
    trust_forwarded_for: bool = Field(
        default=True,
        description="Identify clients by the first X-Forwarded-For address",
    )

    # Retry Policy
    retry_count: int = Field(
        default=3, ge=1, description="Total attempts for a storage write"
    )
    retry_delay_ms: int = Field(
        default=500, ge=0, description="Minimum delay between write attempts in ms"
    )
    upload_timeout_seconds: float = Field(
        default=120,
        gt=0,
        description="Upper bound on receiving and storing one upload request",
    )

    # S3 Storage Configuration
    s3_endpoint: Optional[str] = Field(
        default=None, description="S3-compatible endpoint URL"
    )
    s3_public_endpoint: Optional[str] = Field(
        default=None,
        description="Endpoint used to build public object URLs (defaults to s3_endpoint)",
    )
    s3_bucket_name: Optional[str] = Field(default=None, description="Bucket name")
    s3_access_key_id: Optional[str] = Field(default=None, description="Access key ID")
    s3_secret_access_key: Optional[str] = Field(
        default=None, description="Secret access key"
    )
    s3_region: Optional[str] = Field(default=None, description="Bucket region")
    s3_object_acl: Optional[str] = Field(
        default="public-read",
        description="Canned ACL applied to uploaded objects (empty to disable)",
    )
    s3_connect_timeout: float = Field(
        default=10, gt=0, description="S3 connect timeout in seconds"
    )
    s3_read_timeout: float = Field(
        default=60, gt=0, description="S3 read timeout in seconds"
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment.lower() == "production"

    @property
    def retry_delay_seconds(self) -> float:
        """Minimum inter-attempt delay in seconds."""
        return self.retry_delay_ms / 1000

    @property
    def public_endpoint(self) -> Optional[str]:
        """Endpoint used when composing externally addressable URLs."""
        return self.s3_public_endpoint or self.s3_endpoint

    @property
    def object_acl(self) -> Optional[str]:
        """Canned ACL, or None when disabled."""
        return self.s3_object_acl or None

    def missing_storage_settings(self) -> List[str]:
        """Return the environment names of required S3 settings that are unset."""
        required = {
            "S3_ENDPOINT": self.s3_endpoint,
            "S3_BUCKET_NAME": self.s3_bucket_name,
            "S3_ACCESS_KEY_ID": self.s3_access_key_id,
            "S3_SECRET_ACCESS_KEY": self.s3_secret_access_key,
            "S3_REGION": self.s3_region,
        }
        return [name for name, value in required.items() if not value]

    def require_storage_settings(self) -> None:
        """
        Ensure the storage backend is fully configured.

        Raises:
            ConfigurationError: If any required S3 setting is missing.
        """
        missing = self.missing_storage_settings()
        if missing:
            raise ConfigurationError(
                f"Missing required S3 environment variables: {', '.join(missing)}"
            )


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()

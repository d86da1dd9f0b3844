# src/file_gateway/settings.py
from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEPLOYMENT_MODES = ["local-dev", "aws-mock", "aws-prod"]
DEFAULT_MAX_UPLOAD_BYTES = 100 * 1024 * 1024


class Settings(BaseSettings):
    """
    Single source of truth for all gateway settings.

    Configuration precedence:
    1. Environment variables (highest priority)
    2. .env file (if exists)
    3. Default values in this class (lowest priority)

    Usage:
        from file_gateway.settings import get_settings
        settings = get_settings()
        backend = settings.storage_backend
    """

    # Application Settings
    app_name: str = Field(
        default="file-gateway",
        description="Application name"
    )

    # Deployment Mode
    deployment_mode: str = Field(
        default="local-dev",
        description="Deployment mode: local-dev, aws-mock, or aws-prod"
    )

    # Blob backend selection. Chosen once at startup, never per request.
    storage_backend: Optional[Literal["local", "s3"]] = Field(
        default=None,
        description="Blob backend: local or s3 (defaults from deployment_mode)"
    )

    use_s3: Optional[bool] = Field(
        default=None,
        alias="USE_S3",
        description="Legacy flag; true selects the s3 backend"
    )

    # AWS Core Settings
    aws_region: str = Field(
        default="us-east-1",
        alias="AWS_DEFAULT_REGION"
    )

    aws_access_key_id: Optional[str] = Field(
        default=None,
        alias="AWS_ACCESS_KEY_ID"
    )

    aws_secret_access_key: Optional[str] = Field(
        default=None,
        alias="AWS_SECRET_ACCESS_KEY"
    )

    aws_endpoint_url: Optional[str] = Field(
        default=None,
        alias="AWS_ENDPOINT_URL"
    )

    # S3 Configuration
    s3_bucket_name: str = Field(
        default="file-gateway-storage",
        description="S3 bucket holding uploaded blobs"
    )

    s3_connect_timeout: float = Field(
        default=5.0,
        gt=0,
        description="Seconds to wait for a connection to the object store"
    )

    s3_read_timeout: float = Field(
        default=60.0,
        gt=0,
        description="Seconds to wait on a socket read from the object store"
    )

    s3_max_attempts: int = Field(
        default=2,
        ge=1,
        description="Attempts botocore makes per S3 call before giving up"
    )

    # Local Storage Configuration
    storage_dir: str = Field(
        default="storage",
        description="Root directory for the local filesystem backend"
    )

    # Metadata Index
    db_path: str = Field(
        default="file_gateway.db",
        description="SQLite file holding the metadata index and users table"
    )

    index_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Seconds an index write waits on a locked database"
    )

    # Upload behaviour
    storage_put_attempts: int = Field(
        default=1,
        ge=1,
        description="Service-level attempts for a blob put on transient errors"
    )

    storage_retry_delay: float = Field(
        default=0.5,
        ge=0,
        description="Initial delay between service-level put attempts"
    )

    max_upload_bytes: int = Field(
        default=DEFAULT_MAX_UPLOAD_BYTES,
        gt=0,
        description="Largest accepted upload in bytes"
    )

    orphan_grace_seconds: float = Field(
        default=3600,
        ge=0,
        description="Minimum age before reconcile treats an unreferenced blob as orphaned"
    )

    # Collaborators
    user_directory: Literal["sqlite", "http"] = Field(
        default="sqlite",
        description="Where owners are resolved: local users table or users API"
    )

    users_api_url: Optional[str] = Field(
        default=None,
        description="Base URL of the users API when user_directory=http"
    )

    users_api_timeout: float = Field(
        default=5.0,
        gt=0,
        description="Seconds to wait on the users API"
    )

    notifier: Literal["log", "ses"] = Field(
        default="log",
        description="Notification channel: log (local) or ses"
    )

    notification_sender: str = Field(
        default="no-reply@file-gateway.local",
        description="From address for upload notifications"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level"
    )

    @field_validator("deployment_mode", mode="before")
    @classmethod
    def normalize_deployment_mode(cls, v):
        """Map legacy mode names onto the current ones."""
        if v:
            mode_mapping = {
                "local-mock": "local-dev",
                "cloud": "aws-prod",
            }
            return mode_mapping.get(v, v)
        return v

    @field_validator("deployment_mode")
    @classmethod
    def validate_deployment_mode(cls, v):
        if v not in DEPLOYMENT_MODES:
            raise ValueError(f"Invalid deployment_mode: {v}. Must be one of {DEPLOYMENT_MODES}")
        return v

    @model_validator(mode="after")
    def resolve_mode_defaults(self):
        """Fill backend choice and mock endpoint/credentials from the deployment mode."""
        if self.storage_backend is None:
            if self.use_s3 is not None:
                self.storage_backend = "s3" if self.use_s3 else "local"
            elif self.deployment_mode == "local-dev":
                self.storage_backend = "local"
            else:
                self.storage_backend = "s3"

        # aws-prod leaves credentials unset so the execution role supplies them
        if self.deployment_mode == "aws-mock":
            if self.aws_endpoint_url is None:
                self.aws_endpoint_url = "http://localhost:5000"
            if self.aws_access_key_id is None:
                self.aws_access_key_id = "mock"
            if self.aws_secret_access_key is None:
                self.aws_secret_access_key = "mock"

        if self.user_directory == "http" and not self.users_api_url:
            raise ValueError("users_api_url is required when user_directory=http")
        return self

    def describe(self) -> dict:
        """Non-secret view of the configuration, for the CLI and health checks."""
        return {
            "app_name": self.app_name,
            "deployment_mode": self.deployment_mode,
            "storage_backend": self.storage_backend,
            "s3_bucket_name": self.s3_bucket_name,
            "aws_region": self.aws_region,
            "aws_endpoint_url": self.aws_endpoint_url,
            "storage_dir": self.storage_dir,
            "db_path": self.db_path,
            "user_directory": self.user_directory,
            "notifier": self.notifier,
            "max_upload_bytes": self.max_upload_bytes,
            "orphan_grace_seconds": self.orphan_grace_seconds,
        }

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=(".env", ".env.local-dev", ".env.aws-mock", ".env.aws-prod"),
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    This ensures we only create one Settings instance per process.
    """
    return Settings()

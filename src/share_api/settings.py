# src/share_api/settings.py
from typing import List, Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    """
    Single source of truth for all application settings.

    Configuration precedence:
    1. Environment variables (highest priority)
    2. .env file (if exists)
    3. Default values in this class (lowest priority)

    Usage:
        from share_api.settings import get_settings
        settings = get_settings()
        bucket_name = settings.s3_bucket_name
    """

    # Application Settings
    app_name: str = Field(
        default="secure-share-api",
        description="Application name"
    )

    # Deployment Mode
    deployment_mode: str = Field(
        default="local-dev",
        description="Deployment mode: local-dev, aws-mock, or aws-prod"
    )

    # AWS / MinIO Settings
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
        alias="AWS_ENDPOINT_URL",
        description="S3-compatible endpoint, e.g. a MinIO server"
    )

    # S3 Configuration
    s3_bucket_name: str = Field(
        default="secure-files",
        description="Bucket holding uploaded file bytes"
    )

    # MongoDB Configuration
    mongodb_uri: str = Field(
        default="mongodb://localhost:27017/secure_files",
        alias="MONGODB_URI"
    )

    mongodb_database: str = Field(
        default="secure_files",
        description="Database holding file records"
    )

    mongodb_collection: str = Field(
        default="files",
        description="Collection holding file records"
    )

    # Transfer / token policy
    io_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Upper bound for every blob or metadata call"
    )

    file_retention_hours: int = Field(
        default=24,
        gt=0,
        description="Default retention and initial token lifetime for uploads"
    )

    one_time_token_minutes: int = Field(
        default=30,
        gt=0,
        description="Fixed lifetime of one-time tokens"
    )

    download_url_minutes: int = Field(
        default=10,
        gt=0,
        description="Lifetime of the URL returned after token validation"
    )

    max_token_duration_minutes: int = Field(
        default=7 * 24 * 60,
        gt=0,
        description="Longest time-limited token (S3 presign ceiling is 7 days)"
    )

    # HTTP
    identity_header: str = Field(
        default="X-User-ID",
        description="Header carrying the identity verified by the auth gateway"
    )

    cors_origins: List[str] = Field(
        default=["http://localhost:3000"],
        description="Origins allowed by CORS"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level"
    )

    @field_validator('deployment_mode')
    def validate_deployment_mode(cls, v):
        """Validate deployment mode is one of the allowed values."""
        valid_modes = ["local-dev", "aws-mock", "aws-prod"]
        if v not in valid_modes:
            raise ValueError(f"Invalid deployment_mode: {v}. Must be one of {valid_modes}")
        return v

    @field_validator('log_level')
    def normalize_log_level(cls, v):
        return v.upper()

    @property
    def uses_local_endpoint(self) -> bool:
        return self.deployment_mode in ["local-dev", "aws-mock"]

    def s3_client_kwargs(self) -> dict:
        """Keyword arguments for boto3.client('s3', ...)."""
        kwargs = {"region_name": self.aws_region}
        if self.aws_endpoint_url:
            kwargs["endpoint_url"] = self.aws_endpoint_url
        elif self.uses_local_endpoint:
            kwargs["endpoint_url"] = "http://localhost:9000"

        # In production, leave credentials to the execution role
        if self.aws_access_key_id and self.aws_secret_access_key:
            kwargs["aws_access_key_id"] = self.aws_access_key_id
            kwargs["aws_secret_access_key"] = self.aws_secret_access_key
        elif self.uses_local_endpoint:
            kwargs["aws_access_key_id"] = "minioadmin"
            kwargs["aws_secret_access_key"] = "minioadmin"
        return kwargs

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
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

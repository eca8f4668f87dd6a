"""
Configuration management for LabelHub dataset labeling service.
Handles environment-specific settings for database and blob storage.
"""

from enum import Enum
from pydantic_settings import BaseSettings
from pydantic import field_validator


class Environment(str, Enum):
    """Environment types for the application."""
    LOCAL = "local"
    PRODUCTION = "production"


class BlobBackend(str, Enum):
    """Blob storage backends."""
    GRIDFS = "gridfs"
    LOCAL = "local"


class Settings(BaseSettings):
    """Application settings with environment-specific configuration."""

    # Environment Configuration
    environment: Environment = Environment.LOCAL
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_version: str = "1.0.0"
    log_level: str = "INFO"

    # Database Configuration
    mongodb_url: str = "mongodb://localhost:27017/label_db"
    max_update_retries: int = 5

    # Blob Storage Configuration
    blob_backend: BlobBackend = BlobBackend.GRIDFS
    gridfs_bucket: str = "uploads"
    storage_path: str = "./storage"  # Only used by the local backend

    # Base URL used when building image links in exports
    public_base_url: str = "http://localhost:8000"

    @field_validator('environment', 'blob_backend', mode='before')
    @classmethod
    def lowercase_enum(cls, v):
        """Accept enum values in any case."""
        if isinstance(v, str):
            return v.lower()
        return v

    @field_validator('max_update_retries')
    @classmethod
    def validate_retries(cls, v):
        """At least one write attempt is required."""
        if v < 1:
            raise ValueError("MAX_UPDATE_RETRIES must be at least 1")
        return v

    @field_validator('public_base_url')
    @classmethod
    def strip_trailing_slash(cls, v):
        return v.rstrip("/")

    model_config = {
        "env_file": ".env",
        "case_sensitive": False,
        "extra": "ignore"  # Ignore extra fields instead of raising error
    }


# Global settings instance
settings = Settings()


def is_local_environment() -> bool:
    """Check if running in local development environment."""
    return settings.environment == Environment.LOCAL


def is_production_environment() -> bool:
    """Check if running in production environment."""
    return settings.environment == Environment.PRODUCTION

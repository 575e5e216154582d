"""Application configuration using Pydantic Settings."""

import re
from pydantic import field_validator
from pydantic_settings import BaseSettings
from typing import Optional
import os


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    # Service Identity
    SERVICE_NAME: str = "imagefile-api"
    VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"  # development, staging, production

    # Logging Configuration
    LOG_LEVEL: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
    LOG_JSON: bool = True    # JSON logs (prod) vs pretty console (dev)
    DEBUG: bool = False      # Enable debug mode features

    # Database
    # Local SQLite file by default; DATABASE_URL overrides it entirely
    DATABASE_PATH: str = os.path.join(os.getcwd(), "imagefile.db")
    DATABASE_URL: Optional[str] = None

    # Security - bearer tokens are validated locally with a shared secret
    JWT_SECRET_KEY: str = "change-this-in-production"
    JWT_ALGORITHM: str = "HS256"

    # Upload Constraints
    MAX_UPLOAD_SIZE_MB: int = 10

    # Thumbnail Configuration
    # Longer edge of generated thumbnails, in pixels
    DEFAULT_THUMBNAIL_SIZE: int = 100
    JPEG_QUALITY: int = 85

    @field_validator('DEFAULT_THUMBNAIL_SIZE')
    @classmethod
    def validate_thumbnail_size(cls, v: int) -> int:
        """Ensure the thumbnail edge is positive and reasonable."""
        if v <= 0:
            raise ValueError(f"Thumbnail size must be positive, got {v}")
        if v > 8192:
            raise ValueError(f"Thumbnail size too large (max 8192), got {v}")
        return v

    @field_validator('JPEG_QUALITY')
    @classmethod
    def validate_jpeg_quality(cls, v: int) -> int:
        if not 1 <= v <= 95:
            raise ValueError(f"JPEG quality must be between 1 and 95, got {v}")
        return v

    @field_validator('DATABASE_URL')
    @classmethod
    def validate_database_url(cls, v: Optional[str]) -> Optional[str]:
        """Validate the database URL names an async driver if provided."""
        if v is None or v == "":
            return None

        if not re.match(r'^[a-z0-9]+\+[a-z0-9]+://', v):
            raise ValueError(
                f"DATABASE_URL must use an async driver (e.g. sqlite+aiosqlite://), got '{v}'"
            )

        return v

    @property
    def database_url(self) -> str:
        """Resolved SQLAlchemy URL, falling back to the SQLite file path."""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return f"sqlite+aiosqlite:///{self.DATABASE_PATH}"

    @property
    def is_debug_mode(self) -> bool:
        """Check if application is in debug mode."""
        return self.DEBUG or self.LOG_LEVEL.upper() == "DEBUG"

    @property
    def use_json_logs(self) -> bool:
        """Determine if JSON logging should be used.

        In production, always use JSON logs.
        In development, allow override via LOG_JSON setting.
        """
        if self.ENVIRONMENT == "production":
            return True
        if self.DEBUG:
            return self.LOG_JSON
        return True

    class Config:
        """Pydantic configuration."""
        env_file = ".env"
        case_sensitive = True


# Global settings instance
settings = Settings()

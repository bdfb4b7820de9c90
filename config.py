"""Application configuration.

This module provides environment-specific configuration settings for the application.
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


class Config:
    """Base configuration with settings common to all environments."""

    # Security
    SECRET_KEY: str = os.getenv("SECRET_KEY", "dev-key-change-in-production")

    # Flask settings
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"
    TESTING: bool = False

    # Database settings
    SQLALCHEMY_TRACK_MODIFICATIONS: bool = False
    SQLALCHEMY_ENGINE_OPTIONS: Dict[str, Any] = {
        "pool_pre_ping": True,
        "pool_recycle": 300,  # 5 minutes
    }

    # Application settings
    APP_NAME: str = os.getenv("APP_NAME", "receipt-verification")
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "dev")

    # File upload settings
    MAX_CONTENT_LENGTH: int = 10 * 1024 * 1024  # 10MB max receipt photo

    # CORS
    CORS_ORIGINS: str = os.getenv("CORS_ORIGINS", "*")

    # Rate limiting
    RATELIMIT_ENABLED: bool = _env_bool("RATELIMIT_ENABLED", "true")
    RATELIMIT_DEFAULT: str = os.getenv("RATELIMIT_DEFAULT", "400 per day;100 per hour")
    RECEIPT_VERIFY_RATE_LIMIT: str = os.getenv("RECEIPT_VERIFY_RATE_LIMIT", "30 per minute")

    # OCR settings
    OCR_ENABLED: bool = _env_bool("OCR_ENABLED", "true")
    TESSERACT_CMD: Optional[str] = os.getenv("TESSERACT_CMD")
    OCR_LANGUAGES: str = os.getenv("OCR_LANGUAGES", "hrv+eng")
    RECEIPT_MIN_TEXT_LENGTH: int = int(os.getenv("RECEIPT_MIN_TEXT_LENGTH", "50"))

    # Verification settings
    GEOFENCE_MAX_DISTANCE_METERS: float = float(os.getenv("GEOFENCE_MAX_DISTANCE_METERS", "150"))
    IMAGE_SIMILARITY_THRESHOLD: int = int(os.getenv("IMAGE_SIMILARITY_THRESHOLD", "5"))
    AUTO_APPROVE_THRESHOLD: float = float(os.getenv("AUTO_APPROVE_THRESHOLD", "0.8"))
    REJECT_THRESHOLD: float = float(os.getenv("REJECT_THRESHOLD", "0.5"))

    def __init__(self) -> None:
        """Initialize configuration."""
        # Set environment if not set
        os.environ.setdefault("FLASK_ENV", "development")

        # Configure database URI
        self.SQLALCHEMY_DATABASE_URI = self._get_database_uri()

    def _get_database_uri(self) -> str:
        """Get the appropriate database URI for the current environment."""
        # Handle Heroku-style database URLs
        if "DATABASE_URL" in os.environ:
            uri = os.environ["DATABASE_URL"]
            if uri.startswith("postgres://"):
                uri = uri.replace("postgres://", "postgresql+pg8000://", 1)
            return uri

        instance_path = Path(__file__).parent / "instance"
        instance_path.mkdir(exist_ok=True)
        return f'sqlite:///{instance_path}/receipts-{os.getenv("FLASK_ENV")}.db'


class DevelopmentConfig(Config):
    """Development configuration."""

    DEBUG: bool = True


class UnitTestConfig(Config):  # noqa: D101
    """Testing configuration."""

    TESTING: bool = True
    DEBUG: bool = True
    RATELIMIT_ENABLED: bool = False
    OCR_ENABLED: bool = False
    SQLALCHEMY_ENGINE_OPTIONS: Dict[str, Any] = {}

    def _get_database_uri(self) -> str:
        return "sqlite:///:memory:"


class ProductionConfig(Config):
    """Production configuration."""

    DEBUG: bool = False
    TESTING: bool = False


def get_config() -> Config:
    """Get the appropriate configuration based on environment."""
    env = os.getenv("FLASK_ENV", "development").lower()

    configs = {
        "development": DevelopmentConfig,
        "testing": UnitTestConfig,
        "production": ProductionConfig,
    }

    config_class = configs.get(env, DevelopmentConfig)
    return config_class()

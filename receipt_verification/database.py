"""Database configuration and utilities for the receipt verification service.

This module provides a centralized way to manage database connections,
initialization, and utilities for the application.
"""

from __future__ import annotations

import logging
import os

from flask import Flask, current_app

from .extensions import db

# Configure logger
logger = logging.getLogger(__name__)

__all__ = [
    "db",
    "init_database",
    "create_tables",
    "drop_tables",
]


def _get_database_uri_from_env() -> str | None:
    """Get database URI from environment variable."""
    db_url = os.environ.get("DATABASE_URL")
    if not db_url:
        return None

    if db_url.startswith("postgres://"):
        db_url = db_url.replace("postgres://", "postgresql+pg8000://", 1)
    elif db_url.startswith("postgresql://") and "+" not in db_url:
        db_url = db_url.replace("postgresql://", "postgresql+pg8000://", 1)

    return db_url


def _get_database_uri_fallback() -> str:
    """Get fallback SQLite database URI."""
    instance_path = os.path.join(os.path.dirname(__file__), "..", "instance")
    os.makedirs(instance_path, exist_ok=True)
    db_path = os.path.join(instance_path, f"receipts-{os.getenv('FLASK_ENV', 'development')}.db")

    if os.path.exists(os.path.dirname(db_path)):
        return f"sqlite:///{db_path}"

    logger.warning("No database path available, using in-memory SQLite database")
    return "sqlite:///:memory:"


def _get_database_uri(app: Flask) -> str:
    """Get the database URI with proper fallback logic.

    Priority order:
    1. SQLALCHEMY_DATABASE_URI from app config
    2. DATABASE_URL environment variable (with postgres:// to postgresql+pg8000:// conversion)
    3. SQLite database file in instance directory
    """
    db_url = app.config.get("SQLALCHEMY_DATABASE_URI")
    if db_url:
        return str(db_url)

    db_url = _get_database_uri_from_env()
    if db_url:
        return db_url

    return _get_database_uri_fallback()


def init_database(app: Flask) -> None:
    """Initialize the database with the Flask app.

    Configures SQLAlchemy with the appropriate database URI, sets up
    connection pooling for non-SQLite databases and creates missing tables.
    """
    # Only initialize if not already done
    if "sqlalchemy" in app.extensions:
        return

    try:
        db_uri = _get_database_uri(app)
        app.config["SQLALCHEMY_DATABASE_URI"] = db_uri
        app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False

        # Configure connection pooling for production databases
        if not db_uri.startswith("sqlite"):
            app.config.setdefault(
                "SQLALCHEMY_ENGINE_OPTIONS",
                {
                    "pool_pre_ping": True,
                    "pool_recycle": 300,  # Recycle connections after 5 minutes
                    "pool_size": 5,
                    "max_overflow": 10,
                },
            )

        db.init_app(app)

        # Create tables if they don't exist
        with app.app_context():
            # Import models so their tables are registered
            from receipt_verification.restaurants import models  # noqa: F401

            db.create_all()
        logger.info(f"Database initialized successfully with URI: {db_uri}")

    except Exception as e:
        logger.error("Failed to initialize database: %s", e)
        raise RuntimeError(f"Failed to initialize database: {e}") from e


def create_tables() -> None:
    """Create all database tables if they don't exist."""
    with current_app.app_context():
        db.create_all()


def drop_tables() -> None:
    """Drop all database tables."""
    with current_app.app_context():
        db.drop_all()

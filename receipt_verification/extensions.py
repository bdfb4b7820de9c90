"""Application Flask extensions.

This module initializes and configures all Flask extensions used in the application.
"""

import logging

from flask import Flask
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_sqlalchemy import SQLAlchemy

logger = logging.getLogger(__name__)

# Initialize SQLAlchemy
db = SQLAlchemy()

# Initialize rate limiter to prevent abuse
# Default limits come from RATELIMIT_DEFAULT in the app config
limiter = Limiter(
    key_func=get_remote_address,
    storage_uri="memory://",
)


def init_app(app: Flask) -> None:
    """Initialize all extensions with the Flask application.

    The database is bound separately by ``database.init_database``.
    """
    limiter.init_app(app)
    if not app.config.get("RATELIMIT_ENABLED", True):
        app.logger.info("Rate limiting disabled")

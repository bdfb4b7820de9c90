import logging
import os
from typing import Any, Optional

from dotenv import load_dotenv
from flask import Flask
from flask_cors import CORS

from config import get_config

# Load environment variables from .env file
load_dotenv()

# Initialize logger
logger = logging.getLogger(__name__)

__all__ = ["create_app"]


def create_app(config_overrides: Optional[dict[str, Any]] = None) -> Flask:
    """Create and configure the Flask application.

    Args:
        config_overrides: Settings applied on top of the environment's config,
                    before extensions and the database are initialized.
                    The base configuration is determined by FLASK_ENV.
    Returns:
        Flask: The configured Flask application instance.
    """
    # Get the appropriate configuration based on FLASK_ENV
    config = get_config()

    app = Flask(__name__)
    app.config.from_object(config)
    if config_overrides:
        app.config.update(config_overrides)

    # Configure app components
    _configure_app_settings(app)
    _configure_logging(app)
    _initialize_components(app)
    _initialize_cli(app)

    return app


def _configure_app_settings(app: Flask) -> None:
    """Configure basic application settings and validation."""
    if not app.config.get("SQLALCHEMY_DATABASE_URI"):
        raise ValueError("SQLALCHEMY_DATABASE_URI is not configured")

    app.config.setdefault("SQLALCHEMY_TRACK_MODIFICATIONS", False)

    if app.config["REJECT_THRESHOLD"] > app.config["AUTO_APPROVE_THRESHOLD"]:
        raise ValueError("REJECT_THRESHOLD must not be greater than AUTO_APPROVE_THRESHOLD")


def _configure_logging(app: Flask) -> None:
    """Configure application logging."""
    log_level = logging.DEBUG if app.debug else logging.INFO
    logger.setLevel(log_level)

    # Log app configuration
    logger.debug("Application configuration:")
    logger.debug(f"- DEBUG: {app.debug}")
    logger.debug(f"- DATABASE_URI: {app.config.get('SQLALCHEMY_DATABASE_URI', 'Not set')}")
    logger.debug(f"- OCR_ENABLED: {app.config.get('OCR_ENABLED')}")


def _initialize_components(app: Flask) -> None:
    """Initialize core application components."""
    from .database import init_database
    from .extensions import init_app as init_extensions

    init_extensions(app)
    init_database(app)

    _register_blueprints(app)

    # Register error handlers
    from .errors import init_app as init_errors

    init_errors(app)
    logger.debug("Registered error handlers")

    _configure_cors(app)

    _log_registered_routes(app)


def _initialize_cli(app: Flask) -> None:
    """Initialize CLI commands."""
    from .cli import register_commands as register_core_commands
    from .receipts.cli import register_commands as register_receipt_commands
    from .restaurants.cli import register_commands as register_restaurant_commands

    register_core_commands(app)
    register_receipt_commands(app)
    register_restaurant_commands(app)
    logger.debug("Initialized CLI commands")


def _register_blueprints(app: Flask) -> None:
    """Register all application blueprints."""
    logger.debug("Registering blueprints...")

    blueprint_configs = [
        ("receipts", "/api/v1/receipts"),
        ("health", "/health"),
    ]

    for module_name, url_prefix in blueprint_configs:
        module = __import__(f"receipt_verification.{module_name}", fromlist=["bp"])
        bp = module.bp
        app.register_blueprint(bp, url_prefix=url_prefix)
        logger.debug(f"Registered blueprint: {bp.name} at {url_prefix}")


def _configure_cors(app: Flask) -> None:
    """Configure CORS for the JSON API."""
    cors_origins = app.config.get("CORS_ORIGINS", "*").split(",")
    cors_methods = os.getenv("CORS_METHODS", "GET,POST,OPTIONS").split(",")
    cors_allow_headers = os.getenv("CORS_ALLOW_HEADERS", "Content-Type,X-Requested-With").split(",")

    CORS(
        app,
        resources={
            r"/api/*": {
                "origins": cors_origins,
                "methods": cors_methods,
                "allow_headers": cors_allow_headers,
                "supports_credentials": False,
            }
        },
    )


def _log_registered_routes(app: Flask) -> None:
    """Log all registered routes for debugging."""
    logger.debug("Registered routes:")
    for rule in app.url_map.iter_rules():
        methods = list(rule.methods - {"OPTIONS", "HEAD"})
        logger.debug(f"  {rule.endpoint}: {rule.rule} {methods}")

"""Health check endpoints for the application."""

from datetime import UTC, datetime
import logging
from typing import cast

from flask import Response, current_app, jsonify
from sqlalchemy import text

from receipt_verification._version import __version__
from receipt_verification.extensions import db
from receipt_verification.services.ocr_service import get_ocr_client

from . import bp

# Configure logger
logger = logging.getLogger(__name__)


@bp.route("/")
def check() -> Response:
    """Health check endpoint to verify the application, database and OCR engine.

    Returns:
        JSON: Status, version, database connectivity and OCR availability
    """
    try:
        db.session.execute(text("SELECT 1"))
        db_status = "connected"
    except Exception as e:
        logger.error(f"Database connection error: {str(e)}")
        db_status = f"error: {str(e)}"

    if not current_app.config.get("OCR_ENABLED", True):
        ocr_status = "disabled"
    else:
        ocr_status = "available" if get_ocr_client().enabled else "unavailable"

    return cast(
        Response,
        jsonify(
            {
                "status": "ok",
                "version": __version__,
                "timestamp": datetime.now(UTC).isoformat(),
                "database": db_status,
                "ocr": ocr_status,
            }
        ),
    )

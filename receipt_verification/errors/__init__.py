"""JSON error handlers for the application."""

from __future__ import annotations

from typing import cast

from flask import Flask, Response, current_app, jsonify
from werkzeug.exceptions import HTTPException

from receipt_verification.receipts.exceptions import ReceiptValidationError
from receipt_verification.restaurants.exceptions import RestaurantNotFoundError, RestaurantValidationError


def init_app(app: Flask) -> None:
    """Initialize error handlers with the Flask application."""
    app.register_error_handler(ReceiptValidationError, handle_receipt_error)
    app.register_error_handler(RestaurantValidationError, handle_restaurant_validation_error)
    app.register_error_handler(RestaurantNotFoundError, handle_restaurant_not_found)
    app.register_error_handler(413, request_entity_too_large)
    app.register_error_handler(429, ratelimit_error)
    app.register_error_handler(HTTPException, handle_http_exception)
    app.register_error_handler(Exception, handle_exception)


def _create_error_response(message: str, status_code: int, **extra: object) -> tuple[Response, int]:
    """Create a standardized error response."""
    body = {"status": "error", "message": message, "code": status_code}
    body.update({k: v for k, v in extra.items() if v is not None})
    return cast(Response, jsonify(body)), status_code


def handle_receipt_error(error: ReceiptValidationError) -> tuple[Response, int]:
    """Handle receipt validation failures raised by the verification pipeline."""
    payload = error.to_dict()
    return _create_error_response(
        error.message,
        error.status_code,
        error=payload["code"],
        field=payload["field"],
        duplicateOf=payload.get("duplicateOf"),
    )


def handle_restaurant_validation_error(error: RestaurantValidationError) -> tuple[Response, int]:
    payload = error.to_dict()
    return _create_error_response(error.message, 400, error=payload["code"], field=payload["field"])


def handle_restaurant_not_found(error: RestaurantNotFoundError) -> tuple[Response, int]:
    return _create_error_response(str(error), 404)


def request_entity_too_large(error: HTTPException) -> tuple[Response, int]:
    """Handle uploads larger than MAX_CONTENT_LENGTH."""
    limit = current_app.config.get("MAX_CONTENT_LENGTH") or 0
    return _create_error_response(f"Receipt image is too large (max {limit // (1024 * 1024)}MB)", 413)


def ratelimit_error(error: HTTPException) -> tuple[Response, int]:
    return _create_error_response(f"Rate limit exceeded: {error.description}", 429)


def handle_http_exception(error: HTTPException) -> tuple[Response, int]:
    """Handle HTTP exceptions."""
    status_code = error.code if error.code is not None else 500
    return _create_error_response(error.description or "HTTP error occurred", status_code)


def handle_exception(error: Exception) -> tuple[Response, int]:
    """Handle all unhandled exceptions."""
    current_app.logger.error(f"Unhandled exception: {str(error)}", exc_info=True)
    return _create_error_response("An unexpected error occurred", 500)

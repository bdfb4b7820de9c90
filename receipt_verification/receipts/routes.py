from __future__ import annotations

from typing import Any, Tuple

from flask import Response, current_app, jsonify, request
from marshmallow import ValidationError

from receipt_verification.extensions import limiter
from receipt_verification.receipts.services import ReceiptSubmission, verify_receipt
from receipt_verification.services.decision_engine import calculate_auto_approve_score
from receipt_verification.services.receipt_parser import parse_receipt_text
from receipt_verification.utils.antifraud import FraudSignal

from . import bp
from .exceptions import ReceiptValidationError
from .schemas import ParseReceiptSchema, ScoreReceiptSchema, VerifyReceiptSchema

# Schema instances
verify_schema = VerifyReceiptSchema()
parse_schema = ParseReceiptSchema()
score_schema = ScoreReceiptSchema()


def _create_api_response(
    data: Any = None, message: str = "Success", status: str = "success", code: int = 200
) -> Tuple[Response, int]:
    """Create a standardized API response."""
    response_data = {"status": status, "message": message}
    if data is not None:
        response_data["data"] = data
    return jsonify(response_data), code


def _handle_validation_error(error: ValidationError) -> Tuple[Response, int]:
    """Handle validation errors consistently."""
    return (
        jsonify({"status": "error", "message": "Validation failed", "errors": error.messages}),
        400,
    )


def _verify_rate_limit() -> str:
    return current_app.config.get("RECEIPT_VERIFY_RATE_LIMIT", "30 per minute")


@bp.route("/verify", methods=["POST"])
@limiter.limit(_verify_rate_limit)
def verify() -> Tuple[Response, int]:
    """Verify an uploaded receipt photo.

    Expects multipart form data with an ``image`` file and optional
    ``declared_total``, ``latitude``, ``longitude``, ``restaurant_id`` and
    ``known_hashes`` fields.
    """
    upload = request.files.get("image")
    if upload is None:
        raise ReceiptValidationError("No receipt image provided", field="image")

    try:
        data = verify_schema.load(request.form.to_dict())
    except ValidationError as e:
        return _handle_validation_error(e)

    submission = ReceiptSubmission(image_bytes=upload.read(), **data)
    result = verify_receipt(submission)
    return _create_api_response(data=result.to_dict(), message="Receipt verified")


@bp.route("/parse", methods=["POST"])
def parse() -> Tuple[Response, int]:
    """Parse OCR text into receipt fields."""
    try:
        data = parse_schema.load(request.get_json(silent=True) or {})
    except ValidationError as e:
        return _handle_validation_error(e)

    parsed = parse_receipt_text(data["text"])
    return _create_api_response(data=parsed.to_dict(), message="Receipt text parsed")


@bp.route("/score", methods=["POST"])
def score() -> Tuple[Response, int]:
    """Score already extracted receipt data with the decision engine."""
    try:
        data = score_schema.load(request.get_json(silent=True) or {})
    except ValidationError as e:
        return _handle_validation_error(e)

    result = calculate_auto_approve_score(
        data["extracted_data"],
        declared_total=data["declared_total"],
        user_location=data["user_location"],
        restaurant_id=data["restaurant_id"],
        fraud_flags=[FraudSignal(flag) for flag in data["fraud_flags"]],
        vision_confidence=data["vision_confidence"],
        parser_confidence=data["parser_confidence"],
    )
    return _create_api_response(data=result.to_dict(), message="Receipt scored")

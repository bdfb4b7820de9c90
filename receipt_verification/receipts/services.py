"""Receipt verification pipeline.

Runs a submitted photo through duplicate detection, OCR, field parsing,
geofencing, fraud pattern detection and the decision engine, and returns
everything a reviewer needs to see in one result.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from io import BytesIO
import logging
from typing import Any, Optional, Union

from flask import current_app
from PIL import Image, UnidentifiedImageError

from receipt_verification.receipts.exceptions import (
    DuplicateReceiptError,
    InvalidImageError,
    NotAReceiptError,
    ReceiptValidationError,
)
from receipt_verification.restaurants.repository import (
    CachedRestaurantRepository,
    RestaurantRepository,
    get_restaurant_repository,
)
from receipt_verification.services.decision_engine import (
    AUTO_APPROVE_THRESHOLD,
    REJECT_THRESHOLD,
    Decision,
    DecisionEngine,
    DecisionResult,
    calculate_consistency_score,
)
from receipt_verification.services.ocr_service import (
    MIN_RECEIPT_TEXT_LENGTH,
    OcrClient,
    OcrResult,
    ReceiptExtraction,
    extract_receipt,
    get_ocr_client,
    validate_receipt_image,
)
from receipt_verification.services.receipt_parser import ParsedReceipt
from receipt_verification.utils.antifraud import (
    DEFAULT_SIMILARITY_THRESHOLD,
    FraudSignal,
    calculate_image_md5,
    calculate_perceptual_hash,
    detect_fraud_patterns,
    find_similar_image,
)
from receipt_verification.utils.geo_utils import DEFAULT_GEOFENCE_METERS, GeofenceResult, check_geofence

logger = logging.getLogger(__name__)

# Receipts scored as not-a-receipt with at least this confidence are refused
NOT_A_RECEIPT_MIN_CONFIDENCE = 0.8
ENGINE_UNAVAILABLE_REASON = "Decision engine unavailable"


@dataclass
class ReceiptSubmission:
    """A receipt photo plus what the user declared about it."""

    image_bytes: bytes
    declared_total: Optional[float] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    restaurant_id: Optional[Union[int, str]] = None
    known_hashes: Sequence[str] = ()


@dataclass
class VerificationResult:
    """Everything computed for one submission."""

    image_hash: str
    perceptual_hash: Optional[str]
    ocr_method: str
    raw_text: Optional[str]
    vision_confidence: float
    parser_confidence: float
    parsed: ParsedReceipt
    geofence: GeofenceResult
    fraud_flags: list[FraudSignal]
    consistency_score: float
    decision: DecisionResult
    receipt_check: Optional[dict[str, Any]] = None

    def to_dict(self) -> dict[str, Any]:
        parsed = self.parsed.to_dict()
        return {
            "imageHash": self.image_hash,
            "perceptualHash": self.perceptual_hash,
            "ocrMethod": self.ocr_method,
            "rawText": self.raw_text,
            "visionConfidence": self.vision_confidence,
            "parserConfidence": self.parser_confidence,
            "fields": parsed["fields"],
            "confidences": parsed["confidences"],
            "geofence": self.geofence.to_dict(),
            "fraudFlags": [flag.value for flag in self.fraud_flags],
            "consistencyScore": self.consistency_score,
            "decision": self.decision.to_dict(),
            "receiptCheck": self.receipt_check,
        }


class ReceiptVerificationService:
    """Verify receipt submissions.

    Collaborators are injected so the pipeline can run without Flask, a
    database or Tesseract. ``from_app`` wires them from the current app.
    """

    def __init__(
        self,
        ocr_client: OcrClient,
        repository: Optional[RestaurantRepository] = None,
        geofence_max_distance: float = DEFAULT_GEOFENCE_METERS,
        similarity_threshold: int = DEFAULT_SIMILARITY_THRESHOLD,
        min_text_length: int = MIN_RECEIPT_TEXT_LENGTH,
        auto_approve_threshold: float = AUTO_APPROVE_THRESHOLD,
        reject_threshold: float = REJECT_THRESHOLD,
    ):
        self.ocr_client = ocr_client
        self.repository = repository
        self.geofence_max_distance = geofence_max_distance
        self.similarity_threshold = similarity_threshold
        self.min_text_length = min_text_length
        self.auto_approve_threshold = auto_approve_threshold
        self.reject_threshold = reject_threshold

    @classmethod
    def from_app(cls) -> ReceiptVerificationService:
        config = current_app.config
        return cls(
            ocr_client=get_ocr_client(),
            repository=get_restaurant_repository(),
            geofence_max_distance=config.get("GEOFENCE_MAX_DISTANCE_METERS", DEFAULT_GEOFENCE_METERS),
            similarity_threshold=config.get("IMAGE_SIMILARITY_THRESHOLD", DEFAULT_SIMILARITY_THRESHOLD),
            min_text_length=config.get("RECEIPT_MIN_TEXT_LENGTH", MIN_RECEIPT_TEXT_LENGTH),
            auto_approve_threshold=config.get("AUTO_APPROVE_THRESHOLD", AUTO_APPROVE_THRESHOLD),
            reject_threshold=config.get("REJECT_THRESHOLD", REJECT_THRESHOLD),
        )

    def verify(self, submission: ReceiptSubmission, now: Optional[datetime] = None) -> VerificationResult:
        """Run the full verification pipeline for one submission.

        Raises:
            ReceiptValidationError: If no image was provided
            InvalidImageError: If the image cannot be decoded
            DuplicateReceiptError: If the image matches a known hash
            NotAReceiptError: If OCR is confident the image is not a receipt
        """
        image_bytes = submission.image_bytes
        if not image_bytes:
            raise ReceiptValidationError("No receipt image provided", field="image")
        _ensure_image(image_bytes)

        image_hash = calculate_image_md5(image_bytes)
        known_hashes = [h.strip().lower() for h in submission.known_hashes if h and h.strip()]
        if image_hash in known_hashes:
            logger.warning(f"Exact duplicate receipt image {image_hash}")
            raise DuplicateReceiptError(image_hash, exact=True)

        perceptual_hash = calculate_perceptual_hash(image_bytes)
        duplicate_of = find_similar_image(perceptual_hash, known_hashes, self.similarity_threshold)
        if duplicate_of:
            logger.warning(f"Receipt image {perceptual_hash} looks like known image {duplicate_of}")
            raise DuplicateReceiptError(duplicate_of, exact=False)

        ocr_result, receipt_check = self._run_ocr(image_bytes)
        if ocr_result is None:
            extraction = ReceiptExtraction(method=getattr(self.ocr_client, "method", "none"), success=False)
        else:
            extraction = extract_receipt(image_bytes, self.ocr_client, ocr_result=ocr_result, now=now)

        repository = CachedRestaurantRepository(self.repository or get_restaurant_repository())
        geofence = self._check_geofence(submission, repository)
        fields = extraction.parsed.fields
        fraud_flags = detect_fraud_patterns(fields, geofence, now=now)
        consistency_score = calculate_consistency_score(fields)

        decision = self._decide(
            extraction.parsed,
            submission,
            geofence,
            fraud_flags,
            vision_confidence=extraction.vision_confidence if extraction.success else None,
            parser_confidence=extraction.parser_confidence if extraction.success else None,
            repository=repository,
            now=now,
        )

        logger.info(
            f"Verified receipt {image_hash}: method={extraction.method} "
            f"flags={[f.value for f in fraud_flags]} score={decision.score} decision={decision.decision.value}"
        )

        return VerificationResult(
            image_hash=image_hash,
            perceptual_hash=perceptual_hash,
            ocr_method=extraction.method,
            raw_text=extraction.raw_text,
            vision_confidence=extraction.vision_confidence,
            parser_confidence=extraction.parser_confidence,
            parsed=extraction.parsed,
            geofence=geofence,
            fraud_flags=fraud_flags,
            consistency_score=consistency_score,
            decision=decision,
            receipt_check=receipt_check,
        )

    def _run_ocr(self, image_bytes: bytes) -> tuple[Optional[OcrResult], Optional[dict[str, Any]]]:
        """OCR the image once and refuse it if it clearly is not a receipt."""
        if not self.ocr_client.enabled:
            return None, None

        check = validate_receipt_image(image_bytes, self.ocr_client, self.min_text_length)
        if not check.is_receipt and check.confidence >= NOT_A_RECEIPT_MIN_CONFIDENCE:
            logger.warning(f"Receipt image rejected: {check.reason} (confidence: {check.confidence})")
            raise NotAReceiptError(check.reason, check.confidence)

        return check.ocr_result, {"isReceipt": check.is_receipt, "confidence": check.confidence, "reason": check.reason}

    def _check_geofence(self, submission: ReceiptSubmission, repository: RestaurantRepository) -> GeofenceResult:
        if submission.latitude is None or submission.longitude is None or submission.restaurant_id is None:
            return GeofenceResult()

        try:
            restaurant = repository.get_by_id(submission.restaurant_id)
        except Exception as e:
            logger.error(f"Geofence check failed: {e}")
            return GeofenceResult()

        if restaurant is None or not restaurant.has_coordinates:
            return GeofenceResult()

        return check_geofence(
            submission.latitude,
            submission.longitude,
            restaurant.latitude,
            restaurant.longitude,
            max_distance=self.geofence_max_distance,
        )

    def _decide(
        self,
        parsed: ParsedReceipt,
        submission: ReceiptSubmission,
        geofence: GeofenceResult,
        fraud_flags: list[FraudSignal],
        vision_confidence: Optional[float],
        parser_confidence: Optional[float],
        repository: RestaurantRepository,
        now: Optional[datetime],
    ) -> DecisionResult:
        engine = DecisionEngine(
            repository=repository,
            auto_approve_threshold=self.auto_approve_threshold,
            reject_threshold=self.reject_threshold,
        )
        try:
            return engine.score(
                parsed.fields,
                declared_total=submission.declared_total,
                user_location=geofence,
                restaurant_id=submission.restaurant_id,
                fraud_flags=fraud_flags,
                vision_confidence=vision_confidence,
                parser_confidence=parser_confidence,
                now=now,
            )
        except Exception:
            logger.exception("Decision engine failed")
            return DecisionResult(score=0, decision=Decision.PENDING_REVIEW, reasons=[ENGINE_UNAVAILABLE_REASON])


def _ensure_image(image_bytes: bytes) -> None:
    try:
        with Image.open(BytesIO(image_bytes)) as img:
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError) as e:
        logger.warning(f"Image validation failed: {e}")
        raise InvalidImageError() from e


def verify_receipt(submission: ReceiptSubmission, now: Optional[datetime] = None) -> VerificationResult:
    """Verify a submission with collaborators configured from the current app."""
    return ReceiptVerificationService.from_app().verify(submission, now=now)

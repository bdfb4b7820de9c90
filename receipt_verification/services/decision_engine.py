"""Decision engine for auto-approving submitted receipts.

The engine combines the parsed receipt fields with the anti-fraud signals into
a single score between 0 and 1 and maps it to one of three decisions.

Factor weights (maximum contribution):

    OIB valid and known       0.30  (+0.05 when it is the selected restaurant)
    Issue date recency        0.20
    Amount consistency        0.20
    Merchant name match       0.10
    Location proximity        0.10
    OCR confidence            0.10

Each fraud signal subtracts 0.1, capped at 0.3.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
import logging
from typing import Any, Optional, Union

from receipt_verification.restaurants.repository import (
    CachedRestaurantRepository,
    RestaurantRepository,
    get_restaurant_repository,
)
from receipt_verification.services.receipt_parser import ExtractedFields
from receipt_verification.utils.antifraud import (
    calculate_amount_consistency,
    days_since,
    validate_oib_checksum,
)
from receipt_verification.utils.geo_utils import GeofenceResult, format_distance
from receipt_verification.utils.number_utils import round_half_up, to_float
from receipt_verification.utils.string_similarity import calculate_string_similarity

logger = logging.getLogger(__name__)

OIB_KNOWN_POINTS = 0.3
OIB_CHECKSUM_ONLY_POINTS = 0.15
OIB_RESTAURANT_MATCH_POINTS = 0.05
DATE_RECENT_POINTS = 0.2
DATE_WEEK_POINTS = 0.1
AMOUNT_POINTS = 0.2
AMOUNT_EXTRACTED_ONLY_POINTS = 0.1
MERCHANT_MATCH_POINTS = 0.1
MERCHANT_PARTIAL_POINTS = 0.05
LOCATION_INSIDE_POINTS = 0.1
LOCATION_NEAR_POINTS = 0.05
OCR_CONFIDENCE_POINTS = 0.1

FRAUD_FLAG_PENALTY = 0.1
MAX_FRAUD_PENALTY = 0.3

RECENT_DAYS = 2
WEEK_DAYS = 7
NEAR_DISTANCE_METERS = 500
MERCHANT_MATCH_SIMILARITY = 0.8
MERCHANT_PARTIAL_SIMILARITY = 0.5
ISSUED_AT_FORMATS = ("%Y-%m-%dT%H:%M:%S", "%Y-%m-%dT%H:%M")

AUTO_APPROVE_THRESHOLD = 0.8
REJECT_THRESHOLD = 0.5


class Decision(str, Enum):
    AUTO_APPROVED = "auto_approved"
    PENDING_REVIEW = "pending_review"
    REJECTED = "rejected"


@dataclass
class DecisionResult:
    """Score, decision and the per-factor explanation behind them."""

    score: float
    decision: Decision
    reasons: list[str] = field(default_factory=list)
    breakdown: dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "score": self.score,
            "decision": self.decision.value,
            "reasons": list(self.reasons),
            "breakdown": dict(self.breakdown),
        }


GeofenceInput = Union[GeofenceResult, Mapping[str, Any], None]


def _as_geofence(user_location: GeofenceInput) -> Optional[GeofenceResult]:
    if user_location is None:
        return None
    if isinstance(user_location, GeofenceResult):
        return user_location

    within = user_location.get("withinGeofence", user_location.get("within_geofence"))
    return GeofenceResult(within_geofence=within, distance=to_float(user_location.get("distance")))


def _flag_name(flag: Any) -> str:
    return str(getattr(flag, "value", flag))


def _parse_issued_at(issue_date: str, issue_time: str) -> Optional[datetime]:
    """Combine date and time (HH:MM or HH:MM:SS) into a naive datetime."""
    for fmt in ISSUED_AT_FORMATS:
        try:
            return datetime.strptime(f"{issue_date}T{issue_time}", fmt)
        except ValueError:
            continue
    return None


class DecisionEngine:
    """Weighted scoring of a receipt submission.

    Args:
        repository: Restaurant lookups; defaults to the SQLAlchemy repository
        auto_approve_threshold: Scores at or above this are auto-approved
        reject_threshold: Scores below this are rejected
    """

    def __init__(
        self,
        repository: Optional[RestaurantRepository] = None,
        auto_approve_threshold: float = AUTO_APPROVE_THRESHOLD,
        reject_threshold: float = REJECT_THRESHOLD,
    ):
        self.repository = repository
        self.auto_approve_threshold = auto_approve_threshold
        self.reject_threshold = reject_threshold

    def decide(self, score: float) -> Decision:
        if score >= self.auto_approve_threshold:
            return Decision.AUTO_APPROVED
        if score < self.reject_threshold:
            return Decision.REJECTED
        return Decision.PENDING_REVIEW

    def score(
        self,
        extracted_data: Union[ExtractedFields, Mapping[str, Any]],
        declared_total: Optional[float] = None,
        user_location: GeofenceInput = None,
        restaurant_id: Optional[Union[int, str]] = None,
        fraud_flags: Optional[Sequence[Any]] = None,
        vision_confidence: Optional[float] = None,
        parser_confidence: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> DecisionResult:
        """Calculate the auto-approve score for a receipt.

        Missing optional inputs never raise: each factor falls back to a zero
        contribution with an explanatory reason. Only the merchant-name
        lookup is guarded against database errors; any other failure
        propagates to the caller.

        Returns:
            DecisionResult with the score clamped to [0, 1] and rounded to 2 decimals
        """
        if not isinstance(extracted_data, ExtractedFields):
            extracted_data = ExtractedFields.from_dict(dict(extracted_data or {}))

        repository = CachedRestaurantRepository(self.repository or get_restaurant_repository())
        total = 0.0
        breakdown: dict[str, float] = {}
        reasons: list[str] = []

        for points, factor_breakdown, factor_reasons in (
            self._score_oib(extracted_data, restaurant_id, repository),
            self._score_date(extracted_data, now),
            self._score_amount(extracted_data, declared_total),
            self._score_merchant(extracted_data, restaurant_id, repository),
            self._score_location(_as_geofence(user_location)),
            self._score_ocr_confidence(vision_confidence, parser_confidence),
            self._fraud_penalty(fraud_flags or []),
        ):
            total += points
            breakdown.update(factor_breakdown)
            reasons.extend(factor_reasons)

        score = round_half_up(max(0.0, min(1.0, total)), 2)
        result = DecisionResult(
            score=score,
            decision=self.decide(score),
            reasons=[reason for reason in reasons if reason],
            breakdown=breakdown,
        )

        logger.info(f"Auto-approve score: {result.score}, decision: {result.decision.value}")
        logger.debug(f"Decision reasons: {result.reasons}")
        return result

    def _score_oib(
        self,
        fields: ExtractedFields,
        restaurant_id: Optional[Union[int, str]],
        repository: RestaurantRepository,
    ) -> tuple[float, dict[str, float], list[str]]:
        if not fields.oib:
            return 0.0, {"oibValidation": 0}, ["No OIB extracted"]

        if not validate_oib_checksum(fields.oib):
            return 0.0, {"oibValidation": 0}, ["Invalid OIB checksum"]

        restaurant = repository.find_by_oib(fields.oib)
        if restaurant is None:
            return (
                OIB_CHECKSUM_ONLY_POINTS,
                {"oibValidation": OIB_CHECKSUM_ONLY_POINTS},
                ["Valid OIB checksum but not in database"],
            )

        points = OIB_KNOWN_POINTS
        breakdown = {"oibValidation": OIB_KNOWN_POINTS}
        reasons = ["Valid OIB found in database"]

        if restaurant_id is not None and str(restaurant.id) == str(restaurant_id):
            points += OIB_RESTAURANT_MATCH_POINTS
            breakdown["oibMatch"] = OIB_RESTAURANT_MATCH_POINTS
            reasons.append("OIB matches selected restaurant")

        return points, breakdown, reasons

    def _score_date(
        self, fields: ExtractedFields, now: Optional[datetime]
    ) -> tuple[float, dict[str, float], list[str]]:
        if not fields.issue_date or not fields.issue_time:
            return 0.0, {"dateValidation": 0}, ["Missing date/time information"]

        issued_at = _parse_issued_at(fields.issue_date, fields.issue_time)
        if issued_at is None:
            return 0.0, {"dateValidation": 0}, ["Invalid date/time information"]

        days_diff = days_since(issued_at, now)

        if 0 <= days_diff <= RECENT_DAYS:
            return DATE_RECENT_POINTS, {"dateValidation": DATE_RECENT_POINTS}, [f"Receipt from {days_diff} day(s) ago"]
        if RECENT_DAYS < days_diff <= WEEK_DAYS:
            return DATE_WEEK_POINTS, {"dateValidation": DATE_WEEK_POINTS}, ["Receipt older than 2 days"]
        if days_diff < 0:
            return 0.0, {"dateValidation": 0}, ["Receipt date is in the future"]
        return 0.0, {"dateValidation": 0}, ["Receipt too old"]

    def _score_amount(
        self, fields: ExtractedFields, declared_total: Optional[float]
    ) -> tuple[float, dict[str, float], list[str]]:
        consistency = calculate_amount_consistency(declared_total, fields.total_amount)

        if consistency is not None:
            points = consistency * AMOUNT_POINTS
            if consistency >= 0.9:
                reason = "Declared amount matches extracted amount"
            elif consistency >= 0.7:
                reason = "Declared amount similar to extracted amount"
            else:
                reason = "Declared amount differs from extracted amount"
            return points, {"amountConsistency": round_half_up(points, 4)}, [reason]

        if fields.total_amount:
            return (
                AMOUNT_EXTRACTED_ONLY_POINTS,
                {"amountConsistency": AMOUNT_EXTRACTED_ONLY_POINTS},
                ["Total amount extracted"],
            )

        return 0.0, {"amountConsistency": 0}, ["No total amount available"]

    def _score_merchant(
        self,
        fields: ExtractedFields,
        restaurant_id: Optional[Union[int, str]],
        repository: RestaurantRepository,
    ) -> tuple[float, dict[str, float], list[str]]:
        # Without a merchant name or a selected restaurant there is nothing to
        # compare; the breakdown still records the factor.
        if not fields.merchant_name or restaurant_id is None:
            return 0.0, {"merchantMatch": 0}, []

        try:
            restaurant = repository.get_by_id(restaurant_id)
        except Exception as e:
            logger.error(f"Error checking merchant match for restaurant {restaurant_id}: {e}")
            return 0.0, {"merchantMatch": 0}, []

        if restaurant is None:
            return 0.0, {"merchantMatch": 0}, []

        similarity = calculate_string_similarity(fields.merchant_name.lower(), (restaurant.name or "").lower())

        if similarity > MERCHANT_MATCH_SIMILARITY:
            return MERCHANT_MATCH_POINTS, {"merchantMatch": MERCHANT_MATCH_POINTS}, ["Merchant name matches restaurant"]
        if similarity > MERCHANT_PARTIAL_SIMILARITY:
            return (
                MERCHANT_PARTIAL_POINTS,
                {"merchantMatch": MERCHANT_PARTIAL_POINTS},
                ["Merchant name partially matches"],
            )
        return 0.0, {"merchantMatch": 0}, ["Merchant name mismatch"]

    def _score_location(self, geofence: Optional[GeofenceResult]) -> tuple[float, dict[str, float], list[str]]:
        if geofence is None or not geofence.is_known:
            return 0.0, {"location": 0}, ["No location data"]

        distance = geofence.distance
        if geofence.within_geofence:
            reason = f"User within {format_distance(distance or 0.0)} of restaurant"
            return LOCATION_INSIDE_POINTS, {"location": LOCATION_INSIDE_POINTS}, [reason]
        if distance is not None and distance < NEAR_DISTANCE_METERS:
            reason = f"User {format_distance(distance)} from restaurant"
            return LOCATION_NEAR_POINTS, {"location": LOCATION_NEAR_POINTS}, [reason]
        return 0.0, {"location": 0}, ["User far from restaurant location"]

    def _score_ocr_confidence(
        self, vision_confidence: Optional[float], parser_confidence: Optional[float]
    ) -> tuple[float, dict[str, float], list[str]]:
        if vision_confidence and parser_confidence:
            average = (vision_confidence + parser_confidence) / 2
            points = average * OCR_CONFIDENCE_POINTS
            percent = round_half_up(average * 100, 0)
            return points, {"ocrConfidence": round_half_up(points, 4)}, [f"OCR confidence: {percent:.0f}%"]

        if vision_confidence is None and parser_confidence is None:
            return 0.0, {"ocrConfidence": 0}, []
        return 0.0, {"ocrConfidence": 0}, ["Low OCR confidence"]

    def _fraud_penalty(self, fraud_flags: Sequence[Any]) -> tuple[float, dict[str, float], list[str]]:
        if not fraud_flags:
            return 0.0, {}, []

        penalty = round_half_up(min(len(fraud_flags) * FRAUD_FLAG_PENALTY, MAX_FRAUD_PENALTY), 2)
        names = ", ".join(_flag_name(flag) for flag in fraud_flags)
        return -penalty, {"fraudPenalty": -penalty}, [f"Fraud flags: {names}"]


def calculate_auto_approve_score(
    extracted_data: Union[ExtractedFields, Mapping[str, Any]],
    declared_total: Optional[float] = None,
    user_location: GeofenceInput = None,
    restaurant_id: Optional[Union[int, str]] = None,
    fraud_flags: Optional[Sequence[Any]] = None,
    vision_confidence: Optional[float] = None,
    parser_confidence: Optional[float] = None,
    repository: Optional[RestaurantRepository] = None,
    now: Optional[datetime] = None,
) -> DecisionResult:
    """Score a receipt with the default thresholds. See ``DecisionEngine.score``."""
    return DecisionEngine(repository=repository).score(
        extracted_data,
        declared_total=declared_total,
        user_location=user_location,
        restaurant_id=restaurant_id,
        fraud_flags=fraud_flags,
        vision_confidence=vision_confidence,
        parser_confidence=parser_confidence,
        now=now,
    )


def calculate_consistency_score(fields: ExtractedFields) -> float:
    """Score how complete the extracted fields are as a set (0-1).

    Each present group adds 0.25: OIB with merchant name, date with time,
    a fiscal identifier (JIR or ZKI), and a positive total.
    """
    score = 0.0

    if fields.oib and fields.merchant_name:
        score += 0.25
    if fields.issue_date and fields.issue_time:
        score += 0.25
    if fields.jir or fields.zki:
        score += 0.25
    if fields.total_amount and fields.total_amount > 0:
        score += 0.25

    return score

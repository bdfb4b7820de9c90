"""Tests for the auto-approve decision engine."""

from datetime import datetime

import pytest

from receipt_verification.services.decision_engine import (
    Decision,
    DecisionEngine,
    calculate_auto_approve_score,
    calculate_consistency_score,
)
from receipt_verification.services.receipt_parser import ExtractedFields, parse_receipt_text
from receipt_verification.utils.antifraud import FraudSignal
from receipt_verification.utils.geo_utils import GeofenceResult


@pytest.fixture
def fields(receipt_text: str, now: datetime) -> ExtractedFields:
    return parse_receipt_text(receipt_text, now=now).fields


@pytest.fixture
def engine(fake_repository) -> DecisionEngine:
    return DecisionEngine(repository=fake_repository)


def _score(engine: DecisionEngine, fields: ExtractedFields, now: datetime, **overrides):
    kwargs = {
        "declared_total": 25.5,
        "user_location": GeofenceResult(True, 40.0),
        "restaurant_id": 1,
        "fraud_flags": [],
        "vision_confidence": 0.9,
        "parser_confidence": 0.86,
        "now": now,
    }
    kwargs.update(overrides)
    return engine.score(fields, **kwargs)


class TestDecisionEngineEndToEnd:
    """Scoring a complete, consistent submission."""

    def test_clean_receipt_is_auto_approved(self, engine, fields, now) -> None:
        result = _score(engine, fields, now)

        assert result.score == 1.0
        assert result.decision is Decision.AUTO_APPROVED
        assert result.breakdown == {
            "oibValidation": 0.3,
            "oibMatch": 0.05,
            "dateValidation": 0.2,
            "amountConsistency": 0.2,
            "merchantMatch": 0.1,
            "location": 0.1,
            "ocrConfidence": 0.088,
        }
        assert result.reasons == [
            "Valid OIB found in database",
            "OIB matches selected restaurant",
            "Receipt from 0 day(s) ago",
            "Declared amount matches extracted amount",
            "Merchant name matches restaurant",
            "User within 40m of restaurant",
            "OCR confidence: 88%",
        ]

    def test_fraud_flags_push_to_review(self, engine, fields, now) -> None:
        flags = [FraudSignal.ROUND_TOTAL, FraudSignal.OLD_RECEIPT, FraudSignal.UNUSUAL_HOURS]
        result = _score(engine, fields, now, fraud_flags=flags)

        assert result.score == 0.74
        assert result.decision is Decision.PENDING_REVIEW
        assert result.breakdown["fraudPenalty"] == -0.3
        assert result.reasons[-1] == "Fraud flags: round_total, old_receipt, unusual_hours"

    def test_penalty_is_capped(self, engine, fields, now) -> None:
        flags = list(FraudSignal)
        result = _score(engine, fields, now, fraud_flags=flags)
        assert result.breakdown["fraudPenalty"] == -0.3

    def test_shares_restaurant_lookup_between_factors(self, engine, fields, now, fake_repository, valid_oib) -> None:
        _score(engine, fields, now)
        assert fake_repository.calls == [("oib", valid_oib)]

    def test_to_dict(self, engine, fields, now) -> None:
        data = _score(engine, fields, now).to_dict()
        assert data["decision"] == "auto_approved"
        assert data["score"] == 1.0
        assert "oibMatch" in data["breakdown"]


class TestDecisionEngineMissingData:
    """Every factor degrades to zero without raising."""

    def test_empty_submission_is_rejected(self, engine) -> None:
        result = engine.score(ExtractedFields())

        assert result.score == 0
        assert result.decision is Decision.REJECTED
        assert result.reasons == [
            "No OIB extracted",
            "Missing date/time information",
            "No total amount available",
            "No location data",
        ]
        assert result.breakdown == {
            "oibValidation": 0,
            "dateValidation": 0,
            "amountConsistency": 0,
            "merchantMatch": 0,
            "location": 0,
            "ocrConfidence": 0,
        }

    @pytest.mark.parametrize("flag_count,penalty", [(1, -0.1), (3, -0.3), (5, -0.3)])
    def test_penalty_never_drives_score_below_zero(self, engine, now, flag_count, penalty) -> None:
        result = engine.score(ExtractedFields(), fraud_flags=list(FraudSignal)[:flag_count], now=now)

        assert result.score == 0.0
        assert result.decision is Decision.REJECTED
        assert result.breakdown["fraudPenalty"] == penalty

    def test_accepts_serialized_fields(self, fake_repository, now, valid_oib) -> None:
        result = calculate_auto_approve_score(
            {"oib": valid_oib, "issueDate": "2026-10-15", "issueTime": "14:35", "totalAmount": 25.5},
            declared_total=25.5,
            repository=fake_repository,
            now=now,
        )
        assert result.breakdown["oibValidation"] == 0.3
        assert result.breakdown["dateValidation"] == 0.2
        assert result.breakdown["amountConsistency"] == 0.2


class TestOibFactor:
    """Tests for the OIB factor."""

    def test_valid_but_unknown(self, repository_factory, fields, now) -> None:
        result = _score(DecisionEngine(repository=repository_factory([])), fields, now)
        assert result.breakdown["oibValidation"] == 0.15
        assert "oibMatch" not in result.breakdown
        assert "Valid OIB checksum but not in database" in result.reasons

    def test_known_but_other_restaurant(self, engine, fields, now) -> None:
        result = _score(engine, fields, now, restaurant_id=2)
        assert result.breakdown["oibValidation"] == 0.3
        assert "oibMatch" not in result.breakdown

    def test_restaurant_id_as_string(self, engine, fields, now) -> None:
        assert _score(engine, fields, now, restaurant_id="1").breakdown["oibMatch"] == 0.05

    def test_invalid_checksum(self, engine, now) -> None:
        result = engine.score(ExtractedFields(oib="12345678900"), now=now)
        assert result.breakdown["oibValidation"] == 0
        assert result.reasons[0] == "Invalid OIB checksum"


class TestDateFactor:
    """Tests for the issue date factor."""

    @pytest.mark.parametrize(
        "issue_date,issue_time,points,reason",
        [
            ("2026-10-15", "14:35:20", 0.2, "Receipt from 0 day(s) ago"),
            ("2026-10-11", "12:00:00", 0.1, "Receipt older than 2 days"),
            ("2026-10-14", "12:00", 0.2, "Receipt from 2 day(s) ago"),
            ("2026-10-11", "12:00", 0.1, "Receipt older than 2 days"),
            ("2026-10-09", "12:00", 0.1, "Receipt older than 2 days"),
            ("2026-10-01", "12:00", 0, "Receipt too old"),
            ("2026-10-17", "09:00", 0, "Receipt date is in the future"),
            ("2026-13-45", "12:00", 0, "Invalid date/time information"),
            ("2026-10-15", "14:35:99", 0, "Invalid date/time information"),
        ],
    )
    def test_recency(self, engine, now, issue_date, issue_time, points, reason) -> None:
        result = engine.score(ExtractedFields(issue_date=issue_date, issue_time=issue_time), now=now)
        assert result.breakdown["dateValidation"] == points
        assert reason in result.reasons

    def test_date_without_time(self, engine, now) -> None:
        result = engine.score(ExtractedFields(issue_date="2026-10-15"), now=now)
        assert "Missing date/time information" in result.reasons


class TestAmountFactor:
    """Tests for the amount consistency factor."""

    def test_similar_amount(self, engine, fields, now) -> None:
        result = _score(engine, fields, now, declared_total=28.0)
        assert result.breakdown["amountConsistency"] == 0.14
        assert "Declared amount similar to extracted amount" in result.reasons

    def test_different_amount(self, engine, fields, now) -> None:
        result = _score(engine, fields, now, declared_total=30.0)
        assert result.breakdown["amountConsistency"] == 0
        assert "Declared amount differs from extracted amount" in result.reasons

    def test_extracted_only(self, engine, fields, now) -> None:
        result = _score(engine, fields, now, declared_total=None)
        assert result.breakdown["amountConsistency"] == 0.1
        assert "Total amount extracted" in result.reasons


class TestMerchantFactor:
    """Tests for the merchant name factor."""

    def test_partial_match(self, repository_factory, bistro, fields, now) -> None:
        bistro.name = "Bistro Malo"
        result = _score(DecisionEngine(repository=repository_factory([bistro])), fields, now)
        assert result.breakdown["merchantMatch"] == 0.05
        assert "Merchant name partially matches" in result.reasons

    def test_mismatch(self, repository_factory, bistro, fields, now) -> None:
        bistro.name = "Pizzeria Napoli"
        result = _score(DecisionEngine(repository=repository_factory([bistro])), fields, now)
        assert result.breakdown["merchantMatch"] == 0
        assert "Merchant name mismatch" in result.reasons

    def test_lookup_error_is_swallowed(self, repository_factory, fields, now) -> None:
        repository = repository_factory([], fail_on_get=True)
        result = _score(DecisionEngine(repository=repository), fields, now, restaurant_id=1)

        assert result.breakdown["merchantMatch"] == 0
        assert not any("Merchant" in reason for reason in result.reasons)
        assert result.breakdown["oibValidation"] == 0.15

    def test_no_restaurant_selected(self, engine, fields, now) -> None:
        result = _score(engine, fields, now, restaurant_id=None)
        assert result.breakdown["merchantMatch"] == 0
        assert not any("Merchant" in reason for reason in result.reasons)


class TestLocationAndOcrFactors:
    """Tests for the location and OCR confidence factors."""

    def test_near_but_outside(self, engine, fields, now) -> None:
        result = _score(engine, fields, now, user_location=GeofenceResult(False, 300.0))
        assert result.breakdown["location"] == 0.05
        assert "User 300m from restaurant" in result.reasons

    def test_far_away(self, engine, fields, now) -> None:
        result = _score(engine, fields, now, user_location=GeofenceResult(False, 900.0))
        assert result.breakdown["location"] == 0
        assert "User far from restaurant location" in result.reasons

    def test_location_as_mapping(self, engine, fields, now) -> None:
        result = _score(engine, fields, now, user_location={"withinGeofence": True, "distance": 12.3})
        assert "User within 12m of restaurant" in result.reasons

    def test_low_ocr_confidence(self, engine, fields, now) -> None:
        result = _score(engine, fields, now, parser_confidence=None)
        assert result.breakdown["ocrConfidence"] == 0
        assert "Low OCR confidence" in result.reasons

    def test_no_ocr_information(self, engine, fields, now) -> None:
        result = _score(engine, fields, now, vision_confidence=None, parser_confidence=None)
        assert result.breakdown["ocrConfidence"] == 0
        assert not any("OCR" in reason for reason in result.reasons)


class TestDecide:
    """Tests for mapping scores to decisions."""

    @pytest.mark.parametrize(
        "score,decision",
        [
            (1.0, Decision.AUTO_APPROVED),
            (0.8, Decision.AUTO_APPROVED),
            (0.79, Decision.PENDING_REVIEW),
            (0.5, Decision.PENDING_REVIEW),
            (0.49, Decision.REJECTED),
            (0.0, Decision.REJECTED),
        ],
    )
    def test_default_thresholds(self, score: float, decision: Decision) -> None:
        assert DecisionEngine().decide(score) is decision

    def test_custom_thresholds(self) -> None:
        engine = DecisionEngine(auto_approve_threshold=0.9, reject_threshold=0.3)
        assert engine.decide(0.85) is Decision.PENDING_REVIEW
        assert engine.decide(0.3) is Decision.PENDING_REVIEW
        assert engine.decide(0.29) is Decision.REJECTED


class TestConsistencyScore:
    """Tests for calculate_consistency_score."""

    def test_complete_fields(self, fields) -> None:
        assert calculate_consistency_score(fields) == 1.0

    def test_partial_fields(self, valid_oib) -> None:
        assert calculate_consistency_score(ExtractedFields(oib=valid_oib, zki="A" * 32)) == 0.25
        assert calculate_consistency_score(ExtractedFields(total_amount=0)) == 0.0
        assert calculate_consistency_score(ExtractedFields()) == 0.0

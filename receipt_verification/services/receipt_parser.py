"""Croatian fiscal receipt parser for extracting structured data from OCR text.

Every extractor is an independent function returning a ``FieldResult`` so a
failure on one field never blocks the others. Nothing here talks to Flask or
the database, which keeps the parser usable from the CLI and from tests.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
import logging
import re
from typing import Any, NamedTuple, Optional

from receipt_verification.utils.antifraud import validate_oib_checksum
from receipt_verification.utils.number_utils import round_half_up

logger = logging.getLogger(__name__)

FIELD_NAMES: tuple[str, ...] = (
    "oib",
    "jir",
    "zki",
    "issue_date",
    "issue_time",
    "total_amount",
    "merchant_name",
    "merchant_address",
)

# Serialized (API) names for each field
FIELD_KEYS: dict[str, str] = {
    "oib": "oib",
    "jir": "jir",
    "zki": "zki",
    "issue_date": "issueDate",
    "issue_time": "issueTime",
    "total_amount": "totalAmount",
    "merchant_name": "merchantName",
    "merchant_address": "merchantAddress",
}

OIB_CANDIDATE_PATTERN = re.compile(r"\b(\d{11})\b", re.ASCII)

_HEX = "[A-Fa-f0-9]"
_UUID = rf"{_HEX}{{8}}-{_HEX}{{4}}-{_HEX}{{4}}-{_HEX}{{4}}-{_HEX}{{12}}"

JIR_PATTERNS = (
    re.compile(rf"JIR[:\s]*({_UUID})", re.IGNORECASE),
    re.compile(rf"JIR[:\s]*({_HEX}{{32}})", re.IGNORECASE),
    re.compile(rf"\b({_UUID})\b", re.ASCII),
)

ZKI_PATTERNS = (
    re.compile(rf"ZKI[:\s]*({_HEX}{{32}})", re.IGNORECASE),
    re.compile(rf"ZKI[:\s]*({_HEX}{{8}}\s*{_HEX}{{8}}\s*{_HEX}{{8}}\s*{_HEX}{{8}})", re.IGNORECASE),
)

# DD.MM.YYYY
DATE_PATTERN = re.compile(r"\b(0[1-9]|[12]\d|3[01])\.(0[1-9]|1[0-2])\.(20\d{2})\b", re.ASCII)

# HH:MM or HH:MM:SS
TIME_PATTERN = re.compile(r"\b([01]?\d|2[0-3]):([0-5]\d)(?::([0-5]\d))?\b", re.ASCII)

TOTAL_KEYWORDS = re.compile(r"(ukupno|za\s*plat[ií]ti|total|iznos|suma|sveukupno|€|EUR)", re.IGNORECASE)

# 12,34 or 12.34 or 1234,56
AMOUNT_PATTERN = re.compile(r"\b(\d{1,4})[.,](\d{2})\b", re.ASCII)

BUSINESS_PATTERNS = (
    re.compile(r"d\.o\.o\.", re.IGNORECASE),
    re.compile(r"j\.d\.o\.o\.", re.IGNORECASE),
    re.compile(r"obrt", re.IGNORECASE),
    re.compile(r"j\.t\.d\.", re.IGNORECASE),
    re.compile(r"d\.d\.", re.IGNORECASE),
    re.compile(r"restoran", re.IGNORECASE),
    re.compile(r"kavana", re.IGNORECASE),
    re.compile(r"caffe", re.IGNORECASE),
)

ADDRESS_PATTERN = re.compile(r"\b([A-Za-zčćžšđČĆŽŠĐ\s]+\s+\d+[a-z]?)", re.IGNORECASE)

MERCHANT_NAME_LINES = 5
MERCHANT_ADDRESS_LINES = 8
TOTAL_LOOKAHEAD_LINES = 2


class FieldResult(NamedTuple):
    """Value extracted for a single field and how much we trust it."""

    value: Any
    confidence: float


EMPTY = FieldResult(None, 0.0)


@dataclass
class ExtractedFields:
    """Structured data extracted from a Croatian fiscal receipt."""

    oib: Optional[str] = None
    jir: Optional[str] = None
    zki: Optional[str] = None
    issue_date: Optional[str] = None  # YYYY-MM-DD
    issue_time: Optional[str] = None  # HH:MM
    total_amount: Optional[float] = None
    merchant_name: Optional[str] = None
    merchant_address: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {FIELD_KEYS[name]: getattr(self, name) for name in FIELD_NAMES}

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> ExtractedFields:
        """Build from either snake_case or serialized camelCase keys."""
        data = data or {}
        values = {}
        for name in FIELD_NAMES:
            if name in data:
                values[name] = data[name]
            elif FIELD_KEYS[name] in data:
                values[name] = data[FIELD_KEYS[name]]
        return cls(**values)


def _empty_confidences() -> dict[str, float]:
    return {name: 0.0 for name in FIELD_NAMES}


@dataclass
class ParsedReceipt:
    """Parser output: field values, per-field confidences and their mean."""

    fields: ExtractedFields = field(default_factory=ExtractedFields)
    confidences: dict[str, float] = field(default_factory=_empty_confidences)
    overall_confidence: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "fields": self.fields.to_dict(),
            "confidences": {FIELD_KEYS[name]: self.confidences[name] for name in FIELD_NAMES},
            "overallConfidence": self.overall_confidence,
        }


def extract_oib(text: Optional[str]) -> FieldResult:
    """Extract an OIB, preferring the first candidate with a valid checksum."""
    if not isinstance(text, str) or not text:
        return EMPTY

    candidates = OIB_CANDIDATE_PATTERN.findall(text)
    if not candidates:
        return EMPTY

    for oib in candidates:
        if validate_oib_checksum(oib):
            return FieldResult(oib, 0.95)

    return FieldResult(candidates[0], 0.3)


def extract_jir(text: Optional[str]) -> FieldResult:
    """Extract the JIR (unique receipt identifier), normalized to 32 uppercase hex chars."""
    if not isinstance(text, str) or not text:
        return EMPTY

    for pattern in JIR_PATTERNS:
        match = pattern.search(text)
        if match:
            jir = match.group(1).replace("-", "")
            return FieldResult(jir.upper(), 0.9)

    return EMPTY


def extract_zki(text: Optional[str]) -> FieldResult:
    """Extract the ZKI (issuer protection code); the label is required."""
    if not isinstance(text, str) or not text:
        return EMPTY

    for pattern in ZKI_PATTERNS:
        match = pattern.search(text)
        if match:
            zki = re.sub(r"\s", "", match.group(1))
            if len(zki) == 32:
                return FieldResult(zki.upper(), 0.9)

    return EMPTY


def extract_date(text: Optional[str], now: Optional[datetime] = None) -> FieldResult:
    """Extract the issue date and return it as ``YYYY-MM-DD``.

    Receipts often print several dates (issue date, validity of a voucher,
    loyalty expiry). The latest date that is not in the future wins; if every
    date is in the future the earliest one is returned with low confidence.
    """
    if not isinstance(text, str) or not text:
        return EMPTY

    dates: list[datetime] = []
    for day, month, year in DATE_PATTERN.findall(text):
        try:
            dates.append(datetime(int(year), int(month), int(day)))
        except ValueError:
            logger.debug(f"Discarding impossible date {day}.{month}.{year}")

    if not dates:
        return EMPTY

    now = now or datetime.now()
    past_dates = [d for d in dates if d <= now]

    if past_dates:
        return FieldResult(max(past_dates).strftime("%Y-%m-%d"), 0.85)

    return FieldResult(min(dates).strftime("%Y-%m-%d"), 0.3)


def extract_time(text: Optional[str]) -> FieldResult:
    """Extract the first ``HH:MM`` time, which is usually printed next to the date."""
    if not isinstance(text, str) or not text:
        return EMPTY

    match = TIME_PATTERN.search(text)
    if not match:
        return EMPTY

    return FieldResult(f"{match.group(1).zfill(2)}:{match.group(2)}", 0.8)


def _amounts_in(text: str) -> list[float]:
    return [float(f"{whole}.{cents}") for whole, cents in AMOUNT_PATTERN.findall(text)]


def extract_total_amount(text: Optional[str]) -> FieldResult:
    """Extract the receipt total.

    Lines containing a total keyword are searched together with the next two
    lines, since OCR often puts the amount on its own line below the label.
    The largest amount near any keyword wins. Without keywords the largest
    amount anywhere in the text is used with lower confidence.
    """
    if not isinstance(text, str) or not text:
        return EMPTY

    lines = text.split("\n")
    best_amount: Optional[float] = None

    for i, line in enumerate(lines):
        if not TOTAL_KEYWORDS.search(line):
            continue

        search_text = " ".join(lines[i : i + 1 + TOTAL_LOOKAHEAD_LINES])
        amounts = _amounts_in(search_text)
        if not amounts:
            continue

        largest = max(amounts)
        if best_amount is None or largest > best_amount:
            best_amount = largest

    if best_amount:
        return FieldResult(best_amount, 0.9)

    all_amounts = _amounts_in(text)
    if all_amounts:
        return FieldResult(max(all_amounts), 0.5)

    return EMPTY


def _non_empty_lines(text: str) -> list[str]:
    return [line.strip() for line in text.split("\n") if line.strip()]


def extract_merchant_name(text: Optional[str]) -> FieldResult:
    """Extract the merchant name from the receipt header."""
    if not isinstance(text, str) or not text:
        return EMPTY

    lines = _non_empty_lines(text)
    if not lines:
        return EMPTY

    for line in lines[:MERCHANT_NAME_LINES]:
        if any(pattern.search(line) for pattern in BUSINESS_PATTERNS):
            return FieldResult(line, 0.85)

    # Fallback: the first line of a receipt is usually the business name
    return FieldResult(lines[0], 0.6)


def extract_merchant_address(text: Optional[str]) -> FieldResult:
    """Extract the first header line that looks like ``Street name 12a``."""
    if not isinstance(text, str) or not text:
        return EMPTY

    for line in _non_empty_lines(text)[:MERCHANT_ADDRESS_LINES]:
        if ADDRESS_PATTERN.search(line):
            return FieldResult(line, 0.7)

    return EMPTY


def parse_receipt_text(text: Optional[str], now: Optional[datetime] = None) -> ParsedReceipt:
    """Parse OCR text and extract all receipt fields.

    Args:
        text: Raw OCR text; None, empty or non-string input yields an all-empty result
        now: Reference time used to discard future-dated candidates

    Returns:
        ParsedReceipt with every field present (None when not found) and the
        mean of the non-zero confidences rounded to two decimals
    """
    if not isinstance(text, str) or not text:
        logger.debug("No OCR text to parse - returning empty ParsedReceipt")
        return ParsedReceipt()

    results: dict[str, FieldResult] = {
        "oib": extract_oib(text),
        "jir": extract_jir(text),
        "zki": extract_zki(text),
        "issue_date": extract_date(text, now=now),
        "issue_time": extract_time(text),
        "total_amount": extract_total_amount(text),
        "merchant_name": extract_merchant_name(text),
        "merchant_address": extract_merchant_address(text),
    }

    fields = ExtractedFields(**{name: result.value for name, result in results.items()})
    confidences = {name: result.confidence for name, result in results.items()}

    non_zero = [c for c in confidences.values() if c > 0]
    overall = round_half_up(sum(non_zero) / len(non_zero), 2) if non_zero else 0.0

    logger.debug(f"Parsed receipt fields: {fields}")
    logger.debug(f"Field confidences: {confidences} (overall {overall})")

    return ParsedReceipt(fields=fields, confidences=confidences, overall_confidence=overall)

"""Anti-fraud checks for submitted receipts.

Everything here is a pure function that degrades to ``None``/``False``/``inf``
instead of raising, so the decision engine can always score a receipt even
when a single signal could not be computed.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from enum import Enum
import hashlib
from io import BytesIO
import logging
import math
import re
from typing import TYPE_CHECKING, Optional

import imagehash
from PIL import Image

if TYPE_CHECKING:
    from receipt_verification.services.receipt_parser import ExtractedFields
    from receipt_verification.utils.geo_utils import GeofenceResult

logger = logging.getLogger(__name__)

OIB_PATTERN = re.compile(r"^[0-9]{11}$")

# 16x16 DCT hash -> 256 bits -> 64 hex characters
PERCEPTUAL_HASH_SIZE = 16
DEFAULT_SIMILARITY_THRESHOLD = 5

MAX_RECEIPT_AGE_DAYS = 7
LOCATION_MISMATCH_METERS = 500
ROUND_TOTAL_MINIMUM = 100


class FraudSignal(str, Enum):
    """Suspicious patterns that can be detected on a single submission."""

    ROUND_TOTAL = "round_total"
    OLD_RECEIPT = "old_receipt"
    FUTURE_DATE = "future_date"
    UNUSUAL_HOURS = "unusual_hours"
    INVALID_OIB = "invalid_oib"
    LOCATION_MISMATCH = "location_mismatch"


def validate_oib_checksum(oib: object) -> bool:
    """Validate a Croatian OIB using the ISO 7064 MOD 11,10 algorithm.

    Args:
        oib: Candidate OIB, must be a string of exactly 11 digits

    Returns:
        True if the control digit matches
    """
    if not isinstance(oib, str) or not OIB_PATTERN.fullmatch(oib):
        return False

    a = 10
    for char in oib[:10]:
        a = (a + int(char)) % 10
        if a == 0:
            a = 10
        a = (a * 2) % 11

    control_digit = (11 - a) % 10
    return control_digit == int(oib[10])


def calculate_image_md5(image_bytes: bytes) -> str:
    """MD5 fingerprint of the raw upload, used for exact duplicate detection."""
    return hashlib.md5(image_bytes, usedforsecurity=False).hexdigest()


def calculate_perceptual_hash(image_bytes: bytes, hash_size: int = PERCEPTUAL_HASH_SIZE) -> Optional[str]:
    """Calculate a DCT perceptual hash of an image.

    Args:
        image_bytes: Encoded image (JPEG, PNG, ...)
        hash_size: Side of the hash grid; 16 gives a 256-bit hash

    Returns:
        Hex string of the hash, or None if the image could not be decoded
    """
    if not image_bytes:
        return None

    try:
        with Image.open(BytesIO(image_bytes)) as img:
            return str(imagehash.phash(img, hash_size=hash_size))
    except Exception as e:
        logger.error(f"Error calculating perceptual hash: {e}")
        return None


def calculate_hamming_distance(hash1: Optional[str], hash2: Optional[str]) -> float:
    """Count differing bits between two hex-encoded hashes.

    Returns:
        Number of differing bits (0 = identical), or ``math.inf`` when either
        hash is missing, the lengths differ, or a hash is not hexadecimal
    """
    if not hash1 or not hash2 or len(hash1) != len(hash2):
        return math.inf

    try:
        return bin(int(hash1, 16) ^ int(hash2, 16)).count("1")
    except ValueError:
        return math.inf


def are_similar_images(
    hash1: Optional[str], hash2: Optional[str], threshold: int = DEFAULT_SIMILARITY_THRESHOLD
) -> bool:
    """Return True if two perceptual hashes are within the Hamming threshold."""
    return calculate_hamming_distance(hash1, hash2) <= threshold


def find_similar_image(
    perceptual_hash: Optional[str],
    candidates: Iterable[Optional[str]],
    threshold: int = DEFAULT_SIMILARITY_THRESHOLD,
) -> Optional[str]:
    """Return the first previously seen hash that looks like the same photo."""
    if not perceptual_hash:
        return None

    for candidate in candidates:
        if are_similar_images(perceptual_hash, candidate, threshold):
            return candidate
    return None


def days_since(value: datetime, now: Optional[datetime] = None) -> int:
    """Whole days elapsed since ``value``, floored (negative for the future)."""
    now = now or datetime.now()
    return math.floor((now - value).total_seconds() / 86400)


def parse_issue_date(issue_date: Optional[str]) -> Optional[datetime]:
    """Parse an ISO ``YYYY-MM-DD`` date to a naive midnight datetime."""
    if not issue_date:
        return None
    try:
        return datetime.strptime(issue_date, "%Y-%m-%d")
    except (TypeError, ValueError):
        return None


def parse_issue_hour(issue_time: Optional[str]) -> Optional[int]:
    """Return the hour component of an ``HH:MM`` string."""
    if not issue_time:
        return None
    try:
        return int(str(issue_time).split(":")[0])
    except ValueError:
        return None


def detect_fraud_patterns(
    fields: ExtractedFields,
    geofence: Optional[GeofenceResult] = None,
    now: Optional[datetime] = None,
) -> list[FraudSignal]:
    """Check receipt fields for suspicious patterns.

    Each rule adds at most one signal and rules are independent, so several
    signals can fire for the same receipt.

    Args:
        fields: Extracted receipt fields
        geofence: Result of the user/restaurant location comparison
        now: Reference time, defaults to the current local time

    Returns:
        List of fraud signals in rule order
    """
    flags: list[FraudSignal] = []

    total = fields.total_amount
    if total and total % 10 == 0 and total >= ROUND_TOTAL_MINIMUM:
        flags.append(FraudSignal.ROUND_TOTAL)

    issue_date = parse_issue_date(fields.issue_date)
    if issue_date is not None:
        days_diff = days_since(issue_date, now)
        if days_diff > MAX_RECEIPT_AGE_DAYS:
            flags.append(FraudSignal.OLD_RECEIPT)
        if days_diff < 0:
            flags.append(FraudSignal.FUTURE_DATE)

    hour = parse_issue_hour(fields.issue_time)
    if hour is not None and (hour < 6 or hour > 23):
        flags.append(FraudSignal.UNUSUAL_HOURS)

    if fields.oib and not validate_oib_checksum(fields.oib):
        flags.append(FraudSignal.INVALID_OIB)

    if (
        geofence is not None
        and geofence.within_geofence is False
        and geofence.distance is not None
        and geofence.distance > LOCATION_MISMATCH_METERS
    ):
        flags.append(FraudSignal.LOCATION_MISMATCH)

    return flags


def calculate_amount_consistency(
    declared_total: Optional[float], extracted_total: Optional[float]
) -> Optional[float]:
    """Score how closely the declared total matches the extracted total.

    The difference is measured relative to the extracted total and mapped to
    fixed bands: exact 1.0, <=2% 0.95, <=5% 0.85, <=10% 0.7, otherwise 0.0.

    Returns:
        Consistency score, or None if either amount is missing
    """
    if not declared_total or not extracted_total:
        return None

    percent_diff = abs(declared_total - extracted_total) / extracted_total * 100

    if percent_diff == 0:
        return 1.0
    if percent_diff <= 2:
        return 0.95
    if percent_diff <= 5:
        return 0.85
    if percent_diff <= 10:
        return 0.7
    return 0.0

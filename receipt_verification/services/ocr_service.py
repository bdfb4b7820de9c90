"""OCR adapter for extracting text from receipt photos using Tesseract OCR.

The rest of the pipeline only depends on the ``OcrClient`` protocol, so any
OCR provider that returns text plus a confidence can be swapped in.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from io import BytesIO
import logging
import re
from typing import Any, NamedTuple, Optional, Protocol, cast

from flask import current_app
from PIL import Image, ImageEnhance, ImageFilter
import pytesseract

from receipt_verification.services.receipt_parser import ParsedReceipt, parse_receipt_text
from receipt_verification.utils.number_utils import round_half_up

logger = logging.getLogger(__name__)

DEFAULT_LANGUAGES = "hrv+eng"
# PSM 6 = Assume uniform block of text (good for receipts)
TESSERACT_CONFIG = r"--oem 3 --psm 6"
MAX_IMAGE_SIDE = 2000
# Used when the engine reports no per-block confidence at all
DEFAULT_CONFIDENCE = 0.5
MIN_RECEIPT_TEXT_LENGTH = 50

RECEIPT_INDICATORS = (
    re.compile(r"račun", re.IGNORECASE),
    re.compile(r"\b\d{11}\b", re.ASCII),  # OIB
    re.compile(r"JIR", re.IGNORECASE),
    re.compile(r"ZKI", re.IGNORECASE),
    re.compile(r"ukupno", re.IGNORECASE),
    re.compile(r"total", re.IGNORECASE),
    re.compile(r"iznos", re.IGNORECASE),
)


@dataclass
class OcrBlock:
    """A block of text as segmented by the OCR engine."""

    text: str
    confidence: float


@dataclass
class OcrResult:
    """Text extracted from an image and the engine's average confidence."""

    text: str
    confidence: float
    blocks: Optional[list[OcrBlock]] = None


class OcrClient(Protocol):
    """Anything that can turn image bytes into text."""

    enabled: bool

    def extract_text(self, image_bytes: bytes) -> Optional[OcrResult]: ...


class NullOcrClient:
    """OCR client used when OCR is disabled or unavailable. Never finds text."""

    enabled = False
    method = "none"

    def extract_text(self, image_bytes: bytes) -> Optional[OcrResult]:
        logger.debug("OCR client not available, skipping OCR")
        return None


class TesseractOcrClient:
    """OCR client backed by the Tesseract binary through pytesseract."""

    method = "tesseract"

    def __init__(self, tesseract_cmd: Optional[str] = None, languages: str = DEFAULT_LANGUAGES) -> None:
        self.enabled = True
        self.languages = languages

        # Set Tesseract command path if provided
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd

    def extract_text(self, image_bytes: bytes) -> Optional[OcrResult]:
        """Extract text and block confidences from an image.

        Returns:
            OcrResult, or None if the image could not be read or no text was found
        """
        try:
            image = self._preprocess_image(image_bytes)
            data = pytesseract.image_to_data(
                image,
                lang=self.languages,
                config=TESSERACT_CONFIG,
                output_type=pytesseract.Output.DICT,
            )
        except Exception as e:
            logger.error(f"Error in Tesseract OCR: {e}")
            return None

        result = build_ocr_result(data)
        if result is None:
            logger.info("No text detected by Tesseract")
            return None

        logger.info(f"Tesseract extracted {len(result.text)} characters with confidence {result.confidence}")
        return result

    def _preprocess_image(self, image_bytes: bytes) -> Image.Image:
        """Preprocess image to improve OCR accuracy.

        Raises:
            ValueError: If the bytes are not a supported image
        """
        try:
            img = cast(Image.Image, Image.open(BytesIO(image_bytes)))
        except Exception as e:
            raise ValueError(f"Unsupported image format: {e}") from e

        # Convert to RGB if necessary (handles RGBA, P, etc.)
        if img.mode != "RGB":
            img = img.convert("RGB")

        # Resize if image is too large (improves OCR speed and accuracy)
        if max(img.size) > MAX_IMAGE_SIDE:
            ratio = MAX_IMAGE_SIDE / max(img.size)
            new_size = (int(img.size[0] * ratio), int(img.size[1] * ratio))
            img = img.resize(new_size, Image.Resampling.LANCZOS)
            logger.debug(f"Resized image to {new_size}")

        img = img.convert("L")
        img = ImageEnhance.Contrast(img).enhance(1.5)
        return img.filter(ImageFilter.SHARPEN)


def build_ocr_result(data: dict[str, list[Any]]) -> Optional[OcrResult]:
    """Assemble text, per-block confidence and overall confidence from ``image_to_data`` output.

    Words are grouped into lines by (block, paragraph, line) and lines into
    blocks. Tesseract reports word confidence as 0-100 with -1 for non-word
    rows; block confidence is the mean word confidence scaled to [0, 1].
    """
    lines: dict[tuple[int, int, int], list[str]] = defaultdict(list)
    block_confidences: dict[int, list[float]] = defaultdict(list)

    for i, word in enumerate(data.get("text", [])):
        word = (word or "").strip()
        if not word:
            continue

        block = int(data["block_num"][i])
        lines[(block, int(data["par_num"][i]), int(data["line_num"][i]))].append(word)

        try:
            conf = float(data["conf"][i])
        except (TypeError, ValueError):
            continue
        if conf >= 0:
            block_confidences[block].append(conf / 100)

    if not lines:
        return None

    block_lines: dict[int, list[str]] = defaultdict(list)
    for (block, _par, _line), words in sorted(lines.items()):
        block_lines[block].append(" ".join(words))

    blocks = []
    for block, texts in block_lines.items():
        confs = block_confidences.get(block)
        blocks.append(OcrBlock(text="\n".join(texts), confidence=sum(confs) / len(confs) if confs else 0.0))

    text = "\n".join(block.text for block in blocks)
    scored = [block_confidences[b] for b in block_lines if block_confidences.get(b)]
    if scored:
        average = sum(sum(c) / len(c) for c in scored) / len(scored)
    else:
        average = DEFAULT_CONFIDENCE

    return OcrResult(text=text, confidence=round_half_up(average, 2), blocks=blocks or None)


class ReceiptImageCheck(NamedTuple):
    """Quick verdict on whether an image shows a fiscal receipt."""

    is_receipt: bool
    confidence: float
    reason: str
    ocr_result: Optional[OcrResult] = None


def check_receipt_text(text: Optional[str], min_text_length: int = MIN_RECEIPT_TEXT_LENGTH) -> ReceiptImageCheck:
    """Decide from OCR text whether the photo looks like a receipt."""
    text = text or ""

    if len(text) < min_text_length:
        return ReceiptImageCheck(False, 0.9, "Insufficient text detected")

    matches = sum(1 for pattern in RECEIPT_INDICATORS if pattern.search(text))
    if matches >= 2:
        return ReceiptImageCheck(True, 0.85, f"Found {matches} receipt indicators")

    return ReceiptImageCheck(False, 0.7, "Missing receipt indicators")


def validate_receipt_image(
    image_bytes: bytes, ocr_client: OcrClient, min_text_length: int = MIN_RECEIPT_TEXT_LENGTH
) -> ReceiptImageCheck:
    """Run OCR and check that the image contains a receipt.

    Without a working OCR client the image is accepted, since nothing can
    be said about it. The OCR output is carried on the returned check so
    callers can parse it without a second OCR pass.
    """
    if not ocr_client.enabled:
        return ReceiptImageCheck(True, 1.0, "OCR not configured")

    try:
        result = ocr_client.extract_text(image_bytes)
    except Exception as e:
        logger.error(f"Error validating receipt image: {e}")
        return ReceiptImageCheck(False, 0.0, "Validation error")

    return check_receipt_text(result.text if result else "", min_text_length)._replace(ocr_result=result)


@dataclass
class ReceiptExtraction:
    """OCR output followed by parsing, as stored alongside a submission."""

    method: str
    success: bool
    raw_text: Optional[str] = None
    vision_confidence: float = 0.0
    blocks: Optional[list[OcrBlock]] = None
    parsed: ParsedReceipt = field(default_factory=ParsedReceipt)
    error: Optional[str] = None

    @property
    def parser_confidence(self) -> float:
        return self.parsed.overall_confidence

    def to_dict(self) -> dict[str, Any]:
        parsed = self.parsed.to_dict()
        return {
            "method": self.method,
            "success": self.success,
            "rawText": self.raw_text,
            "visionConfidence": self.vision_confidence,
            "blocks": [{"text": b.text, "confidence": b.confidence} for b in self.blocks] if self.blocks else None,
            "fields": parsed["fields"],
            "confidences": parsed["confidences"],
            "parserConfidence": self.parser_confidence,
            "error": self.error,
        }


def extract_receipt(
    image_bytes: bytes,
    ocr_client: OcrClient,
    ocr_result: Optional[OcrResult] = None,
    now: Optional[datetime] = None,
) -> ReceiptExtraction:
    """OCR an image and parse the text into receipt fields.

    OCR failures are reported through ``success=False`` with an empty parse
    rather than raised.

    Args:
        image_bytes: Encoded receipt photo
        ocr_client: OCR implementation to use
        ocr_result: Already computed OCR output, to avoid a second OCR pass
        now: Reference time for date parsing
    """
    method = getattr(ocr_client, "method", type(ocr_client).__name__)

    if ocr_result is None:
        try:
            ocr_result = ocr_client.extract_text(image_bytes)
        except Exception as e:
            logger.error(f"Error in extract_receipt: {e}")
            return ReceiptExtraction(method=method, success=False, error=str(e))

    if not ocr_result or not ocr_result.text:
        logger.info("OCR returned no text")
        return ReceiptExtraction(method=method, success=False)

    parsed = parse_receipt_text(ocr_result.text, now=now)
    return ReceiptExtraction(
        method=method,
        success=True,
        raw_text=ocr_result.text,
        vision_confidence=ocr_result.confidence,
        blocks=ocr_result.blocks,
        parsed=parsed,
    )


def get_ocr_client() -> OcrClient:
    """Build the OCR client configured for the current app.

    Returns:
        TesseractOcrClient, or NullOcrClient when OCR is disabled or the
        Tesseract binary cannot be found
    """
    if not current_app.config.get("OCR_ENABLED", True):
        return NullOcrClient()

    client = TesseractOcrClient(
        tesseract_cmd=current_app.config.get("TESSERACT_CMD"),
        languages=current_app.config.get("OCR_LANGUAGES", DEFAULT_LANGUAGES),
    )

    try:
        pytesseract.get_tesseract_version()
    except pytesseract.TesseractNotFoundError:
        current_app.logger.error(
            "Tesseract OCR binary not found. Please install it:\n"
            "  Linux: sudo apt-get install tesseract-ocr tesseract-ocr-hrv\n"
            "  macOS: brew install tesseract tesseract-lang"
        )
        return NullOcrClient()
    except Exception as e:
        current_app.logger.warning(f"Tesseract OCR not available: {e}")
        return NullOcrClient()

    return client

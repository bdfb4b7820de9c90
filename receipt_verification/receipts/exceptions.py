"""Custom exceptions for receipt verification."""


class ReceiptValidationError(Exception):
    """Base exception for submissions that cannot be verified."""

    code = "INVALID_RECEIPT"
    status_code = 400

    def __init__(self, message: str, field: str | None = None):
        self.message = message
        self.field = field
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Convert exception to dictionary for API responses."""
        return {"code": self.code, "message": self.message, "field": self.field}


class InvalidImageError(ReceiptValidationError):
    """Raised when the uploaded bytes cannot be decoded as an image."""

    code = "INVALID_IMAGE"

    def __init__(self, message: str = "Image is not in a supported format. Please use JPG, PNG or WEBP."):
        super().__init__(message, field="image")


class NotAReceiptError(ReceiptValidationError):
    """Raised when OCR is confident the photo is not a fiscal receipt."""

    code = "NOT_A_RECEIPT"

    def __init__(self, reason: str, confidence: float):
        self.reason = reason
        self.confidence = confidence
        super().__init__(
            "Image was not recognized as a receipt. Please upload a clear photo of the receipt.", field="image"
        )


class DuplicateReceiptError(ReceiptValidationError):
    """Raised when the image matches one that was already submitted."""

    code = "DUPLICATE_RECEIPT"

    def __init__(self, matched_hash: str, exact: bool):
        self.matched_hash = matched_hash
        self.exact = exact
        kind = "exact duplicate" if exact else "perceptual match"
        super().__init__(f"This receipt was already submitted ({kind})", field="image")

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["duplicateOf"] = self.matched_hash
        return data

"""Pytest configuration and fixtures for the test suite."""

from datetime import datetime
from io import BytesIO
import os
from typing import Generator, Optional

from flask import Flask
from flask.testing import FlaskClient, FlaskCliRunner
from PIL import Image, ImageDraw
import pytest

# Set test environment variables before the config module is imported
os.environ.update(
    {
        "FLASK_ENV": "testing",
        "SECRET_KEY": "test-secret-key",
        "OCR_ENABLED": "false",
        "RATELIMIT_ENABLED": "false",
    }
)

from receipt_verification import create_app  # noqa: E402
from receipt_verification.extensions import db  # noqa: E402
from receipt_verification.restaurants.models import Restaurant  # noqa: E402
from receipt_verification.services.ocr_service import OcrResult  # noqa: E402

VALID_OIB = "12345678903"
# Reference time used by every time-dependent test
NOW = datetime(2026, 10, 16, 12, 0)

RECEIPT_TEXT = """Bistro Mali d.o.o.
Ilica 12
10000 Zagreb
OIB: 12345678903
Račun br: 45/1/1
Datum: 15.10.2026 14:35
Kava 2,50
Sendvič 23,00
UKUPNO: 25,50
JIR: 8f3a2b1c-4d5e-6f70-8192-a3b4c5d6e7f8
ZKI: 0123456789abcdef0123456789abcdef
"""


class FakeRestaurantRepository:
    """In-memory restaurant lookups that count how often they are queried."""

    def __init__(self, restaurants=(), fail_on_get: bool = False):
        self.restaurants = list(restaurants)
        self.fail_on_get = fail_on_get
        self.calls: list[tuple[str, object]] = []

    def find_by_oib(self, oib: str) -> Optional[Restaurant]:
        self.calls.append(("oib", oib))
        return next((r for r in self.restaurants if r.oib == oib), None)

    def get_by_id(self, restaurant_id) -> Optional[Restaurant]:
        self.calls.append(("id", restaurant_id))
        if self.fail_on_get:
            raise RuntimeError("database unavailable")
        return next((r for r in self.restaurants if str(r.id) == str(restaurant_id)), None)


class FakeOcrClient:
    """OCR client returning canned text."""

    method = "fake"

    def __init__(self, text: Optional[str] = RECEIPT_TEXT, confidence: float = 0.9, error: Exception | None = None):
        self.enabled = True
        self.text = text
        self.confidence = confidence
        self.error = error
        self.calls = 0

    def extract_text(self, image_bytes: bytes) -> Optional[OcrResult]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        if not self.text:
            return None
        return OcrResult(text=self.text, confidence=self.confidence)


def make_image_bytes(color: str = "white", size: tuple[int, int] = (200, 300), fmt: str = "PNG") -> bytes:
    """Render a small receipt-like image."""
    img = Image.new("RGB", size, color)
    draw = ImageDraw.Draw(img)
    for y in range(20, size[1] - 20, 25):
        draw.line((20, y, size[0] - 20, y), fill="black", width=2)
    buffer = BytesIO()
    img.save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def valid_oib() -> str:
    return VALID_OIB


@pytest.fixture
def receipt_text() -> str:
    return RECEIPT_TEXT


@pytest.fixture
def ocr_client_factory():
    return FakeOcrClient


@pytest.fixture
def repository_factory():
    return FakeRestaurantRepository


@pytest.fixture
def image_factory():
    return make_image_bytes


@pytest.fixture
def bistro() -> Restaurant:
    """Unsaved restaurant matching RECEIPT_TEXT."""
    return Restaurant(
        id=1,
        name="Bistro Mali d.o.o.",
        oib=VALID_OIB,
        address="Ilica 12",
        city="Zagreb",
        latitude=45.8130,
        longitude=15.9770,
    )


@pytest.fixture
def fake_repository(bistro: Restaurant) -> FakeRestaurantRepository:
    return FakeRestaurantRepository([bistro])


@pytest.fixture
def receipt_image() -> bytes:
    return make_image_bytes()


@pytest.fixture(scope="function")
def app() -> Generator[Flask, None, None]:
    """Create and configure a new app instance for testing.

    This fixture is function-scoped to ensure a clean database for each test.
    """
    app = create_app({"TESTING": True, "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:"})

    ctx = app.app_context()
    ctx.push()

    db.create_all()

    yield app

    # Clean up after tests
    db.session.remove()
    db.drop_all()

    ctx.pop()


@pytest.fixture
def client(app: Flask) -> FlaskClient:
    """Create a test client for the application."""
    return app.test_client()


@pytest.fixture
def runner(app: Flask) -> FlaskCliRunner:
    """Create a test runner for the app's Click commands."""
    return app.test_cli_runner()


@pytest.fixture
def restaurant(app: Flask) -> Restaurant:
    """Persisted restaurant matching RECEIPT_TEXT."""
    restaurant = Restaurant(
        name="Bistro Mali d.o.o.",
        oib=VALID_OIB,
        address="Ilica 12",
        city="Zagreb",
        latitude=45.8130,
        longitude=15.9770,
    )
    restaurant.save()
    return restaurant

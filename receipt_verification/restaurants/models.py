from __future__ import annotations

from typing import Optional

from sqlalchemy.orm import Mapped

from receipt_verification.extensions import db
from receipt_verification.models.base import BaseModel


class Restaurant(BaseModel):
    """Restaurant that receipts are verified against.

    Attributes:
        name: Registered name of the restaurant
        oib: Croatian tax number of the business operating the restaurant
        address: Street address
        city: City
        latitude: Latitude used for geofence checks
        longitude: Longitude used for geofence checks
    """

    __table_args__ = ({"comment": "Restaurants that accept receipt submissions"},)

    name: Mapped[str] = db.Column(db.String(200), nullable=False, comment="Name of the restaurant")
    oib: Mapped[Optional[str]] = db.Column(
        db.String(11), index=True, comment="OIB of the business, not guaranteed unique across restaurants"
    )
    address: Mapped[Optional[str]] = db.Column(db.String(200), comment="Street address")
    city: Mapped[Optional[str]] = db.Column(db.String(100), comment="City")
    latitude: Mapped[Optional[float]] = db.Column(db.Float, comment="Restaurant latitude coordinate")
    longitude: Mapped[Optional[float]] = db.Column(db.Float, comment="Restaurant longitude coordinate")

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def __repr__(self) -> str:
        return f"<Restaurant {self.id} {self.name!r} oib={self.oib}>"

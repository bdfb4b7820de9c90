"""Service functions for managing restaurants."""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import select

from receipt_verification.extensions import db
from receipt_verification.restaurants.exceptions import RestaurantNotFoundError, RestaurantValidationError
from receipt_verification.restaurants.models import Restaurant
from receipt_verification.restaurants.repository import SqlAlchemyRestaurantRepository
from receipt_verification.utils.antifraud import validate_oib_checksum
from receipt_verification.utils.geo_utils import validate_coordinates

logger = logging.getLogger(__name__)


def create_restaurant(
    name: str,
    oib: Optional[str] = None,
    address: Optional[str] = None,
    city: Optional[str] = None,
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
) -> Restaurant:
    """Create and persist a restaurant.

    Raises:
        RestaurantValidationError: If the name is blank, the OIB fails its
            checksum or the coordinates are incomplete or out of range
    """
    name = (name or "").strip()
    if not name:
        raise RestaurantValidationError("Restaurant name is required", field="name")

    if oib is not None:
        oib = oib.strip()
        if not validate_oib_checksum(oib):
            raise RestaurantValidationError(f"Invalid OIB: {oib}", field="oib")

    if latitude is not None or longitude is not None:
        if not validate_coordinates(latitude, longitude):
            raise RestaurantValidationError("Latitude and longitude must both be set and in range", field="latitude")

    restaurant = Restaurant(
        name=name,
        oib=oib,
        address=address,
        city=city,
        latitude=latitude,
        longitude=longitude,
    )
    restaurant.save()
    logger.info(f"Created restaurant {restaurant.id} ({restaurant.name})")
    return restaurant


def list_restaurants(oib: Optional[str] = None) -> list[Restaurant]:
    """All restaurants ordered by id, optionally only those registered under an OIB."""
    stmt = select(Restaurant).order_by(Restaurant.id)
    if oib:
        stmt = stmt.where(Restaurant.oib == oib)
    return list(db.session.scalars(stmt))


def get_restaurant(restaurant_id: int | str) -> Restaurant:
    """Get a restaurant by id.

    Raises:
        RestaurantNotFoundError: If no restaurant has this id
    """
    restaurant = SqlAlchemyRestaurantRepository().get_by_id(restaurant_id)
    if restaurant is None:
        raise RestaurantNotFoundError(restaurant_id=restaurant_id)
    return restaurant

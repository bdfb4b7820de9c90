"""
Geographic utility functions for distance calculations and geofence checks.
"""

from dataclasses import dataclass
import math
from typing import Any, Optional

from .number_utils import round_half_up

# Radius of Earth in meters
EARTH_RADIUS_METERS = 6371e3

DEFAULT_GEOFENCE_METERS = 150.0


@dataclass
class GeofenceResult:
    """Outcome of comparing a user position with a restaurant position.

    Both fields are None when either coordinate pair was missing.
    """

    within_geofence: Optional[bool] = None
    distance: Optional[float] = None

    @property
    def is_known(self) -> bool:
        return self.within_geofence is not None

    def to_dict(self) -> dict[str, Any]:
        return {"withinGeofence": self.within_geofence, "distance": self.distance}


def calculate_gps_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate the distance between two points on Earth using the Haversine formula.

    Args:
        lat1: Latitude of first point
        lon1: Longitude of first point
        lat2: Latitude of second point
        lon2: Longitude of second point

    Returns:
        Distance in meters
    """
    # Convert degrees to radians
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)

    # Haversine formula
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)

    a = math.sin(dlat / 2) ** 2 + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_METERS * c


def check_geofence(
    user_lat: Optional[float],
    user_lng: Optional[float],
    restaurant_lat: Optional[float],
    restaurant_lng: Optional[float],
    max_distance: float = DEFAULT_GEOFENCE_METERS,
) -> GeofenceResult:
    """
    Check whether the user is within max_distance meters of the restaurant.

    Args:
        user_lat: User latitude
        user_lng: User longitude
        restaurant_lat: Restaurant latitude
        restaurant_lng: Restaurant longitude
        max_distance: Maximum allowed distance in meters

    Returns:
        GeofenceResult with the distance rounded to one decimal, or an empty
        result when any coordinate is missing
    """
    if any(value is None for value in (user_lat, user_lng, restaurant_lat, restaurant_lng)):
        return GeofenceResult()

    distance = calculate_gps_distance(user_lat, user_lng, restaurant_lat, restaurant_lng)  # type: ignore[arg-type]
    return GeofenceResult(
        within_geofence=distance <= max_distance,
        distance=round_half_up(distance, 1),
    )


def validate_coordinates(latitude: Optional[float], longitude: Optional[float]) -> bool:
    """
    Validate that coordinates are within valid ranges.

    Args:
        latitude: Latitude value
        longitude: Longitude value

    Returns:
        True if coordinates are valid, False otherwise
    """
    if latitude is None or longitude is None:
        return False

    return -90 <= latitude <= 90 and -180 <= longitude <= 180


def format_distance(distance_m: float) -> str:
    """
    Format a distance in meters for display in reason strings.

    Args:
        distance_m: Distance in meters

    Returns:
        Formatted distance string, e.g. "120m" or "1.4 km"
    """
    if distance_m >= 1000:
        return f"{distance_m / 1000:.1f} km"
    return f"{round_half_up(distance_m, 0):.0f}m"


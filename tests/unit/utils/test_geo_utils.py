"""Tests for distance and geofence helpers."""

import pytest

from receipt_verification.utils.geo_utils import (
    GeofenceResult,
    calculate_gps_distance,
    check_geofence,
    format_distance,
    validate_coordinates,
)

ZAGREB = (45.8150, 15.9819)
SPLIT = (43.5081, 16.4402)


class TestCalculateGpsDistance:
    """Tests for calculate_gps_distance."""

    def test_same_point_is_zero(self) -> None:
        assert calculate_gps_distance(*ZAGREB, *ZAGREB) == 0

    def test_zagreb_to_split(self) -> None:
        assert calculate_gps_distance(*ZAGREB, *SPLIT) == pytest.approx(259_000, rel=0.01)

    def test_is_symmetric(self) -> None:
        assert calculate_gps_distance(*ZAGREB, *SPLIT) == pytest.approx(calculate_gps_distance(*SPLIT, *ZAGREB))


class TestCheckGeofence:
    """Tests for check_geofence."""

    def test_inside_geofence(self) -> None:
        result = check_geofence(45.8140, 15.9770, 45.8130, 15.9770)
        assert result == GeofenceResult(within_geofence=True, distance=111.2)
        assert result.to_dict() == {"withinGeofence": True, "distance": 111.2}

    def test_outside_custom_radius(self) -> None:
        result = check_geofence(45.8140, 15.9770, 45.8130, 15.9770, max_distance=100)
        assert result.within_geofence is False
        assert result.distance == 111.2

    def test_boundary_is_inside(self) -> None:
        assert check_geofence(*ZAGREB, *ZAGREB, max_distance=0).within_geofence is True

    @pytest.mark.parametrize(
        "coords",
        [(None, 15.9, 45.8, 15.9), (45.8, None, 45.8, 15.9), (45.8, 15.9, None, 15.9), (45.8, 15.9, 45.8, None)],
    )
    def test_missing_coordinate_gives_empty_result(self, coords) -> None:
        result = check_geofence(*coords)
        assert result == GeofenceResult()
        assert result.is_known is False

    def test_zero_coordinates_are_valid(self) -> None:
        assert check_geofence(0.0, 0.0, 0.0, 0.0).within_geofence is True


class TestHelpers:
    """Tests for coordinate validation and distance formatting."""

    def test_validate_coordinates(self) -> None:
        assert validate_coordinates(*ZAGREB) is True
        assert validate_coordinates(91, 0) is False
        assert validate_coordinates(0, -181) is False
        assert validate_coordinates(None, 15.0) is False

    def test_format_distance(self) -> None:
        assert format_distance(120.4) == "120m"
        assert format_distance(120.5) == "121m"
        assert format_distance(1400) == "1.4 km"

"""Tests for restaurant service functions."""

import pytest

from receipt_verification.restaurants.exceptions import RestaurantNotFoundError, RestaurantValidationError
from receipt_verification.restaurants.models import Restaurant
from receipt_verification.restaurants.services import create_restaurant, get_restaurant, list_restaurants


class TestCreateRestaurant:
    """Tests for create_restaurant."""

    def test_create(self, app, valid_oib: str) -> None:
        restaurant = create_restaurant(
            "  Bistro Mali d.o.o. ", oib=valid_oib, city="Zagreb", latitude=45.8130, longitude=15.9770
        )

        assert restaurant.id is not None
        assert restaurant.name == "Bistro Mali d.o.o."
        assert Restaurant.query.count() == 1

    def test_create_without_oib_or_location(self, app) -> None:
        restaurant = create_restaurant("Kavana Sunce")
        assert restaurant.oib is None
        assert restaurant.has_coordinates is False

    def test_blank_name(self, app) -> None:
        with pytest.raises(RestaurantValidationError) as exc_info:
            create_restaurant("   ")
        assert exc_info.value.field == "name"

    def test_invalid_oib(self, app) -> None:
        with pytest.raises(RestaurantValidationError) as exc_info:
            create_restaurant("Bistro Mali", oib="12345678900")
        assert exc_info.value.field == "oib"
        assert exc_info.value.to_dict()["code"] == "INVALID_RESTAURANT"
        assert Restaurant.query.count() == 0

    @pytest.mark.parametrize("latitude,longitude", [(45.8, None), (None, 15.9), (91.0, 15.9), (45.8, -181.0)])
    def test_invalid_coordinates(self, app, latitude, longitude) -> None:
        with pytest.raises(RestaurantValidationError):
            create_restaurant("Bistro Mali", latitude=latitude, longitude=longitude)


class TestListRestaurants:
    """Tests for list_restaurants."""

    def test_ordered_by_id(self, app) -> None:
        first = create_restaurant("Kavana Sunce")
        second = create_restaurant("Bistro Mali")
        assert list_restaurants() == [first, second]

    def test_filter_by_oib(self, restaurant: Restaurant, valid_oib: str) -> None:
        create_restaurant("Kavana Sunce")
        assert list_restaurants(valid_oib) == [restaurant]
        assert list_restaurants("69435151530") == []


class TestRestaurantNotFoundError:
    """Tests for RestaurantNotFoundError messages."""

    def test_messages(self) -> None:
        assert str(RestaurantNotFoundError(restaurant_id=7)) == "Restaurant with ID 7 not found"
        assert str(RestaurantNotFoundError(oib="12345678903")) == "Restaurant with OIB '12345678903' not found"
        assert str(RestaurantNotFoundError()) == "Restaurant not found"


class TestGetRestaurant:
    """Tests for get_restaurant."""

    def test_found(self, restaurant: Restaurant) -> None:
        assert get_restaurant(restaurant.id) == restaurant

    def test_not_found(self, app) -> None:
        with pytest.raises(RestaurantNotFoundError, match="Restaurant with ID 42 not found"):
            get_restaurant(42)

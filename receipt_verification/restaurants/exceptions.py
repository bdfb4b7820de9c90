"""Custom exceptions for restaurant operations."""


class RestaurantValidationError(Exception):
    """Base exception for restaurant validation errors."""

    def __init__(self, message: str, field: str | None = None):
        self.message = message
        self.field = field
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Convert exception to dictionary for API responses."""
        return {"code": "INVALID_RESTAURANT", "message": self.message, "field": self.field}


class RestaurantNotFoundError(Exception):
    """Raised when a requested restaurant is not found."""

    def __init__(self, restaurant_id: int | str | None = None, oib: str | None = None):
        self.restaurant_id = restaurant_id
        self.oib = oib

        if restaurant_id:
            message = f"Restaurant with ID {restaurant_id} not found"
        elif oib:
            message = f"Restaurant with OIB '{oib}' not found"
        else:
            message = "Restaurant not found"

        super().__init__(message)

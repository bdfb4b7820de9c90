"""Read-only restaurant lookups used by the decision engine."""

from __future__ import annotations

import logging
from typing import Optional, Protocol

from receipt_verification.extensions import db
from receipt_verification.restaurants.models import Restaurant

logger = logging.getLogger(__name__)


class RestaurantRepository(Protocol):
    """Lookups the scoring code needs from the restaurant store."""

    def find_by_oib(self, oib: str) -> Optional[Restaurant]: ...

    def get_by_id(self, restaurant_id: int | str) -> Optional[Restaurant]: ...


def _coerce_id(restaurant_id: int | str | None) -> Optional[int]:
    if restaurant_id is None or isinstance(restaurant_id, bool):
        return None
    try:
        return int(restaurant_id)
    except (TypeError, ValueError):
        return None


class SqlAlchemyRestaurantRepository:
    """Restaurant lookups backed by the Flask-SQLAlchemy session."""

    def find_by_oib(self, oib: str) -> Optional[Restaurant]:
        if not oib:
            return None
        return Restaurant.query.filter_by(oib=oib).order_by(Restaurant.id).first()

    def get_by_id(self, restaurant_id: int | str) -> Optional[Restaurant]:
        pk = _coerce_id(restaurant_id)
        if pk is None:
            return None
        return db.session.get(Restaurant, pk)


class CachedRestaurantRepository:
    """Per-request memoization around another repository.

    The OIB factor and the merchant-name factor can both need the same
    restaurant row; wrapping the repository for the duration of one scoring
    call avoids querying it twice. Misses are cached too. Errors are not.
    """

    def __init__(self, inner: RestaurantRepository):
        self.inner = inner
        self._cache: dict[tuple[str, object], Optional[Restaurant]] = {}

    def _lookup(self, kind: str, key: object, loader) -> Optional[Restaurant]:
        cache_key = (kind, key)
        if cache_key not in self._cache:
            self._cache[cache_key] = loader()
        else:
            logger.debug(f"Restaurant cache hit for {kind}={key}")
        return self._cache[cache_key]

    def find_by_oib(self, oib: str) -> Optional[Restaurant]:
        restaurant = self._lookup("oib", oib, lambda: self.inner.find_by_oib(oib))
        if restaurant is not None:
            self._cache.setdefault(("id", restaurant.id), restaurant)
        return restaurant

    def get_by_id(self, restaurant_id: int | str) -> Optional[Restaurant]:
        key = _coerce_id(restaurant_id)
        return self._lookup("id", key, lambda: self.inner.get_by_id(restaurant_id))


def get_restaurant_repository() -> RestaurantRepository:
    """Default repository used when none is injected."""
    return SqlAlchemyRestaurantRepository()

"""Models module exporting all database models."""

from .order import ACTIVE_STATUSES, SEAT_CONSUMING_STATUSES, Order, OrderStatus
from .review import Review
from .tour import Destination, Tour

__all__ = [
    # Catalog entities
    "Destination",
    "Tour",

    # Order entity
    "Order",
    "OrderStatus",
    "ACTIVE_STATUSES",
    "SEAT_CONSUMING_STATUSES",

    # Review entity
    "Review",
]

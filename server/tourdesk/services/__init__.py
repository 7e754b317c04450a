"""Service layer package."""

from .order_service import InvalidTransitionError, OrderService, ReinstatementRejectedError
from .seat_ledger import CapacityConflictError, InsufficientSeatsError, SeatLedger, SeatLedgerError
from .tour_lifecycle_service import DeleteBlockedError, TourLifecycleService
from .tour_service import TourService

__all__ = [
    "CapacityConflictError",
    "DeleteBlockedError",
    "InsufficientSeatsError",
    "InvalidTransitionError",
    "OrderService",
    "ReinstatementRejectedError",
    "SeatLedger",
    "SeatLedgerError",
    "TourLifecycleService",
    "TourService",
]

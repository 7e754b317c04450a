"""Seat ledger: sellable-seat accounting for tours.

The authoritative seat count for a tour is always derived from its orders::

    seats_taken     = sum(quantity) over PENDING, CONFIRMED and COMPLETED orders
    available_seats = group_size - seats_taken

Active (PENDING, CONFIRMED) orders hold their seats and give them back when
cancelled. Completed orders keep theirs: the departure used them.

``Tour.available_seats`` is a read cache of that value. It is only ever written
here, recomputed from the aggregate inside the caller's transaction, so catalog
reads stay cheap without becoming a second source of truth.

Callers must obtain the tour through :meth:`SeatLedger.get_tour_for_update`
within the same transaction as the write that consumes or frees seats. The
row lock serializes competing bookings for one tour; the aggregate read that
follows sees every reservation committed before the lock was granted.
"""

import logging
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import ConflictError, InternalServerError, NotFoundError
from ..core.observability import metrics_collector
from ..models.order import SEAT_CONSUMING_STATUSES, Order
from ..models.tour import Tour

logger = logging.getLogger(__name__)


class InsufficientSeatsError(ConflictError):
    """Exception when a tour cannot supply the requested seats."""

    def __init__(
        self,
        tour_id: int,
        requested_seats: int,
        available_seats: int,
        detail: str | None = None,
        code: str = "INSUFFICIENT_SEATS",
    ):
        super().__init__(
            detail=detail or (
                f"Tour {tour_id} has insufficient seats. "
                f"Requested: {requested_seats}, Available: {available_seats}"
            ),
            conflicting_resource={"tour_id": tour_id},
        )
        self.tour_id = tour_id
        self.requested_seats = requested_seats
        self.available_seats = available_seats
        self.problem_details.update({
            "code": code,
            "retryable": False,
            "requested_seats": requested_seats,
            "available_seats": available_seats,
        })


class CapacityConflictError(ConflictError):
    """Exception when a group size change would strand seats already taken by orders."""

    def __init__(self, tour_id: int, requested_group_size: int, seats_taken: int):
        super().__init__(
            detail=(
                f"Cannot set group size of tour {tour_id} to {requested_group_size}: "
                f"{seats_taken} seats are taken by orders"
            ),
            conflicting_resource={
                "tour_id": tour_id,
                "requested_group_size": requested_group_size,
                "seats_taken": seats_taken,
            },
        )
        self.problem_details.update({
            "code": "CAPACITY_CONFLICT",
            "retryable": False,
        })


class SeatLedgerError(InternalServerError):
    """Internal invariant violation in seat accounting. Never a user error."""

    def __init__(self, message: str, **context):
        super().__init__()
        self.message = message
        self.context = context
        logger.error(
            "Seat ledger invariant violated: %s",
            message,
            extra={"error_id": self.error_id, **context},
        )

    def __str__(self) -> str:
        return self.message


class SeatLedger:
    """Computes and guards the number of sellable seats per tour."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_tour(self, tour_id: int) -> Tour:
        """Get a tour without locking, or raise NotFoundError."""
        tour = await self.db.get(Tour, tour_id)
        if tour is None:
            raise NotFoundError(resource_type="tour", resource_id=str(tour_id))
        return tour

    async def find_tour_for_update(self, tour_id: int) -> Optional[Tour]:
        """Lock a tour row if it still exists; None when it is gone."""
        stmt = (
            select(Tour)
            .where(Tour.id == tour_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_tour_for_update(self, tour_id: int) -> Tour:
        """
        Load a tour and lock its row until the current transaction ends.

        Args:
            tour_id: Tour to lock

        Returns:
            Tour entity with fresh column values

        Raises:
            NotFoundError: If tour not found
        """
        tour = await self.find_tour_for_update(tour_id)
        if tour is None:
            logger.warning("Tour not found for seat update", extra={"tour_id": tour_id})
            raise NotFoundError(resource_type="tour", resource_id=str(tour_id))

        logger.debug("Acquired row lock for tour", extra={"tour_id": tour_id})
        return tour

    async def seats_taken(self, tour_id: int) -> int:
        """Sum of quantities over the tour's active and completed orders."""
        stmt = select(func.coalesce(func.sum(Order.quantity), 0)).where(
            Order.tour_id == tour_id,
            Order.status.in_([status.value for status in SEAT_CONSUMING_STATUSES]),
        )
        result = await self.db.execute(stmt)
        return int(result.scalar_one())

    async def available_seats(self, tour: Tour) -> int:
        """Seats still sellable on ``tour``, floored at zero."""
        _, available = await self._derive(tour)
        return available

    async def reserve(self, tour: Tour, quantity: int) -> int:
        """
        Reserve ``quantity`` seats on a locked tour.

        The caller persists the order that holds the seats in the same
        transaction. Nothing is written when the reservation does not fit.

        Returns:
            Seats remaining after the reservation

        Raises:
            InsufficientSeatsError: If fewer than ``quantity`` seats remain
        """
        self._check_quantity(tour, quantity)
        _, available = await self._derive(tour)

        if quantity > available:
            metrics_collector.record_seat_rejection("insufficient_seats")
            logger.warning(
                "Seat reservation rejected - insufficient seats",
                extra={
                    "tour_id": tour.id,
                    "requested_seats": quantity,
                    "available_seats": available,
                },
            )
            raise InsufficientSeatsError(
                tour_id=tour.id,
                requested_seats=quantity,
                available_seats=available,
            )

        remaining = available - quantity
        self._store(tour, remaining)
        return remaining

    async def release(self, tour: Tour, quantity: int) -> int:
        """
        Return ``quantity`` seats of an order that is leaving an active status.

        Must be called while the order still counts as active, before its
        new status is flushed.

        Returns:
            Seats available after the release

        Raises:
            SeatLedgerError: If the release does not match seats actually taken
        """
        self._check_quantity(tour, quantity)
        taken, _ = await self._derive(tour)
        taken_after = taken - quantity

        if taken_after < 0:
            raise SeatLedgerError(
                "release exceeds seats taken",
                tour_id=tour.id,
                seats_taken=taken,
                release_quantity=quantity,
            )
        if taken_after > tour.group_size:
            raise SeatLedgerError(
                "tour remains oversold after release",
                tour_id=tour.id,
                seats_taken=taken_after,
                group_size=tour.group_size,
            )

        available = tour.group_size - taken_after
        self._store(tour, available)
        return available

    async def set_group_size(self, tour: Tour, group_size: int) -> int:
        """
        Resize a locked tour and recompute its cached availability.

        Raises:
            CapacityConflictError: If orders have taken more than ``group_size`` seats
        """
        taken = await self.seats_taken(tour.id)
        if group_size < taken:
            logger.warning(
                "Group size change rejected - would strand taken seats",
                extra={
                    "tour_id": tour.id,
                    "requested_group_size": group_size,
                    "seats_taken": taken,
                },
            )
            raise CapacityConflictError(tour.id, group_size, taken)

        previous = tour.group_size
        tour.group_size = group_size
        available = group_size - taken
        self._store(tour, available)

        logger.info(
            "Tour group size changed",
            extra={
                "tour_id": tour.id,
                "group_size_before": previous,
                "group_size_after": group_size,
                "available_seats": available,
            },
        )
        return available

    async def recount(self, tour: Tour) -> int:
        """Rewrite the cached counter from the aggregate."""
        _, available = await self._derive(tour)
        self._store(tour, available)
        return available

    async def _derive(self, tour: Tour) -> tuple[int, int]:
        taken = await self.seats_taken(tour.id)
        available = tour.group_size - taken

        if available < 0:
            logger.error(
                "Tour is oversold",
                extra={"tour_id": tour.id, "group_size": tour.group_size, "seats_taken": taken},
            )
            available = 0

        if tour.available_seats != available:
            logger.warning(
                "Cached seat counter out of sync with orders",
                extra={
                    "tour_id": tour.id,
                    "cached_available_seats": tour.available_seats,
                    "derived_available_seats": available,
                },
            )
        return taken, available

    @staticmethod
    def _check_quantity(tour: Tour, quantity: int) -> None:
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
            raise SeatLedgerError(
                "seat quantity must be a positive integer",
                tour_id=tour.id,
                quantity=repr(quantity),
            )

    @staticmethod
    def _store(tour: Tour, available: int) -> None:
        if not 0 <= available <= tour.group_size:
            raise SeatLedgerError(
                "available seats out of range",
                tour_id=tour.id,
                available_seats=available,
                group_size=tour.group_size,
            )
        tour.available_seats = available

"""Order service: placement, cancellation and status lifecycle of orders."""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..core.database import atomic
from ..core.dependencies import Principal
from ..core.exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationError
from ..core.observability import metrics_collector
from ..models.order import Order, OrderStatus
from ..models.tour import Tour
from ..schemas.order import CreateOrderRequest
from .seat_ledger import InsufficientSeatsError, SeatLedger, SeatLedgerError

logger = logging.getLogger(__name__)


# Legal moves of the order state machine. CANCELLED -> CONFIRMED is a staff
# reinstatement and must win its seats back.
ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED}),
    OrderStatus.CANCELLED: frozenset({OrderStatus.CONFIRMED}),
    OrderStatus.COMPLETED: frozenset(),
}


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


class InvalidTransitionError(ConflictError):
    """Exception when an order cannot move to the requested status."""

    def __init__(
        self,
        order_id: int,
        current_status: OrderStatus,
        target_status: OrderStatus,
        detail: Optional[str] = None,
    ):
        super().__init__(
            detail=detail or (
                f"Order {order_id} cannot move from {current_status.value} "
                f"to {target_status.value}"
            ),
            conflicting_resource={"order_id": order_id},
        )
        self.problem_details.update({
            "code": "INVALID_TRANSITION",
            "retryable": False,
            "current_status": current_status.value,
            "target_status": target_status.value,
        })


class ReinstatementRejectedError(InsufficientSeatsError):
    """Exception when a cancelled order cannot be reinstated for lack of seats."""

    def __init__(self, order_id: int, tour_id: int, requested_seats: int, available_seats: int):
        super().__init__(
            tour_id=tour_id,
            requested_seats=requested_seats,
            available_seats=available_seats,
            detail=(
                f"Order {order_id} cannot be reinstated: tour {tour_id} has "
                f"{available_seats} seats left, {requested_seats} needed"
            ),
            code="CANNOT_REINSTATE",
        )
        self.order_id = order_id


class OrderService:
    """Service for order placement and lifecycle operations."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.ledger = SeatLedger(db)

    async def create_order(self, request: CreateOrderRequest, user: Principal) -> Order:
        """
        Place a PENDING order, holding its seats on the tour.

        Args:
            request: Order creation request
            user: Ordering user

        Returns:
            Created order entity

        Raises:
            ValidationError: If the quantity exceeds the per-order limit
            NotFoundError: If the tour does not exist
            InsufficientSeatsError: If the tour cannot supply the seats
        """
        if request.quantity > settings.max_seats_per_order:
            raise ValidationError(
                detail=f"At most {settings.max_seats_per_order} seats can be booked per order",
                violations=[{
                    "path": "quantity",
                    "message": f"must be less than or equal to {settings.max_seats_per_order}",
                }],
            )

        async with atomic(self.db):
            tour = await self.ledger.get_tour_for_update(request.tour_id)
            remaining = await self.ledger.reserve(tour, request.quantity)

            order = Order(
                tour_id=tour.id,
                user_id=user.user_id,
                quantity=request.quantity,
                total_amount=tour.price_amount * request.quantity,
                total_currency=tour.price_currency,
                status=OrderStatus.PENDING,
                contact_email=str(request.contact_email),
                contact_phone=request.contact_phone,
            )
            self.db.add(order)

        await self.db.refresh(order)
        metrics_collector.record_order_created(order.tour_id)
        metrics_collector.set_available_seats(tour.id, remaining)

        logger.info(
            "Order created",
            extra={
                "order_id": order.id,
                "tour_id": order.tour_id,
                "user_id": order.user_id,
                "quantity": order.quantity,
                "available_seats": remaining,
            }
        )
        return order

    async def cancel_order(self, order_id: int, user: Principal) -> Order:
        """
        Cancel an active order on behalf of its owner, returning its seats.

        Raises:
            NotFoundError: If the order does not exist
            AuthorizationError: If the caller does not own the order
            InvalidTransitionError: If the order is not PENDING or CONFIRMED
        """
        async with atomic(self.db):
            order, tour = await self._lock_order_and_tour(order_id)

            if order.user_id != user.user_id:
                logger.warning(
                    "Order cancellation refused - not the owner",
                    extra={"order_id": order_id, "user_id": user.user_id}
                )
                raise AuthorizationError(detail="Only the owner of an order can cancel it")

            current = OrderStatus(order.status)
            if not order.is_active:
                raise InvalidTransitionError(order.id, current, OrderStatus.CANCELLED)

            await self.ledger.release(self._require_tour(order, tour), order.quantity)
            order.status = OrderStatus.CANCELLED

        await self.db.refresh(order)
        metrics_collector.record_transition(current.value, OrderStatus.CANCELLED.value)
        metrics_collector.record_order_cancelled("owner")
        if tour is not None:
            metrics_collector.set_available_seats(tour.id, tour.available_seats)

        logger.info(
            "Order cancelled by owner",
            extra={"order_id": order.id, "tour_id": order.tour_id, "user_id": user.user_id}
        )
        return order

    async def set_order_status(self, order_id: int, target: OrderStatus, staff: Principal) -> Order:
        """
        Move an order through the lifecycle on behalf of staff.

        Cancelling releases the order's seats and completing keeps them spent.
        Reinstating a cancelled order reserves them again and fails if they no
        longer fit.

        Args:
            order_id: Order to transition
            target: Requested status
            staff: Acting manager or administrator

        Returns:
            Updated order entity

        Raises:
            NotFoundError: If the order does not exist
            InvalidTransitionError: If the move is not allowed
            ReinstatementRejectedError: If a reinstatement does not fit
        """
        target = OrderStatus(target)

        async with atomic(self.db):
            order, tour = await self._lock_order_and_tour(order_id)
            current = OrderStatus(order.status)

            if not can_transition(current, target):
                logger.warning(
                    "Order transition rejected",
                    extra={
                        "order_id": order_id,
                        "current_status": current.value,
                        "target_status": target.value,
                    }
                )
                raise InvalidTransitionError(order.id, current, target)

            # Completion keeps the seats; they were used by the departure
            if target == OrderStatus.CANCELLED:
                await self.ledger.release(self._require_tour(order, tour), order.quantity)
            elif current == OrderStatus.CANCELLED:
                if tour is None:
                    raise InvalidTransitionError(
                        order.id,
                        current,
                        target,
                        detail=f"Order {order.id} cannot be reinstated: its tour no longer exists",
                    )
                try:
                    await self.ledger.reserve(tour, order.quantity)
                except InsufficientSeatsError as e:
                    metrics_collector.record_seat_rejection("reinstatement")
                    raise ReinstatementRejectedError(
                        order_id=order.id,
                        tour_id=tour.id,
                        requested_seats=order.quantity,
                        available_seats=e.available_seats,
                    ) from e

            order.status = target

        await self.db.refresh(order)
        metrics_collector.record_transition(current.value, target.value)
        if target == OrderStatus.CANCELLED:
            metrics_collector.record_order_cancelled("staff")
        if tour is not None:
            metrics_collector.set_available_seats(tour.id, tour.available_seats)

        logger.info(
            "Order status changed",
            extra={
                "order_id": order.id,
                "tour_id": order.tour_id,
                "from_status": current.value,
                "to_status": target.value,
                "staff_user_id": staff.user_id,
            }
        )
        return order

    async def get_order(self, order_id: int, user: Principal) -> Order:
        """
        Read an order as its owner or as staff.

        Raises:
            NotFoundError: If the order does not exist
            AuthorizationError: If a non-staff caller does not own the order
        """
        order = await self.get_order_by_id_or_raise(order_id)
        if order.user_id != user.user_id and not user.is_staff:
            raise AuthorizationError(detail="You do not have access to this order")
        return order

    async def get_order_by_id(self, order_id: int) -> Optional[Order]:
        stmt = select(Order).where(Order.id == order_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_order_by_id_or_raise(self, order_id: int) -> Order:
        order = await self.get_order_by_id(order_id)
        if not order:
            logger.warning("Order not found", extra={"order_id": order_id})
            raise NotFoundError(resource_type="order", resource_id=str(order_id))
        return order

    async def list_orders_for_user(
        self,
        user_id: int,
        status: Optional[OrderStatus] = None,
        limit: int = 50,
    ) -> list[Order]:
        """List one user's orders, newest first."""
        stmt = select(Order).where(Order.user_id == user_id)
        if status is not None:
            stmt = stmt.where(Order.status == OrderStatus(status).value)
        stmt = stmt.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def list_orders(
        self,
        status: Optional[OrderStatus] = None,
        limit: int = 50,
    ) -> list[Order]:
        """List all orders for staff, newest first."""
        stmt = select(Order)
        if status is not None:
            stmt = stmt.where(Order.status == OrderStatus(status).value)
        stmt = stmt.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def _lock_order_and_tour(self, order_id: int) -> tuple[Order, Optional[Tour]]:
        # Tour row first, matching create_order, so competing writers queue
        # on the same lock in the same order. A tour deleted after the
        # unlocked read leaves tour None; the locked re-read then sees the
        # order detached and cancelled by the deletion.
        order = await self.get_order_by_id_or_raise(order_id)
        tour = None
        if order.tour_id is not None:
            tour = await self.ledger.find_tour_for_update(order.tour_id)
            if tour is None:
                logger.info(
                    "Tour removed while locking order",
                    extra={"order_id": order_id, "tour_id": order.tour_id}
                )

        stmt = (
            select(Order)
            .where(Order.id == order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        order = result.scalar_one_or_none()
        if order is None:
            raise NotFoundError(resource_type="order", resource_id=str(order_id))
        return order, tour

    @staticmethod
    def _require_tour(order: Order, tour: Optional[Tour]) -> Tour:
        if tour is None:
            raise SeatLedgerError(
                "active order has no tour",
                order_id=order.id,
                status=OrderStatus(order.status).value,
            )
        return tour

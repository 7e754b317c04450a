"""Tour lifecycle service: cascade deletion of tours and guarded deletion of destinations."""

import logging

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import atomic
from ..core.dependencies import Principal
from ..core.exceptions import ConflictError
from ..core.observability import metrics_collector
from ..models.order import ACTIVE_STATUSES, Order, OrderStatus
from ..models.review import Review
from ..models.tour import Tour
from .seat_ledger import SeatLedger
from .tour_service import TourService

logger = logging.getLogger(__name__)


class DeleteBlockedError(ConflictError):
    """Exception when a delete is refused or cannot be completed atomically."""

    def __init__(self, resource_type: str, resource_id: int, detail: str, **context):
        super().__init__(
            detail=detail,
            conflicting_resource={"resource_type": resource_type, "id": resource_id, **context},
        )
        self.problem_details.update({
            "code": "DELETE_BLOCKED",
            "retryable": False,
        })


class TourLifecycleService:
    """Service for removing tours and destinations from the catalog."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.ledger = SeatLedger(db)
        self.tours = TourService(db)

    async def delete_tour(self, tour_id: int, staff: Principal) -> tuple[int, int]:
        """
        Delete a tour in one transaction.

        Active orders are force-cancelled first, then every order is detached
        from the tour and kept, reviews are removed, and finally the tour row.
        Nothing is left half-deleted: any storage failure undoes all steps.

        Args:
            tour_id: Tour to delete
            staff: Acting manager or administrator

        Returns:
            Tuple of (cancelled_orders, deleted_reviews)

        Raises:
            NotFoundError: If the tour does not exist
            DeleteBlockedError: If storage refuses part of the cascade
        """
        active = [status.value for status in ACTIVE_STATUSES]

        try:
            async with atomic(self.db):
                tour = await self.ledger.get_tour_for_update(tour_id)

                cancelled = await self.db.execute(
                    update(Order)
                    .where(Order.tour_id == tour_id, Order.status.in_(active))
                    .values(status=OrderStatus.CANCELLED.value, updated_at=func.now())
                    .execution_options(synchronize_session="fetch")
                )
                cancelled_orders = cancelled.rowcount

                await self.db.execute(
                    update(Order)
                    .where(Order.tour_id == tour_id)
                    .values(tour_id=None)
                    .execution_options(synchronize_session="fetch")
                )

                review_count = await self.db.execute(
                    select(func.count(Review.id)).where(Review.tour_id == tour_id)
                )
                deleted_reviews = int(review_count.scalar_one())
                await self.db.execute(
                    delete(Review)
                    .where(Review.tour_id == tour_id)
                    .execution_options(synchronize_session="fetch")
                )

                await self.db.delete(tour)
        except (IntegrityError, DBAPIError) as e:
            logger.error(
                "Tour deletion rolled back",
                extra={"tour_id": tour_id, "error": str(e)}
            )
            raise DeleteBlockedError(
                resource_type="tour",
                resource_id=tour_id,
                detail=f"Tour {tour_id} could not be deleted; no changes were made",
            ) from e

        metrics_collector.record_tour_deleted(tour_id)
        if cancelled_orders:
            metrics_collector.record_order_cancelled("tour_deletion", cancelled_orders)

        logger.info(
            "Tour deleted",
            extra={
                "tour_id": tour_id,
                "cancelled_orders": cancelled_orders,
                "deleted_reviews": deleted_reviews,
                "staff_user_id": staff.user_id,
            }
        )
        return cancelled_orders, deleted_reviews

    async def delete_destination(self, destination_id: int, staff: Principal) -> None:
        """
        Delete a destination that no tour references.

        Raises:
            NotFoundError: If the destination does not exist
            DeleteBlockedError: If tours still reference the destination
        """
        destination = await self.tours.get_destination_or_raise(destination_id)

        result = await self.db.execute(
            select(func.count(Tour.id)).where(Tour.destination_id == destination_id)
        )
        tour_count = int(result.scalar_one())
        if tour_count:
            logger.warning(
                "Destination deletion blocked - tours still reference it",
                extra={"destination_id": destination_id, "tour_count": tour_count}
            )
            raise DeleteBlockedError(
                resource_type="destination",
                resource_id=destination_id,
                detail=(
                    f"Destination {destination_id} still has {tour_count} tour(s); "
                    "delete or move them first"
                ),
                tour_count=tour_count,
            )

        try:
            async with atomic(self.db):
                await self.db.delete(destination)
        except IntegrityError as e:
            logger.warning(
                "Destination deletion blocked by a concurrent tour",
                extra={"destination_id": destination_id, "error": str(e)}
            )
            raise DeleteBlockedError(
                resource_type="destination",
                resource_id=destination_id,
                detail=f"Destination {destination_id} is referenced by a tour",
            ) from e

        logger.info(
            "Destination deleted",
            extra={"destination_id": destination_id, "staff_user_id": staff.user_id}
        )

"""Tour service for catalog operations."""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError

from ..core.database import atomic
from ..core.exceptions import ConflictError, NotFoundError
from ..core.observability import metrics_collector
from ..models.tour import Destination, Tour
from ..schemas.tour import CreateDestinationRequest, CreateTourRequest
from .seat_ledger import SeatLedger

logger = logging.getLogger(__name__)


class TourService:
    """Service for tour and destination catalog operations."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.ledger = SeatLedger(db)

    async def create_destination(self, request: CreateDestinationRequest) -> Destination:
        """
        Create a new destination.

        Raises:
            ConflictError: If a destination with the same slug already exists
        """
        existing = await self.get_destination_by_slug(request.slug)
        if existing:
            logger.warning(
                "Destination creation failed - slug already exists",
                extra={"slug": request.slug, "existing_destination_id": existing.id}
            )
            raise ConflictError(
                detail=f"Destination with slug '{request.slug}' already exists",
                conflicting_resource={"id": existing.id, "slug": existing.slug}
            )

        destination = Destination(
            name=request.name,
            slug=request.slug,
            description=request.description
        )

        try:
            async with atomic(self.db):
                self.db.add(destination)
        except IntegrityError as e:
            logger.error(
                "Destination creation failed due to integrity constraint",
                extra={"slug": request.slug, "error": str(e)}
            )
            raise ConflictError(
                detail=f"Destination with slug '{request.slug}' already exists"
            )

        await self.db.refresh(destination)
        logger.info(
            "Destination created successfully",
            extra={"destination_id": destination.id, "slug": destination.slug}
        )
        return destination

    async def get_destination_by_slug(self, slug: str) -> Optional[Destination]:
        stmt = select(Destination).where(Destination.slug == slug)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_destination_or_raise(self, destination_id: int) -> Destination:
        """
        Get destination by ID or raise NotFoundError.

        Raises:
            NotFoundError: If destination not found
        """
        destination = await self.db.get(Destination, destination_id)
        if not destination:
            logger.warning(
                "Destination not found",
                extra={"destination_id": destination_id}
            )
            raise NotFoundError(
                resource_type="destination",
                resource_id=str(destination_id)
            )
        return destination

    async def create_tour(self, request: CreateTourRequest) -> Tour:
        """
        Create a new tour with every seat available.

        Args:
            request: Tour creation request

        Returns:
            Created tour entity

        Raises:
            NotFoundError: If the destination does not exist
            ConflictError: If tour with same slug already exists
        """
        await self.get_destination_or_raise(request.destination_id)

        # Check if tour with same slug already exists
        existing_tour = await self.get_tour_by_slug(request.slug)
        if existing_tour:
            logger.warning(
                "Tour creation failed - slug already exists",
                extra={
                    "slug": request.slug,
                    "existing_tour_id": existing_tour.id
                }
            )
            raise ConflictError(
                detail=f"Tour with slug '{request.slug}' already exists",
                conflicting_resource={
                    "id": existing_tour.id,
                    "slug": existing_tour.slug,
                    "title": existing_tour.title
                }
            )

        tour = Tour(
            destination_id=request.destination_id,
            title=request.title,
            slug=request.slug,
            price_amount=request.price.amount,
            price_currency=request.price.currency,
            group_size=request.group_size,
            available_seats=request.group_size,
            next_tour_date=request.next_tour_date
        )

        try:
            async with atomic(self.db):
                self.db.add(tour)
        except IntegrityError as e:
            logger.error(
                "Tour creation failed due to integrity constraint",
                extra={
                    "slug": request.slug,
                    "title": request.title,
                    "error": str(e)
                }
            )
            raise ConflictError(
                detail="Tour creation failed due to constraint violation"
            )

        await self.db.refresh(tour)
        metrics_collector.set_available_seats(tour.id, tour.available_seats)

        logger.info(
            "Tour created successfully",
            extra={
                "tour_id": tour.id,
                "slug": tour.slug,
                "group_size": tour.group_size
            }
        )
        return tour

    async def get_tour_by_id(self, tour_id: int) -> Optional[Tour]:
        """
        Get tour by ID.

        Args:
            tour_id: Tour ID to search for

        Returns:
            Tour if found, None otherwise
        """
        stmt = select(Tour).where(Tour.id == tour_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_tour_by_slug(self, slug: str) -> Optional[Tour]:
        stmt = select(Tour).where(Tour.slug == slug)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_tour_by_id_or_raise(self, tour_id: int) -> Tour:
        """
        Get tour by ID or raise NotFoundError.

        Raises:
            NotFoundError: If tour not found
        """
        tour = await self.get_tour_by_id(tour_id)
        if not tour:
            logger.warning(
                "Tour not found",
                extra={"tour_id": tour_id}
            )
            raise NotFoundError(
                resource_type="tour",
                resource_id=str(tour_id)
            )
        return tour

    async def get_availability(self, tour_id: int) -> tuple[Tour, int]:
        """
        Read a tour's sellable seats, derived from its orders.

        Returns:
            Tuple of the tour and its available seat count

        Raises:
            NotFoundError: If tour not found
        """
        tour = await self.get_tour_by_id_or_raise(tour_id)
        available = await self.ledger.available_seats(tour)
        return tour, available

    async def set_group_size(self, tour_id: int, group_size: int) -> Tour:
        """
        Change a tour's group size without stranding seats already sold.

        Raises:
            NotFoundError: If tour not found
            CapacityConflictError: If orders have taken more than ``group_size`` seats
        """
        async with atomic(self.db):
            tour = await self.ledger.get_tour_for_update(tour_id)
            await self.ledger.set_group_size(tour, group_size)

        metrics_collector.set_available_seats(tour.id, tour.available_seats)
        return tour

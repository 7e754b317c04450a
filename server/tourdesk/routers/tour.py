"""Tour router for public catalog reads."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.exceptions import ProblemDetailsException
from ..models.tour import Tour as TourModel
from ..schemas.common import Money
from ..schemas.tour import Tour, TourAvailability, TourAvailabilityRequest
from ..services.tour_service import TourService
from .order import unexpected_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/tour", tags=["tour"])

DB_DEPENDENCY = Depends(get_db)


def convert_tour_to_schema(tour_model: TourModel) -> Tour:
    """Convert tour model to schema."""
    return Tour(
        id=tour_model.id,
        destination_id=tour_model.destination_id,
        title=tour_model.title,
        slug=tour_model.slug,
        price=Money(amount=tour_model.price_amount, currency=tour_model.price_currency),
        group_size=tour_model.group_size,
        available_seats=tour_model.available_seats,
        next_tour_date=tour_model.next_tour_date
    )


@router.post("/availability", response_model=TourAvailability)
async def get_availability(
    request: TourAvailabilityRequest,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """
    Get seat availability for a tour.

    Seats are derived from the tour's active orders at read time.
    """
    tour_service = TourService(db)

    try:
        tour, available = await tour_service.get_availability(request.tour_id)

        response_data = TourAvailability(
            tour_id=tour.id,
            group_size=tour.group_size,
            available_seats=available
        )
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise unexpected_error("availability lookup", e, tour_id=request.tour_id) from e

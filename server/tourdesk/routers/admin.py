"""Admin router for staff-only order, tour and destination operations."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.dependencies import Principal, StaffAuth
from ..core.exceptions import ProblemDetailsException
from ..schemas.order import ListOrdersRequest, Order, OrderList, SetOrderStatusRequest
from ..schemas.tour import (
    CreateDestinationRequest,
    CreateTourRequest,
    DeleteDestinationRequest,
    DeleteDestinationResponse,
    DeleteTourRequest,
    DeleteTourResponse,
    Destination,
    SetTourCapacityRequest,
    Tour,
)
from ..services.order_service import OrderService
from ..services.tour_lifecycle_service import TourLifecycleService
from ..services.tour_service import TourService
from .order import order_list_response, order_response, unexpected_error
from .tour import convert_tour_to_schema

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/admin", tags=["admin"])

DB_DEPENDENCY = Depends(get_db)


@router.post("/order/set-status", response_model=Order)
async def set_order_status(
    request: SetOrderStatusRequest,
    staff: Principal = StaffAuth,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """
    Move an order to a new status.

    Cancelling releases the order's seats; reinstating a cancelled order
    takes them back and is refused when the tour no longer has room.
    """
    order_service = OrderService(db)

    try:
        order = await order_service.set_order_status(request.order_id, request.status, staff)
        return order_response(order)

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise unexpected_error(
            "order status change",
            e,
            order_id=request.order_id,
            target_status=request.status.value
        ) from e


@router.post("/order/list", response_model=OrderList)
async def list_orders(
    request: ListOrdersRequest,
    staff: Principal = StaffAuth,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """List orders across all users, newest first."""
    order_service = OrderService(db)

    try:
        orders = await order_service.list_orders(status=request.status, limit=request.limit)
        return order_list_response(orders)

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise unexpected_error("admin order listing", e) from e


@router.post("/tour/create", response_model=Tour, status_code=201)
async def create_tour(
    request: CreateTourRequest,
    staff: Principal = StaffAuth,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """Create a tour with all of its seats available."""
    tour_service = TourService(db)

    try:
        tour = await tour_service.create_tour(request)
        response_data = convert_tour_to_schema(tour)
        return JSONResponse(status_code=201, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise unexpected_error("tour creation", e, slug=request.slug) from e


@router.post("/tour/set-capacity", response_model=Tour)
async def set_tour_capacity(
    request: SetTourCapacityRequest,
    staff: Principal = StaffAuth,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """
    Change a tour's group size.

    Refused when active and completed orders already take more seats than the new size.
    """
    tour_service = TourService(db)

    try:
        tour = await tour_service.set_group_size(request.tour_id, request.group_size)
        response_data = convert_tour_to_schema(tour)
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise unexpected_error("tour capacity change", e, tour_id=request.tour_id) from e


@router.post("/tour/delete", response_model=DeleteTourResponse)
async def delete_tour(
    request: DeleteTourRequest,
    staff: Principal = StaffAuth,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """
    Delete a tour.

    Active orders are cancelled and kept without a tour reference; reviews
    are removed. The whole cascade succeeds or nothing changes.
    """
    lifecycle_service = TourLifecycleService(db)

    try:
        cancelled_orders, deleted_reviews = await lifecycle_service.delete_tour(
            request.tour_id, staff
        )
        response_data = DeleteTourResponse(
            tour_id=request.tour_id,
            cancelled_orders=cancelled_orders,
            deleted_reviews=deleted_reviews
        )
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise unexpected_error("tour deletion", e, tour_id=request.tour_id) from e


@router.post("/destination/create", response_model=Destination, status_code=201)
async def create_destination(
    request: CreateDestinationRequest,
    staff: Principal = StaffAuth,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """Create a destination."""
    tour_service = TourService(db)

    try:
        destination = await tour_service.create_destination(request)
        response_data = Destination.model_validate(destination)
        return JSONResponse(status_code=201, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise unexpected_error("destination creation", e, slug=request.slug) from e


@router.post("/destination/delete", response_model=DeleteDestinationResponse)
async def delete_destination(
    request: DeleteDestinationRequest,
    staff: Principal = StaffAuth,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """Delete a destination. Refused while any tour still belongs to it."""
    lifecycle_service = TourLifecycleService(db)

    try:
        await lifecycle_service.delete_destination(request.destination_id, staff)
        response_data = DeleteDestinationResponse(destination_id=request.destination_id)
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise unexpected_error(
            "destination deletion", e, destination_id=request.destination_id
        ) from e

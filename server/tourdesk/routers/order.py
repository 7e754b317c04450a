"""Order router for customer-facing order operations."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.dependencies import Principal, RequiredAuth
from ..core.exceptions import InternalServerError, ProblemDetailsException
from ..models.order import Order as OrderModel
from ..schemas.common import Money
from ..schemas.order import (
    CancelOrderRequest,
    CreateOrderRequest,
    GetOrderRequest,
    ListOrdersRequest,
    Order,
    OrderList,
)
from ..services.order_service import OrderService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/order", tags=["order"])

# Define dependencies to avoid B008 linting errors
DB_DEPENDENCY = Depends(get_db)


def convert_order_to_schema(order_model: OrderModel) -> Order:
    """Convert order model to schema."""
    return Order(
        id=order_model.id,
        tour_id=order_model.tour_id,
        user_id=order_model.user_id,
        quantity=order_model.quantity,
        total_price=Money(
            amount=order_model.total_amount,
            currency=order_model.total_currency
        ),
        status=order_model.status,
        contact_email=order_model.contact_email,
        contact_phone=order_model.contact_phone,
        created_at=order_model.created_at,
        updated_at=order_model.updated_at
    )


def order_response(order_model: OrderModel, status_code: int = 200) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=convert_order_to_schema(order_model).model_dump(mode="json")
    )


def order_list_response(order_models: list[OrderModel]) -> JSONResponse:
    response_data = OrderList(items=[convert_order_to_schema(order) for order in order_models])
    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))


def unexpected_error(operation: str, error: Exception, **context) -> InternalServerError:
    """Log an unexpected failure and build the 500 problem returned for it."""
    problem = InternalServerError()
    logger.error(
        f"Unexpected error in {operation}",
        extra={"error_id": problem.error_id, "error": str(error), **context},
        exc_info=True
    )
    return problem


@router.post("/create", response_model=Order, status_code=201)
async def create_order(
    request: CreateOrderRequest,
    user: Principal = RequiredAuth,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """
    Place an order for seats on a tour.

    The order starts PENDING and holds its seats until it is cancelled.
    """
    order_service = OrderService(db)

    try:
        order = await order_service.create_order(request, user)
        return order_response(order, status_code=201)

    except ProblemDetailsException:
        # Re-raise Problem Details exceptions as-is
        raise

    except Exception as e:
        raise unexpected_error(
            "order creation", e, tour_id=request.tour_id, user_id=user.user_id
        ) from e


@router.post("/cancel", response_model=Order)
async def cancel_order(
    request: CancelOrderRequest,
    user: Principal = RequiredAuth,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """
    Cancel one of the caller's own orders.

    Only PENDING and CONFIRMED orders can be cancelled; their seats return to the tour.
    """
    order_service = OrderService(db)

    try:
        order = await order_service.cancel_order(request.order_id, user)
        return order_response(order)

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise unexpected_error(
            "order cancellation", e, order_id=request.order_id, user_id=user.user_id
        ) from e


@router.post("/get", response_model=Order)
async def get_order(
    request: GetOrderRequest,
    user: Principal = RequiredAuth,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """Get an order owned by the caller. Staff may read any order."""
    order_service = OrderService(db)

    try:
        order = await order_service.get_order(request.order_id, user)
        return order_response(order)

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise unexpected_error("order retrieval", e, order_id=request.order_id) from e


@router.post("/list", response_model=OrderList)
async def list_my_orders(
    request: ListOrdersRequest,
    user: Principal = RequiredAuth,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """List the caller's orders, newest first."""
    order_service = OrderService(db)

    try:
        orders = await order_service.list_orders_for_user(
            user.user_id, status=request.status, limit=request.limit
        )
        return order_list_response(orders)

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise unexpected_error("order listing", e, user_id=user.user_id) from e

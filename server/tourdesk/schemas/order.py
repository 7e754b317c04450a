"""Order-related Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, EmailStr, Field

from ..models.order import OrderStatus
from .common import Money


class CreateOrderRequest(BaseModel):
    """Request schema for placing an order."""

    tour_id: int = Field(..., ge=1, description="Tour to book")
    quantity: int = Field(..., ge=1, description="Number of seats requested")
    contact_email: EmailStr = Field(..., description="Contact email for the booking")
    contact_phone: str | None = Field(
        None,
        min_length=5,
        max_length=32,
        pattern=r"^\+?[0-9 ()-]+$",
        description="Optional contact phone"
    )


class CancelOrderRequest(BaseModel):
    """Request schema for an owner cancelling their order."""

    order_id: int = Field(..., ge=1, description="Order to cancel")


class GetOrderRequest(BaseModel):
    """Request schema for reading an order."""

    order_id: int = Field(..., ge=1, description="Order to retrieve")


class SetOrderStatusRequest(BaseModel):
    """Request schema for a staff status change."""

    order_id: int = Field(..., ge=1, description="Order to transition")
    status: OrderStatus = Field(..., description="Target status")


class ListOrdersRequest(BaseModel):
    """Request schema for listing orders."""

    status: OrderStatus | None = Field(None, description="Only return orders in this status")
    limit: int = Field(50, ge=1, le=200, description="Maximum orders returned")


class Order(BaseModel):
    """Order response schema."""

    id: int = Field(..., description="Unique order ID")
    tour_id: int | None = Field(None, description="Booked tour; null once the tour is deleted")
    user_id: int = Field(..., description="Ordering user")
    quantity: int = Field(..., ge=1, description="Seats held or consumed")
    total_price: Money = Field(..., description="Quantity times seat price at order time")
    status: OrderStatus = Field(..., description="Order status")
    contact_email: str = Field(..., description="Contact email")
    contact_phone: str | None = Field(None, description="Contact phone")
    created_at: datetime = Field(..., description="Order creation time (ISO 8601)")
    updated_at: datetime = Field(..., description="Last status change (ISO 8601)")


class OrderList(BaseModel):
    """List of orders, newest first."""

    items: list[Order] = Field(..., description="Orders")

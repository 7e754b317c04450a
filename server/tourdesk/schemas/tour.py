"""Tour and destination Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, Field

from .common import Money

SLUG_PATTERN = r"^[a-z0-9-]+$"


class CreateDestinationRequest(BaseModel):
    """Request schema for creating a destination."""

    name: str = Field(..., min_length=1, max_length=255, description="Destination name")
    slug: str = Field(..., min_length=1, max_length=255, pattern=SLUG_PATTERN, description="URL-friendly slug")
    description: str | None = Field(None, max_length=2000, description="Destination description")


class DeleteDestinationRequest(BaseModel):
    """Request schema for deleting a destination."""

    destination_id: int = Field(..., ge=1, description="Destination to delete")


class Destination(BaseModel):
    """Destination response schema."""

    id: int = Field(..., description="Unique destination ID")
    name: str = Field(..., description="Destination name")
    slug: str = Field(..., description="URL-friendly slug")

    model_config = {"from_attributes": True}


class DeleteDestinationResponse(BaseModel):
    """Response schema for destination deletion."""

    destination_id: int = Field(..., description="Deleted destination ID")


class CreateTourRequest(BaseModel):
    """Request schema for creating a tour."""

    destination_id: int = Field(..., ge=1, description="Destination the tour belongs to")
    title: str = Field(..., min_length=3, max_length=255, description="Tour title")
    slug: str = Field(..., min_length=3, max_length=255, pattern=SLUG_PATTERN, description="URL-friendly slug")
    price: Money = Field(..., description="Price per seat")
    group_size: int = Field(..., ge=1, le=1000, description="Maximum seats sellable for the next departure")
    next_tour_date: datetime | None = Field(None, description="Next departure (ISO 8601)")


class SetTourCapacityRequest(BaseModel):
    """Request schema for changing a tour's group size."""

    tour_id: int = Field(..., ge=1, description="Tour to resize")
    group_size: int = Field(..., ge=1, le=1000, description="New group size")


class TourAvailabilityRequest(BaseModel):
    """Request schema for reading seat availability."""

    tour_id: int = Field(..., ge=1, description="Tour to inspect")


class TourAvailability(BaseModel):
    """Seat availability derived from active orders."""

    tour_id: int = Field(..., description="Tour ID")
    group_size: int = Field(..., ge=1, description="Maximum seats for the departure")
    available_seats: int = Field(..., ge=0, description="Seats not held by active orders")


class DeleteTourRequest(BaseModel):
    """Request schema for deleting a tour."""

    tour_id: int = Field(..., ge=1, description="Tour to delete")


class DeleteTourResponse(BaseModel):
    """Outcome of a cascade tour deletion."""

    tour_id: int = Field(..., description="Deleted tour ID")
    cancelled_orders: int = Field(..., ge=0, description="Active orders force-cancelled")
    deleted_reviews: int = Field(..., ge=0, description="Reviews removed")


class Tour(BaseModel):
    """Tour response schema."""

    id: int = Field(..., description="Unique tour ID")
    destination_id: int = Field(..., description="Destination ID")
    title: str = Field(..., description="Tour title")
    slug: str = Field(..., description="URL-friendly slug")
    price: Money = Field(..., description="Price per seat")
    group_size: int = Field(..., ge=1, description="Maximum seats for the departure")
    available_seats: int = Field(..., ge=0, description="Seats not held by active orders")
    next_tour_date: datetime | None = Field(None, description="Next departure (ISO 8601)")

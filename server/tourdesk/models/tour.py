"""Destination and Tour model definitions."""

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import BigInteger, CheckConstraint, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base

if TYPE_CHECKING:
    from .order import Order
    from .review import Review


class Destination(Base):
    """Destination entity grouping tours by place."""

    __tablename__ = "destinations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now()
    )

    # No cascade: a destination with tours cannot be deleted
    tours: Mapped[list["Tour"]] = relationship("Tour", back_populates="destination")

    def __repr__(self) -> str:
        return f"<Destination(id={self.id}, slug='{self.slug}')>"


class Tour(Base):
    """Tour entity: a sellable trip with a fixed group size for its next departure."""

    __tablename__ = "tours"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    destination_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("destinations.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )

    # Tour information
    title: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    next_tour_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Price information (stored as minor units, e.g., cents)
    price_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    price_currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    # Capacity. available_seats is a cache of group_size minus seats held by
    # active orders and is written only by the seat ledger.
    group_size: Mapped[int] = mapped_column(Integer, nullable=False)
    available_seats: Mapped[int] = mapped_column(Integer, nullable=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("group_size > 0", name="ck_tour_group_size_positive"),
        CheckConstraint("available_seats >= 0", name="ck_tour_available_seats_non_negative"),
        CheckConstraint("available_seats <= group_size", name="ck_tour_available_seats_lte_group_size"),
        CheckConstraint("price_amount >= 0", name="ck_tour_price_amount_non_negative"),
        CheckConstraint("length(price_currency) = 3", name="ck_tour_price_currency_length"),
    )

    # Relationships
    destination: Mapped["Destination"] = relationship("Destination", back_populates="tours")
    # Orders outlive their tour; deletion goes through the tour lifecycle guard
    orders: Mapped[list["Order"]] = relationship(
        "Order",
        back_populates="tour",
        passive_deletes=True
    )
    reviews: Mapped[list["Review"]] = relationship(
        "Review",
        back_populates="tour",
        passive_deletes=True
    )

    def __repr__(self) -> str:
        return (
            f"<Tour(id={self.id}, slug='{self.slug}', "
            f"seats={self.available_seats}/{self.group_size})>"
        )

"""Order model definition."""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import BigInteger, CheckConstraint, DateTime, ForeignKey, Index, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base

if TYPE_CHECKING:
    from .tour import Tour


class OrderStatus(str, Enum):
    """Order status enumeration."""
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"

    @property
    def holds_seats(self) -> bool:
        return self in ACTIVE_STATUSES


# Statuses holding seats; only these can be cancelled and release them
ACTIVE_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.CONFIRMED})

# Statuses whose quantity counts against the tour's group size. Completed
# orders consumed their seats on the departure; those are never recycled.
SEAT_CONSUMING_STATUSES = ACTIVE_STATUSES | {OrderStatus.COMPLETED}


class Order(Base):
    """Order entity: seats on a tour requested by one user."""

    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Cleared when the tour is deleted; the order itself is kept
    tour_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("tours.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    # Owned by the identity provider, no local users table
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)

    # Order details
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    total_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    total_currency: Mapped[str] = mapped_column(String(3), nullable=False)
    status: Mapped[OrderStatus] = mapped_column(
        String(20),
        nullable=False,
        default=OrderStatus.PENDING,
        index=True
    )
    contact_email: Mapped[str] = mapped_column(String(320), nullable=False)
    contact_phone: Mapped[str | None] = mapped_column(String(32), nullable=True)

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
        CheckConstraint("quantity > 0", name="ck_order_quantity_positive"),
        CheckConstraint("total_amount >= 0", name="ck_order_total_amount_non_negative"),
        CheckConstraint(
            "status IN ('PENDING', 'CONFIRMED', 'CANCELLED', 'COMPLETED')",
            name="ck_order_status_valid"
        ),
        CheckConstraint("length(contact_email) > 0", name="ck_order_contact_email_not_empty"),
        # Seat aggregation scans active orders per tour
        Index("ix_orders_tour_id_status", "tour_id", "status"),
    )

    tour: Mapped["Tour | None"] = relationship("Tour", back_populates="orders")

    @property
    def is_active(self) -> bool:
        return OrderStatus(self.status).holds_seats

    def __repr__(self) -> str:
        return (
            f"<Order(id={self.id}, tour_id={self.tour_id}, user_id={self.user_id}, "
            f"quantity={self.quantity}, status={self.status})>"
        )

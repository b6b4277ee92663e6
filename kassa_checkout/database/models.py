"""SQLAlchemy models for the order payment store."""
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict

from sqlalchemy import JSON, Boolean, CheckConstraint, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class OrderPayment(Base):
    """
    Gateway payment attached to a shop order.

    One row per order. The row is replaced when the buyer starts a new
    payment for the same order and updated as the payment moves to its
    final status.
    """

    __tablename__ = "order_payments"

    order_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    payment_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="RUB")
    payload: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="positive_amount"),
        CheckConstraint("length(currency) = 3", name="valid_currency"),
    )

    def __repr__(self) -> str:
        """String representation of OrderPayment."""
        return (
            f"<OrderPayment(order_id={self.order_id}, payment_id={self.payment_id}, "
            f"status={self.status})>"
        )

"""
Pending aggregate model.

Denormalized running total of unresolved escrow value per recipient
identifier.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from paylink.models.base import Base
from paylink.models.types import MoneyType


class PendingAggregate(Base):
    """Pending aggregate - unresolved escrow totals per identifier."""

    __tablename__ = "pending_aggregates"
    __table_args__ = (
        CheckConstraint(
            "total_amount >= 0", name="check_pending_total_non_negative"
        ),
        CheckConstraint(
            "payment_count >= 0", name="check_pending_count_non_negative"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    recipient_identifier: Mapped[str] = mapped_column(
        String(255), nullable=False, unique=True
    )
    channel: Mapped[str] = mapped_column(String(10), nullable=False)

    total_amount: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )
    payment_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<PendingAggregate(identifier={self.recipient_identifier}, "
            f"total={self.total_amount}, count={self.payment_count})>"
        )

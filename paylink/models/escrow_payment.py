"""
Escrow payment model.

Deferred payment to an email or phone recipient, released through a claim
token or returned to the sender on cancel / expiry.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from paylink.models.base import Base
from paylink.models.enums import EscrowStatus
from paylink.models.types import MoneyType
from paylink.utils.datetime_utils import ensure_utc


class EscrowPayment(Base):
    """Escrow payment model - value held for a not-yet-resolved recipient."""

    __tablename__ = "escrow_payments"
    __table_args__ = (
        CheckConstraint("amount > 0", name="check_escrow_amount_positive"),
        CheckConstraint(
            "channel IN ('EMAIL', 'PHONE')", name="check_escrow_channel"
        ),
        Index("idx_escrow_status_expires_at", "status", "expires_at"),
    )

    # Primary key
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    channel: Mapped[str] = mapped_column(String(10), nullable=False)

    # Parties
    sender_account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    recipient_identifier: Mapped[str] = mapped_column(
        String(255), nullable=False, index=True,
        comment="Normalized email (lowercase) or E.164 phone"
    )
    recipient_account_id: Mapped[int | None] = mapped_column(
        ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True, index=True
    )

    amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=EscrowStatus.PENDING, index=True
    )

    # Public claim token
    tracking_id: Mapped[str] = mapped_column(
        String(64), nullable=False, unique=True
    )

    personal_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    reference_note: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Lifecycle timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    claimed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    cancelled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    cancel_reason: Mapped[str | None] = mapped_column(String(255), nullable=True)
    cancelled_by_account_id: Mapped[int | None] = mapped_column(
        Integer, nullable=True
    )

    # Notification engagement (informational)
    delivered_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    opened_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    clicked_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<EscrowPayment(id={self.id}, channel={self.channel}, "
            f"amount={self.amount}, status={self.status})>"
        )

    @property
    def is_terminal(self) -> bool:
        """Check if escrow reached a sink state."""
        return self.status in EscrowStatus.TERMINAL

    def is_expired(self, now: datetime) -> bool:
        """
        Check expiry at the given moment.

        The validity window is [created_at, expires_at): an escrow whose
        expires_at equals now is already expired.
        """
        return ensure_utc(now) >= ensure_utc(self.expires_at)

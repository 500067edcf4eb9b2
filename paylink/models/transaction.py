"""
Transaction model.

Canonical transfer record for direct and escrow payments.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    Boolean,
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
from paylink.models.enums import TransactionStatus
from paylink.models.types import GasType, MoneyType


class Transaction(Base):
    """Transaction model - one record per send."""

    __tablename__ = "transactions"
    __table_args__ = (
        CheckConstraint("amount > 0", name="check_transaction_amount_positive"),
        Index("idx_transaction_sender_created", "sender_account_id", "created_at"),
        Index("idx_transaction_status_updated", "status", "updated_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=TransactionStatus.PENDING, index=True
    )
    amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)

    # Parties
    sender_account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    recipient_account_id: Mapped[int | None] = mapped_column(
        ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True, index=True
    )
    recipient_address: Mapped[str | None] = mapped_column(String(42), nullable=True)
    recipient_identifier: Mapped[str | None] = mapped_column(
        String(255), nullable=True
    )

    # Escrow link
    escrow_payment_id: Mapped[int | None] = mapped_column(
        ForeignKey("escrow_payments.id", ondelete="SET NULL"),
        nullable=True,
        unique=True,
    )

    # Externally visible hashes
    user_op_hash: Mapped[str | None] = mapped_column(
        String(66), nullable=True, unique=True
    )
    transaction_hash: Mapped[str | None] = mapped_column(String(66), nullable=True)
    block_number: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    # Gas accounting
    gas_limit_total: Mapped[int | None] = mapped_column(GasType, nullable=True)
    gas_cost_wei: Mapped[int | None] = mapped_column(GasType, nullable=True)
    gas_fee: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False,
        comment="Estimated gas fee in token units"
    )
    paymaster_used: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )

    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    reference_note: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<Transaction(id={self.id}, type={self.type}, "
            f"amount={self.amount}, status={self.status})>"
        )

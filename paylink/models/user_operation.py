"""
UserOperation model.

Persisted account-abstraction requests, keyed by their canonical hash.
"""

from datetime import UTC, datetime

from sqlalchemy import DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from paylink.models.base import Base
from paylink.models.enums import UserOperationStatus
from paylink.models.types import GasType


class UserOperation(Base):
    """UserOperation model - signable meta-transaction requests."""

    __tablename__ = "user_operations"

    user_op_hash: Mapped[str] = mapped_column(String(66), primary_key=True)

    account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    sender: Mapped[str] = mapped_column(String(42), nullable=False)
    nonce: Mapped[int] = mapped_column(GasType, nullable=False)

    init_code: Mapped[str] = mapped_column(Text, nullable=False, default="0x")
    call_data: Mapped[str] = mapped_column(Text, nullable=False)

    call_gas_limit: Mapped[int] = mapped_column(GasType, nullable=False)
    verification_gas_limit: Mapped[int] = mapped_column(GasType, nullable=False)
    pre_verification_gas: Mapped[int] = mapped_column(GasType, nullable=False)
    max_fee_per_gas: Mapped[int] = mapped_column(GasType, nullable=False)
    max_priority_fee_per_gas: Mapped[int] = mapped_column(GasType, nullable=False)

    paymaster_and_data: Mapped[str] = mapped_column(
        Text, nullable=False, default="0x"
    )
    signature: Mapped[str] = mapped_column(Text, nullable=False, default="0x")

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=UserOperationStatus.PENDING, index=True
    )
    transaction_hash: Mapped[str | None] = mapped_column(String(66), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False
    )
    submitted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    confirmed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<UserOperation(hash={self.user_op_hash[:10]}..., "
            f"sender={self.sender}, nonce={self.nonce}, status={self.status})>"
        )

    @property
    def paymaster_used(self) -> bool:
        """Check if a paymaster sponsors this operation."""
        return self.paymaster_and_data not in ("", "0x")

"""
Account model.

Represents a smart-contract wallet account and its cached balances.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column

from paylink.models.base import Base
from paylink.models.types import MoneyType


class Account(Base):
    """Account model - account-abstraction wallets of registered users."""

    __tablename__ = "accounts"
    __table_args__ = (
        CheckConstraint("balance >= 0", name="check_account_balance_non_negative"),
        CheckConstraint(
            "escrow_held >= 0", name="check_account_escrow_held_non_negative"
        ),
        CheckConstraint(
            "pending_outflow >= 0", name="check_account_pending_outflow_non_negative"
        ),
        CheckConstraint("nonce >= 0", name="check_account_nonce_non_negative"),
    )

    # Primary key
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Smart account
    address: Mapped[str] = mapped_column(
        String(42), nullable=False, unique=True, index=True
    )
    owner_address: Mapped[str | None] = mapped_column(String(42), nullable=True)
    is_deployed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    deployed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    nonce: Mapped[int] = mapped_column(
        BigInteger, default=0, nullable=False,
        comment="Next nonce to issue for UserOperations"
    )

    # Identity (for escrow claim matching)
    email: Mapped[str | None] = mapped_column(
        String(255), nullable=True, unique=True, index=True
    )
    phone: Mapped[str | None] = mapped_column(
        String(20), nullable=True, unique=True, index=True
    )
    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Balances
    balance: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False,
        comment="Cached token balance"
    )
    escrow_held: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False,
        comment="Sum of outstanding escrow commitments"
    )
    pending_outflow: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False,
        comment="Sum of unresolved direct transfers"
    )
    balance_refreshed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Limits
    single_tx_limit: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("1000"), nullable=False
    )
    daily_limit: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("5000"), nullable=False
    )
    monthly_limit: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("20000"), nullable=False
    )

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

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<Account(id={self.id}, address={self.address}, "
            f"balance={self.balance}, escrow_held={self.escrow_held})>"
        )

    @property
    def available_balance(self) -> Decimal:
        """Balance not committed to escrows or in-flight transfers."""
        return self.balance - self.escrow_held - self.pending_outflow

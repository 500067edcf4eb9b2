"""
Gas sponsorship record model.

Append-only audit of sponsored operations; also the source of truth for
per-account sponsorship budgets.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from paylink.models.base import Base
from paylink.models.types import GasType, MoneyType


class GasSponsorshipRecord(Base):
    """Gas sponsorship record - one row per sponsored operation."""

    __tablename__ = "gas_sponsorships"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    user_op_hash: Mapped[str] = mapped_column(String(66), nullable=False)
    transaction_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    gas_amount_wei: Mapped[int] = mapped_column(GasType, nullable=False, default=0)
    gas_amount_token: Mapped[Decimal] = mapped_column(
        MoneyType, nullable=False, default=Decimal("0")
    )
    paymaster_address: Mapped[str] = mapped_column(String(42), nullable=False)
    reason: Mapped[str] = mapped_column(String(50), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<GasSponsorshipRecord(id={self.id}, account_id={self.account_id}, "
            f"reason={self.reason})>"
        )

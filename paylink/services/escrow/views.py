"""
Escrow result and view types.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from paylink.models.escrow_payment import EscrowPayment
from paylink.models.transaction import Transaction

DEFAULT_SENDER_NAME = "Someone"


@dataclass(frozen=True)
class EscrowResult:
    """Escrow together with its linked transaction."""

    escrow: EscrowPayment
    transaction: Transaction


@dataclass(frozen=True)
class PublicEscrowView:
    """
    Redacted escrow view for unauthenticated tracking-id lookups.

    Carries no internal ids and no recipient identifier.
    """

    amount: Decimal
    currency: str
    message: str | None
    sender_display_name: str
    status: str
    expires_at: datetime
    channel: str

    def to_dict(self) -> dict:
        return {
            "amount": str(self.amount),
            "currency": self.currency,
            "message": self.message,
            "sender_display_name": self.sender_display_name,
            "status": self.status,
            "expires_at": self.expires_at.isoformat(),
            "channel": self.channel,
        }


@dataclass(frozen=True)
class SweepResult:
    """Outcome of one expiry sweep."""

    examined: int = 0
    expired: int = 0
    skipped: int = 0

"""
Escrow payments for email and phone recipients.
"""

from paylink.services.escrow.channels import (
    ChannelStrategy,
    EmailChannel,
    PhoneChannel,
    get_strategy,
)
from paylink.services.escrow.ledger import EscrowPaymentLedger
from paylink.services.escrow.views import EscrowResult, PublicEscrowView, SweepResult

__all__ = [
    "ChannelStrategy",
    "EmailChannel",
    "PhoneChannel",
    "EscrowPaymentLedger",
    "EscrowResult",
    "PublicEscrowView",
    "SweepResult",
    "get_strategy",
]

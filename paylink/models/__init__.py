"""
Database models.

Exports all SQLAlchemy models for easy imports.
"""

from paylink.models.account import Account
from paylink.models.base import Base
from paylink.models.enums import (
    CancelReason,
    EngagementEvent,
    EscrowChannel,
    EscrowStatus,
    SponsorshipReason,
    TransactionStatus,
    TransactionType,
    UserOperationStatus,
)
from paylink.models.escrow_payment import EscrowPayment
from paylink.models.gas_sponsorship import GasSponsorshipRecord
from paylink.models.pending_aggregate import PendingAggregate
from paylink.models.transaction import Transaction
from paylink.models.user_operation import UserOperation


__all__ = [
    "Base",
    "Account",
    "EscrowPayment",
    "PendingAggregate",
    "Transaction",
    "UserOperation",
    "GasSponsorshipRecord",
    "CancelReason",
    "EngagementEvent",
    "EscrowChannel",
    "EscrowStatus",
    "SponsorshipReason",
    "TransactionStatus",
    "TransactionType",
    "UserOperationStatus",
]

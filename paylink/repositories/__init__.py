"""
Repositories.

Data access layer; one repository per model, all sharing the caller's
AsyncSession.
"""

from paylink.repositories.account_repository import AccountRepository
from paylink.repositories.base import BaseRepository
from paylink.repositories.escrow_payment_repository import EscrowPaymentRepository
from paylink.repositories.gas_sponsorship_repository import GasSponsorshipRepository
from paylink.repositories.pending_aggregate_repository import (
    PendingAggregateRepository,
)
from paylink.repositories.transaction_repository import TransactionRepository
from paylink.repositories.user_operation_repository import UserOperationRepository

__all__ = [
    "BaseRepository",
    "AccountRepository",
    "EscrowPaymentRepository",
    "GasSponsorshipRepository",
    "PendingAggregateRepository",
    "TransactionRepository",
    "UserOperationRepository",
]

"""
Transaction ledger.

Canonical transfer record and its status machine. Every status change of a
Transaction goes through `update_status`; nothing else writes the status
column after creation.

Methods here do not commit: they join the caller's atomic unit.
"""

from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from paylink.models.enums import TransactionStatus
from paylink.models.transaction import Transaction
from paylink.repositories.transaction_repository import TransactionRepository
from paylink.services.base_service import BaseService
from paylink.utils.datetime_utils import utc_now
from paylink.utils.exceptions import (
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)

# Legal transitions: current status -> allowed targets
TRANSITIONS: dict[str, frozenset[str]] = {
    TransactionStatus.PENDING: frozenset(
        {
            TransactionStatus.PROCESSING,
            TransactionStatus.FAILED,
            TransactionStatus.CANCELLED,
        }
    ),
    TransactionStatus.PROCESSING: frozenset(
        {
            TransactionStatus.COMPLETED,
            TransactionStatus.FAILED,
            TransactionStatus.CANCELLED,
        }
    ),
    TransactionStatus.IN_ESCROW: frozenset(
        {TransactionStatus.COMPLETED, TransactionStatus.CANCELLED}
    ),
}

# Columns update_status may set alongside the status
UPDATABLE_FIELDS = frozenset(
    {
        "recipient_account_id",
        "transaction_hash",
        "block_number",
        "gas_cost_wei",
        "gas_fee",
        "failure_reason",
        "completed_at",
    }
)


def is_legal_transition(current: str, target: str) -> bool:
    """Check a status transition against the state machine."""
    return target in TRANSITIONS.get(current, frozenset())


class TransactionLedger(BaseService):
    """Single mutation entry point for Transaction status."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.transactions = TransactionRepository(session)

    async def create(self, **fields: Any) -> Transaction:
        """Insert a transaction record."""
        return await self.transactions.create(**fields)

    async def get(self, transaction_id: int) -> Transaction:
        """
        Get transaction by ID.

        Raises:
            NotFoundError: If the transaction does not exist
        """
        tx = await self.transactions.get_fresh(transaction_id)
        if not tx:
            raise NotFoundError(
                "Transaction not found", transaction_id=transaction_id
            )
        return tx

    async def update_status(
        self, transaction_id: int, status: str, **extra: Any
    ) -> Transaction:
        """
        Move a transaction to a new status.

        The write is conditional on the status read here, so a concurrent
        writer that got there first turns this call into an
        InvalidTransitionError instead of a silent overwrite.

        Args:
            transaction_id: Transaction ID
            status: Target status
            **extra: Columns to set in the same statement

        Returns:
            Updated transaction

        Raises:
            NotFoundError: Unknown transaction
            InvalidTransitionError: Illegal or lost transition
            ValidationError: Unknown extra column
        """
        unknown = set(extra) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(
                f"Cannot update transaction fields: {', '.join(sorted(unknown))}"
            )

        tx = await self.get(transaction_id)
        current = tx.status

        if not is_legal_transition(current, status):
            raise InvalidTransitionError(
                f"Transaction cannot move from {current} to {status}",
                transaction_id=transaction_id,
                current_status=current,
                target_status=status,
            )

        now = utc_now()
        if status == TransactionStatus.COMPLETED:
            extra.setdefault("completed_at", now)

        won = await self.transactions.transition(
            transaction_id, current, status, updated_at=now, **extra
        )
        if not won:
            latest = await self.get(transaction_id)
            raise InvalidTransitionError(
                f"Transaction is already {latest.status}",
                transaction_id=transaction_id,
                current_status=latest.status,
                target_status=status,
            )

        self.logger.info(
            f"Transaction {transaction_id}: {current} -> {status}",
            extra={
                "transaction_id": transaction_id,
                "from_status": current,
                "to_status": status,
            },
        )

        return await self.get(transaction_id)

    async def get_history(
        self,
        account_id: int,
        status: str | None = None,
        tx_type: str | None = None,
        page: int = 1,
        per_page: int = 50,
    ) -> tuple[list[Transaction], int]:
        """Paginated transactions sent or received by an account."""
        return await self.transactions.get_history(
            account_id, status=status, tx_type=tx_type, page=page, per_page=per_page
        )

    async def find_stale(
        self, older_than: datetime, limit: int = 100
    ) -> list[Transaction]:
        """
        PENDING / PROCESSING transactions awaiting external reconciliation.

        Args:
            older_than: Only rows last updated before this moment
            limit: Max number of rows
        """
        return await self.transactions.find_stale(older_than, limit=limit)

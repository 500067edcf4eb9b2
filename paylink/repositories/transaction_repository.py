"""
Transaction repository.

Data access layer for Transaction model.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from paylink.models.enums import TransactionStatus
from paylink.models.transaction import Transaction
from paylink.repositories.base import BaseRepository


class TransactionRepository(BaseRepository[Transaction]):
    """Transaction repository with status-guarded updates."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize transaction repository."""
        super().__init__(Transaction, session)

    async def get_by_escrow_id(self, escrow_payment_id: int) -> Transaction | None:
        """Get the transaction linked to an escrow."""
        return await self.get_by(escrow_payment_id=escrow_payment_id)

    async def get_by_user_op_hash(self, user_op_hash: str) -> Transaction | None:
        """Get the transaction carrying a UserOperation hash."""
        return await self.get_by(user_op_hash=user_op_hash)

    async def transition(
        self,
        transaction_id: int,
        from_status: str,
        to_status: str,
        **values: Any,
    ) -> bool:
        """
        Move a transaction to to_status if it is still in from_status.

        Returns:
            True if the row was updated
        """
        rows = await self.conditional_update(
            Transaction.id == transaction_id,
            Transaction.status == from_status,
            status=to_status,
            **values,
        )
        return rows == 1

    async def get_history(
        self,
        account_id: int,
        status: str | None = None,
        tx_type: str | None = None,
        page: int = 1,
        per_page: int = 50,
    ) -> tuple[list[Transaction], int]:
        """
        Get transactions an account sent or received, newest first.

        Returns:
            Tuple of (items, total_count)
        """
        stmt = select(Transaction).where(
            or_(
                Transaction.sender_account_id == account_id,
                Transaction.recipient_account_id == account_id,
            )
        )
        if status:
            stmt = stmt.where(Transaction.status == status)
        if tx_type:
            stmt = stmt.where(Transaction.type == tx_type)
        stmt = stmt.order_by(Transaction.created_at.desc(), Transaction.id.desc())

        return await self.paginate(stmt, page=page, per_page=per_page)

    async def find_stale(
        self, older_than: datetime, limit: int = 100
    ) -> list[Transaction]:
        """
        Find PENDING / PROCESSING transactions not updated since older_than.

        Args:
            older_than: Cutoff on updated_at
            limit: Max number of results

        Returns:
            Stale transactions, oldest first
        """
        stmt = (
            select(Transaction)
            .where(
                Transaction.status.in_(TransactionStatus.UNRESOLVED),
                Transaction.updated_at < older_than,
            )
            .order_by(Transaction.updated_at, Transaction.id)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def sum_sent_since(self, account_id: int, since: datetime) -> Decimal:
        """
        Sum of amounts an account sent since a moment.

        FAILED and CANCELLED transactions do not count towards limits.
        """
        stmt = select(func.coalesce(func.sum(Transaction.amount), 0)).where(
            Transaction.sender_account_id == account_id,
            Transaction.created_at >= since,
            Transaction.status.notin_(
                (TransactionStatus.FAILED, TransactionStatus.CANCELLED)
            ),
        )
        result = await self.session.execute(stmt)
        return Decimal(str(result.scalar() or 0))

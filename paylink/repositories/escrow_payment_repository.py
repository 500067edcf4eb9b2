"""
Escrow payment repository.

Data access layer for EscrowPayment model.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from paylink.models.enums import EscrowStatus
from paylink.models.escrow_payment import EscrowPayment
from paylink.repositories.base import BaseRepository


class EscrowPaymentRepository(BaseRepository[EscrowPayment]):
    """Escrow payment repository with status-guarded transitions."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize escrow payment repository."""
        super().__init__(EscrowPayment, session)

    async def get_by_tracking_id(self, tracking_id: str) -> EscrowPayment | None:
        """Get escrow by its public claim token."""
        return await self.get_by(tracking_id=tracking_id)

    async def transition(
        self,
        escrow_id: int,
        from_statuses: tuple[str, ...],
        to_status: str,
        **values: Any,
    ) -> bool:
        """
        Move an escrow to a new status if it is still in one of from_statuses.

        Args:
            escrow_id: Escrow ID
            from_statuses: Statuses the row must currently be in
            to_status: Target status
            **values: Extra columns to set in the same statement

        Returns:
            True if this caller won the transition
        """
        rows = await self.conditional_update(
            EscrowPayment.id == escrow_id,
            EscrowPayment.status.in_(from_statuses),
            status=to_status,
            **values,
        )
        return rows == 1

    async def find_expired(
        self, now: datetime, limit: int = 200
    ) -> list[EscrowPayment]:
        """
        Find non-terminal escrows whose validity window has closed.

        Args:
            now: Reference time
            limit: Batch size

        Returns:
            Escrows with expires_at <= now, oldest first
        """
        stmt = (
            select(EscrowPayment)
            .where(
                EscrowPayment.status.in_(EscrowStatus.NON_TERMINAL),
                EscrowPayment.expires_at <= now,
            )
            .order_by(EscrowPayment.expires_at, EscrowPayment.id)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def sum_outstanding_for_sender(self, sender_account_id: int) -> Decimal:
        """Sum of non-terminal escrow amounts committed by a sender."""
        stmt = select(func.coalesce(func.sum(EscrowPayment.amount), 0)).where(
            EscrowPayment.sender_account_id == sender_account_id,
            EscrowPayment.status.in_(EscrowStatus.NON_TERMINAL),
        )
        result = await self.session.execute(stmt)
        return Decimal(str(result.scalar() or 0))

    async def list_for_account(
        self,
        account_id: int,
        identifiers: list[str],
        role: str = "all",
        status: str | None = None,
        page: int = 1,
        per_page: int = 50,
    ) -> tuple[list[EscrowPayment], int]:
        """
        List escrows sent by or addressed to an account.

        Args:
            account_id: Account ID
            identifiers: Email / phone identifiers of the account
            role: "sent", "received" or "all"
            status: Optional status filter
            page: Page number (1-indexed)
            per_page: Items per page

        Returns:
            Tuple of (items, total_count), newest first
        """
        sent = EscrowPayment.sender_account_id == account_id
        received = or_(
            EscrowPayment.recipient_account_id == account_id,
            EscrowPayment.recipient_identifier.in_(identifiers or [""]),
        )

        if role == "sent":
            condition = sent
        elif role == "received":
            condition = received
        else:
            condition = or_(sent, received)

        stmt = select(EscrowPayment).where(condition)
        if status:
            stmt = stmt.where(EscrowPayment.status == status)
        stmt = stmt.order_by(EscrowPayment.created_at.desc(), EscrowPayment.id.desc())

        return await self.paginate(stmt, page=page, per_page=per_page)

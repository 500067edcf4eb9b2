"""
Account repository.

Data access layer for Account model. Every balance, escrow and nonce
mutation is a single conditional UPDATE so concurrent callers never
interleave a read-modify-write.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import case, update
from sqlalchemy.ext.asyncio import AsyncSession

from paylink.models.account import Account
from paylink.repositories.base import BaseRepository
from paylink.utils.datetime_utils import utc_now


class AccountRepository(BaseRepository[Account]):
    """Account repository with escrow and nonce operations."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize account repository."""
        super().__init__(Account, session)

    async def get_by_address(self, address: str) -> Account | None:
        """Get account by smart-account address (lowercase)."""
        return await self.get_by(address=address.lower())

    async def get_by_email(self, email: str) -> Account | None:
        """Get account by normalized email."""
        return await self.get_by(email=email)

    async def get_by_phone(self, phone: str) -> Account | None:
        """Get account by E.164 phone."""
        return await self.get_by(phone=phone)

    async def reserve_escrow(self, account_id: int, amount: Decimal) -> bool:
        """
        Commit funds to an escrow if the available balance covers them.

        Args:
            account_id: Sender account ID
            amount: Escrow amount

        Returns:
            True if reserved, False if available balance is insufficient
        """
        rows = await self.conditional_update(
            Account.id == account_id,
            Account.balance - Account.escrow_held - Account.pending_outflow >= amount,
            escrow_held=Account.escrow_held + amount,
            updated_at=utc_now(),
        )
        return rows == 1

    async def release_escrow(self, account_id: int, amount: Decimal) -> None:
        """Return an escrow commitment to the sender (cancel / expiry)."""
        await self.conditional_update(
            Account.id == account_id,
            escrow_held=Account.escrow_held - amount,
            updated_at=utc_now(),
        )

    async def settle_escrow(self, account_id: int, amount: Decimal) -> bool:
        """
        Debit a claimed escrow from the sender's balance and commitment.

        Returns:
            False if a balance refresh left less than the amount on the
            sender's account
        """
        rows = await self.conditional_update(
            Account.id == account_id,
            Account.escrow_held >= amount,
            Account.balance >= amount,
            escrow_held=Account.escrow_held - amount,
            balance=Account.balance - amount,
            updated_at=utc_now(),
        )
        return rows == 1

    async def reserve_outflow(self, account_id: int, amount: Decimal) -> bool:
        """
        Commit funds to an in-flight direct transfer.

        Returns:
            True if reserved, False if available balance is insufficient
        """
        rows = await self.conditional_update(
            Account.id == account_id,
            Account.balance - Account.escrow_held - Account.pending_outflow >= amount,
            pending_outflow=Account.pending_outflow + amount,
            updated_at=utc_now(),
        )
        return rows == 1

    async def release_outflow(self, account_id: int, amount: Decimal) -> None:
        """Drop the commitment of a failed or cancelled direct transfer."""
        await self.conditional_update(
            Account.id == account_id,
            pending_outflow=Account.pending_outflow - amount,
            updated_at=utc_now(),
        )

    async def settle_outflow(self, account_id: int, amount: Decimal) -> None:
        """
        Debit a confirmed direct transfer.

        The cached balance may already reflect the transfer if it was
        refreshed from chain after inclusion, so the debit stops at zero.
        """
        await self.conditional_update(
            Account.id == account_id,
            pending_outflow=Account.pending_outflow - amount,
            balance=case(
                (Account.balance >= amount, Account.balance - amount),
                else_=0,
            ),
            updated_at=utc_now(),
        )

    async def credit_balance(self, account_id: int, amount: Decimal) -> None:
        """Credit the cached balance of a claiming recipient."""
        await self.conditional_update(
            Account.id == account_id,
            balance=Account.balance + amount,
            updated_at=utc_now(),
        )

    async def refresh_balance(
        self, account_id: int, balance: Decimal, refreshed_at: datetime
    ) -> None:
        """Store a balance read from the chain."""
        await self.conditional_update(
            Account.id == account_id,
            balance=balance,
            balance_refreshed_at=refreshed_at,
        )

    async def mark_deployed(self, account_id: int) -> None:
        """Record that the smart account contract exists on chain."""
        now = utc_now()
        await self.conditional_update(
            Account.id == account_id,
            Account.is_deployed.is_(False),
            is_deployed=True,
            deployed_at=now,
            updated_at=now,
        )

    async def allocate_nonce(self, account_id: int) -> int | None:
        """
        Atomically issue the next UserOperation nonce.

        Increment-and-fetch in one statement: concurrent callers serialize
        on the row and each gets a distinct value.

        Args:
            account_id: Account ID

        Returns:
            Issued nonce, or None if the account does not exist
        """
        stmt = (
            update(Account)
            .where(Account.id == account_id)
            .values(nonce=Account.nonce + 1)
            .returning(Account.nonce)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        new_value = result.scalar_one_or_none()
        if new_value is None:
            return None
        return new_value - 1

    async def lock(self, account_id: int) -> bool:
        """
        Take the account row write lock for the current transaction.

        A touching UPDATE locks the row on PostgreSQL and acquires the
        database write lock on SQLite, so it serializes budget recounts on
        both.
        """
        rows = await self.conditional_update(
            Account.id == account_id,
            updated_at=utc_now(),
        )
        return rows == 1

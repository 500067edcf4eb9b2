"""
Transaction limits service.

Default LimitsChecker backed by the per-account limits stored on Account:
single transaction, calendar day and calendar month (UTC). FAILED and
CANCELLED transactions do not count.
"""

from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from paylink.repositories.account_repository import AccountRepository
from paylink.repositories.transaction_repository import TransactionRepository
from paylink.services.base_service import BaseService
from paylink.services.interfaces import LimitDecision
from paylink.utils.datetime_utils import utc_now


class StoredLimitsChecker(BaseService):
    """LimitsChecker using the limits stored on each account."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.accounts = AccountRepository(session)
        self.transactions = TransactionRepository(session)

    async def check(self, account_id: int, amount: Decimal) -> LimitDecision:
        """
        Check an amount against the account's limits.

        Args:
            account_id: Sender account ID
            amount: Amount about to be sent

        Returns:
            LimitDecision; denied decisions carry a reason
        """
        account = await self.accounts.get_by_id(account_id)
        if not account:
            return LimitDecision(allowed=False, reason="Account not found")

        if amount > account.single_tx_limit:
            return LimitDecision(
                allowed=False,
                reason=f"Amount exceeds single transaction limit of {account.single_tx_limit}",
            )

        now = utc_now()
        day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        month_start = day_start.replace(day=1)

        daily = await self.transactions.sum_sent_since(account_id, day_start)
        if daily + amount > account.daily_limit:
            return LimitDecision(
                allowed=False,
                reason=f"Amount exceeds daily limit of {account.daily_limit}",
            )

        monthly = await self.transactions.sum_sent_since(account_id, month_start)
        if monthly + amount > account.monthly_limit:
            return LimitDecision(
                allowed=False,
                reason=f"Amount exceeds monthly limit of {account.monthly_limit}",
            )

        return LimitDecision(allowed=True)

"""
Balance service.

Keeps the cached account balance in step with the chain before funds are
committed, for both direct transfers and escrow holds.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from paylink.config.settings import Settings
from paylink.models.account import Account
from paylink.repositories.account_repository import AccountRepository
from paylink.services.base_service import BaseService
from paylink.services.interfaces import BalanceProvider
from paylink.utils.datetime_utils import utc_now
from paylink.utils.exceptions import ExternalServiceError
from paylink.utils.retry import call_with_retry
from paylink.utils.security import mask_address


class BalanceService(BaseService):
    """Refreshes cached token balances from a BalanceProvider."""

    def __init__(
        self,
        session: AsyncSession,
        settings: Settings,
        balance_provider: BalanceProvider | None = None,
    ) -> None:
        super().__init__(session)
        self.settings = settings
        self.balance_provider = balance_provider
        self.accounts = AccountRepository(session)

    async def refresh(self, account: Account) -> Account:
        """
        Re-read the token balance from chain when a provider is configured.

        Commits the new balance on its own. Falls back to the cached
        balance if the provider is unreachable.

        Args:
            account: Account to refresh

        Returns:
            The account as stored after the refresh
        """
        if self.balance_provider is None:
            return account

        try:
            balance = await call_with_retry(
                lambda: self.balance_provider.get_token_balance(account.address),
                operation_name="get_token_balance",
                max_retries=self.settings.external_max_retries,
                timeout=self.settings.external_call_timeout,
            )
        except ExternalServiceError as e:
            self.logger.warning(
                f"Balance refresh failed for {mask_address(account.address)}, "
                f"using cached balance: {e.message}"
            )
            return account

        await self.accounts.refresh_balance(account.id, balance, utc_now())
        await self.commit()
        return await self.accounts.get_fresh(account.id)

"""
Gas sponsorship service.

Decides whether a paymaster pays the network fee of an operation, fetches
the paymaster data from the sponsor service, and keeps the append-only
sponsorship audit that is also the source of truth for per-account
budgets.
"""

from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from paylink.config.constants import NATIVE_DECIMALS
from paylink.config.settings import Settings
from paylink.models.enums import SponsorshipReason
from paylink.models.gas_sponsorship import GasSponsorshipRecord
from paylink.repositories.account_repository import AccountRepository
from paylink.repositories.gas_sponsorship_repository import GasSponsorshipRepository
from paylink.services.account_abstraction.user_operation import UserOperationRequest
from paylink.services.base_service import BaseService
from paylink.services.interfaces import SponsorService
from paylink.utils.retry import with_timeout
from paylink.utils.security import mask_tx_hash


class GasSponsorshipService(BaseService):
    """Paymaster policy and sponsorship budget."""

    def __init__(
        self,
        session: AsyncSession,
        settings: Settings,
        sponsor_service: SponsorService | None = None,
    ) -> None:
        super().__init__(session)
        self.settings = settings
        self.sponsor_service = sponsor_service
        self.accounts = AccountRepository(session)
        self.records = GasSponsorshipRepository(session)

    @property
    def enabled(self) -> bool:
        """Sponsorship is switched on globally."""
        return self.settings.paymaster_enabled and self.settings.sponsor_new_accounts

    async def should_sponsor(self, account_id: int) -> bool:
        """
        Check whether the account still has sponsorship budget.

        The count is derived from the audit records, never from a separate
        counter.
        """
        if not self.enabled:
            return False

        used = await self.records.count_for_account(account_id)
        # Close the read transaction before the sponsor call
        await self.commit()
        return used < self.settings.sponsor_limit_per_account

    async def attach_paymaster_data(
        self, request: UserOperationRequest, should_sponsor: bool
    ) -> UserOperationRequest:
        """
        Attach paymaster data, degrading to unsponsored on any failure.

        The returned request has no hash; callers rehash it.
        """
        if not self.enabled or not should_sponsor or self.sponsor_service is None:
            return request.without_paymaster()

        try:
            paymaster_and_data = await with_timeout(
                self.sponsor_service.sponsor(
                    request.to_rpc(), self.settings.entry_point_address
                ),
                timeout=self.settings.external_call_timeout,
                operation_name="sponsor_user_operation",
            )
        except Exception as e:
            self.logger.warning(
                f"Sponsor service failed, sending unsponsored: {e}",
                extra={
                    "sender": request.sender,
                    "nonce": request.nonce,
                    "error": str(e),
                },
            )
            return request.without_paymaster()

        if not self._is_valid_paymaster_data(paymaster_and_data):
            self.logger.warning(
                "Sponsor returned unusable paymaster data, sending unsponsored",
                extra={"sender": request.sender, "nonce": request.nonce},
            )
            return request.without_paymaster()

        return request.with_paymaster(paymaster_and_data)

    def _is_valid_paymaster_data(self, value: object) -> bool:
        if not isinstance(value, str) or not value.startswith("0x"):
            return False
        body = value[2:]
        if len(body) < 40 or len(body) % 2:
            return False
        try:
            bytes.fromhex(body)
        except ValueError:
            return False
        return value[:42].lower() == self.settings.paymaster_address

    def estimate_cost(self, request: UserOperationRequest) -> tuple[int, Decimal]:
        """
        Worst-case network fee of an operation.

        Returns:
            Tuple of (wei, token units at the configured native price)
        """
        wei = request.max_gas_cost_wei
        native = Decimal(wei).scaleb(-NATIVE_DECIMALS)
        token = (native * self.settings.native_token_price).quantize(Decimal("0.000001"))
        return wei, token

    async def record_sponsorship(
        self,
        account_id: int,
        request: UserOperationRequest,
        transaction_id: int | None = None,
        reason: str = SponsorshipReason.NEW_ACCOUNT,
    ) -> GasSponsorshipRecord | None:
        """
        Append a sponsorship record if the account still has budget.

        Runs inside the caller's atomic unit: the account row is locked
        before the recount, so two concurrent sends cannot both take the
        last slot.

        Returns:
            The new record, or None when the budget is exhausted (the
            caller strips the paymaster and rehashes)
        """
        await self.accounts.lock(account_id)

        used = await self.records.count_for_account(account_id)
        if used >= self.settings.sponsor_limit_per_account:
            self.logger.info(
                f"Sponsorship budget exhausted for account {account_id}",
                extra={"account_id": account_id, "used": used},
            )
            return None

        wei, token = self.estimate_cost(request)
        record = await self.records.create(
            account_id=account_id,
            user_op_hash=request.user_op_hash,
            transaction_id=transaction_id,
            gas_amount_wei=wei,
            gas_amount_token=token,
            paymaster_address=request.paymaster_and_data[:42].lower(),
            reason=reason,
        )

        self.logger.info(
            "Gas sponsorship recorded",
            extra={
                "account_id": account_id,
                "user_op_hash": mask_tx_hash(request.user_op_hash),
                "gas_amount_wei": wei,
            },
        )
        return record

"""
Account abstraction builder.

Turns a transfer intent into an unsigned ERC-4337 UserOperation: pre-flight
balance check, nonce allocation, call data, gas estimate, fee fields and
canonical hash. Submission forwards a signed operation to the relay.

Nonces come from an atomic increment-and-fetch on the account row that is
committed on its own, so no lock or open transaction is held while the
fee oracle, sponsor or relay is awaited.
"""

import asyncio
from dataclasses import replace
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from paylink.config.constants import EMPTY_BYTES
from paylink.config.settings import Settings
from paylink.models.account import Account
from paylink.models.enums import UserOperationStatus
from paylink.models.user_operation import UserOperation
from paylink.repositories.account_repository import AccountRepository
from paylink.repositories.user_operation_repository import UserOperationRepository
from paylink.services.account_abstraction.encoding import (
    calldata_gas,
    encode_execute,
    encode_init_code,
    encode_token_transfer,
    to_token_units,
)
from paylink.services.account_abstraction.hashing import compute_user_op_hash
from paylink.services.account_abstraction.user_operation import (
    GasEstimate,
    UserOperationRequest,
)
from paylink.services.balance_service import BalanceService
from paylink.services.base_service import BaseService, log_operation
from paylink.services.interfaces import (
    BalanceProvider,
    DeploymentChecker,
    FeeOracle,
    Relay,
)
from paylink.utils.exceptions import (
    ConflictError,
    ExternalServiceError,
    InsufficientFundsError,
    NotFoundError,
    RelayRejectedError,
    ValidationError,
    is_duplicate_submission,
)
from paylink.utils.retry import backoff_delay, call_with_retry, with_timeout
from paylink.utils.security import mask_address, mask_tx_hash


class AccountAbstractionBuilder(BaseService):
    """Builds, hashes and submits UserOperations."""

    def __init__(
        self,
        session: AsyncSession,
        settings: Settings,
        fee_oracle: FeeOracle,
        balance_provider: BalanceProvider | None = None,
        deployment_checker: DeploymentChecker | None = None,
        relay: Relay | None = None,
    ) -> None:
        super().__init__(session)
        self.settings = settings
        self.fee_oracle = fee_oracle
        self.balances = BalanceService(session, settings, balance_provider)
        self.deployment_checker = deployment_checker
        self.relay = relay
        self.accounts = AccountRepository(session)
        self.user_operations = UserOperationRepository(session)

    # ------------------------------------------------------------------
    # Nonces
    # ------------------------------------------------------------------

    async def get_next_nonce(self, address: str) -> int:
        """
        Issue the next nonce for a smart-account address.

        Raises:
            NotFoundError: Unknown address
        """
        account = await self.accounts.get_by_address(address)
        if not account:
            raise NotFoundError("Account not found", address=mask_address(address))
        return await self.allocate_nonce(account.id)

    async def allocate_nonce(self, account_id: int) -> int:
        """
        Issue the next nonce for an account and commit immediately.

        Each call returns a value no other call has received; values
        strictly increase per account.
        """
        nonce = await self.accounts.allocate_nonce(account_id)
        if nonce is None:
            await self.rollback()
            raise NotFoundError("Account not found", account_id=account_id)
        await self.commit()

        self.logger.debug(
            f"Allocated nonce {nonce} for account {account_id}",
            extra={"account_id": account_id, "nonce": nonce},
        )
        return nonce

    # ------------------------------------------------------------------
    # Gas
    # ------------------------------------------------------------------

    def estimate_gas(self, call_data: str, deployment_needed: bool) -> GasEstimate:
        """
        Estimate gas limits.

        Call gas grows with the call data size; verification also covers
        the account deployment when the account is not deployed yet.
        """
        verification = (
            self.settings.deploy_gas_limit
            if deployment_needed
            else self.settings.verification_gas_limit
        )
        return GasEstimate(
            call_gas_limit=self.settings.transfer_gas_limit + calldata_gas(call_data),
            verification_gas_limit=verification,
            pre_verification_gas=self.settings.pre_verification_gas,
        )

    # ------------------------------------------------------------------
    # Build
    # ------------------------------------------------------------------

    async def _is_deployed(self, account: Account) -> bool:
        if account.is_deployed or self.deployment_checker is None:
            return account.is_deployed

        deployed = await call_with_retry(
            lambda: self.deployment_checker.is_deployed(account.address),
            operation_name="is_deployed",
            max_retries=self.settings.external_max_retries,
            timeout=self.settings.external_call_timeout,
        )
        if deployed:
            await self.accounts.mark_deployed(account.id)
            await self.commit()
        return deployed

    @log_operation
    async def build_transfer(
        self,
        sender_account: Account,
        recipient: str,
        amount: Decimal,
    ) -> UserOperationRequest:
        """
        Build an unsigned, hashed token transfer UserOperation.

        Args:
            sender_account: Sending account
            recipient: Recipient address (0x, 40 hex)
            amount: Token amount

        Returns:
            UserOperationRequest with user_op_hash set and no paymaster

        Raises:
            InsufficientFundsError: Available balance below amount
            ValidationError: Undeployed account without a known owner
            ExternalServiceError: Fee oracle unreachable
            HashComputationError: Hash could not be computed
        """
        account = await self.accounts.get_fresh(sender_account.id)
        if not account:
            raise NotFoundError("Account not found", account_id=sender_account.id)
        # Close the read transaction before external calls
        await self.commit()

        account = await self.balances.refresh(account)
        if account.available_balance < amount:
            raise InsufficientFundsError(
                "Insufficient available balance",
                account_id=account.id,
                available=str(account.available_balance),
                requested=str(amount),
            )

        deployed = await self._is_deployed(account)
        init_code = EMPTY_BYTES
        if not deployed:
            if not account.owner_address:
                raise ValidationError(
                    "Account is not deployed and has no owner to deploy it",
                    account_id=account.id,
                )
            init_code = encode_init_code(
                self.settings.account_factory_address, account.owner_address
            )

        transfer = encode_token_transfer(
            recipient, to_token_units(amount, self.settings.token_decimals)
        )
        call_data = encode_execute(self.settings.token_contract_address, 0, transfer)
        gas = self.estimate_gas(call_data, deployment_needed=not deployed)

        fees = await call_with_retry(
            self.fee_oracle.get_fee_data,
            operation_name="get_fee_data",
            max_retries=self.settings.external_max_retries,
            timeout=self.settings.external_call_timeout,
        )

        # Last step before hashing so an oracle failure never burns a nonce
        nonce = await self.allocate_nonce(account.id)

        request = UserOperationRequest(
            sender=account.address,
            nonce=nonce,
            init_code=init_code,
            call_data=call_data,
            call_gas_limit=gas.call_gas_limit,
            verification_gas_limit=gas.verification_gas_limit,
            pre_verification_gas=gas.pre_verification_gas,
            max_fee_per_gas=fees.max_fee_per_gas,
            max_priority_fee_per_gas=fees.max_priority_fee_per_gas,
        )
        request = self.rehash(request)

        self.logger.info(
            "UserOperation built",
            extra={
                "account_id": account.id,
                "recipient": mask_address(recipient),
                "nonce": nonce,
                "deployment": not deployed,
                "user_op_hash": mask_tx_hash(request.user_op_hash),
            },
        )
        return request

    def rehash(self, request: UserOperationRequest) -> UserOperationRequest:
        """Recompute the canonical hash, e.g. after a paymaster change."""
        user_op_hash = compute_user_op_hash(
            request,
            self.settings.entry_point_address,
            self.settings.chain_id,
        )
        return replace(request, user_op_hash=user_op_hash)

    # ------------------------------------------------------------------
    # Submit
    # ------------------------------------------------------------------

    @staticmethod
    def to_request(op: UserOperation) -> UserOperationRequest:
        """Rebuild a request from its persisted row."""
        return UserOperationRequest(
            sender=op.sender,
            nonce=op.nonce,
            init_code=op.init_code,
            call_data=op.call_data,
            call_gas_limit=op.call_gas_limit,
            verification_gas_limit=op.verification_gas_limit,
            pre_verification_gas=op.pre_verification_gas,
            max_fee_per_gas=op.max_fee_per_gas,
            max_priority_fee_per_gas=op.max_priority_fee_per_gas,
            paymaster_and_data=op.paymaster_and_data,
            signature=op.signature,
            user_op_hash=op.user_op_hash,
        )

    @log_operation
    async def submit(self, user_op_hash: str, signature: str) -> UserOperation:
        """
        Attach a signature and forward the operation to the relay.

        Transport failures are retried, but before every retry the relay is
        asked whether it already knows the operation; a known operation
        counts as accepted, so a retry never double-submits.

        Args:
            user_op_hash: Canonical operation hash
            signature: 0x-prefixed signature

        Returns:
            The SUBMITTED UserOperation

        Raises:
            NotFoundError: Unknown operation
            ConflictError: Operation already failed
            RelayRejectedError: Relay refused the operation
            ExternalServiceError: Relay unreachable after all attempts
        """
        if not signature or not signature.startswith("0x"):
            raise ValidationError("Signature must be 0x-prefixed hex")

        op = await self.user_operations.get_fresh(user_op_hash)
        if not op:
            raise NotFoundError(
                "UserOperation not found", user_op_hash=mask_tx_hash(user_op_hash)
            )
        if op.status in (UserOperationStatus.SUBMITTED, UserOperationStatus.CONFIRMED):
            return op
        if op.status == UserOperationStatus.FAILED:
            raise ConflictError(
                "UserOperation already failed",
                user_op_hash=mask_tx_hash(user_op_hash),
                current_status=op.status,
            )
        if self.relay is None:
            raise ExternalServiceError("No relay configured")

        payload = self.to_request(op).to_rpc(signature=signature)
        await self.commit()

        await self._forward(user_op_hash, payload)

        await self.user_operations.mark_submitted(user_op_hash, signature)
        await self.commit()

        self.logger.info(
            "UserOperation submitted",
            extra={"user_op_hash": mask_tx_hash(user_op_hash)},
        )
        return await self.user_operations.get_fresh(user_op_hash)

    async def _forward(self, user_op_hash: str, payload: dict) -> None:
        attempts = self.settings.external_max_retries
        entry_point = self.settings.entry_point_address
        last_error: Exception | None = None

        for attempt in range(attempts):
            if attempt > 0:
                await asyncio.sleep(backoff_delay(attempt - 1))
                known = await self._remote_state(user_op_hash)
                if known is not None:
                    self.logger.info(
                        f"Relay already knows {mask_tx_hash(user_op_hash)}, "
                        f"treating as accepted"
                    )
                    return

            try:
                await with_timeout(
                    self.relay.send_user_operation(payload, entry_point),
                    timeout=self.settings.external_call_timeout,
                    operation_name="send_user_operation",
                )
                return
            except RelayRejectedError as e:
                if not is_duplicate_submission(e):
                    raise
                self.logger.info(
                    f"Relay reports {mask_tx_hash(user_op_hash)} as already "
                    f"known, treating as accepted"
                )
                return
            except (ExternalServiceError, ConnectionError) as e:
                last_error = e
                self.logger.warning(
                    f"Relay submission attempt {attempt + 1}/{attempts} failed: {e}"
                )

        raise ExternalServiceError(
            f"Relay unreachable after {attempts} attempts",
            user_op_hash=mask_tx_hash(user_op_hash),
            last_error=str(last_error),
        )

    async def _remote_state(self, user_op_hash: str) -> dict | None:
        try:
            return await with_timeout(
                self.relay.get_user_operation(user_op_hash),
                timeout=self.settings.external_call_timeout,
                operation_name="get_user_operation",
            )
        except (ExternalServiceError, ConnectionError) as e:
            self.logger.warning(f"Relay state lookup failed: {e}")
            return None

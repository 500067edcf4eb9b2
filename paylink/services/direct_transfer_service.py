"""
Direct transfer service.

Wallet-to-wallet path: build a UserOperation, try to get it sponsored,
persist it with its transaction in one atomic unit, then sign and submit
when a signer is configured.

The amount stays committed on the sender (`pending_outflow`) until a relay
receipt settles it or the transfer fails or is cancelled.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from paylink.config.settings import Settings
from paylink.models.enums import (
    CancelReason,
    TransactionStatus,
    TransactionType,
    UserOperationStatus,
)
from paylink.models.transaction import Transaction
from paylink.models.user_operation import UserOperation
from paylink.repositories.account_repository import AccountRepository
from paylink.repositories.user_operation_repository import UserOperationRepository
from paylink.services.account_abstraction.builder import AccountAbstractionBuilder
from paylink.services.account_abstraction.user_operation import (
    UserOperationReceipt,
    UserOperationRequest,
)
from paylink.services.base_service import BaseService, log_operation, transaction
from paylink.services.gas_sponsorship_service import GasSponsorshipService
from paylink.services.interfaces import Signer
from paylink.services.transaction_ledger import TransactionLedger
from paylink.utils.exceptions import (
    ConflictError,
    ExternalServiceError,
    InsufficientFundsError,
    NotFoundError,
    PaymentError,
    RelayRejectedError,
    ValidationError,
)
from paylink.utils.retry import call_with_retry, with_timeout
from paylink.utils.security import mask_address, mask_tx_hash
from paylink.validators.unified import normalize_wallet_address, validate_amount


@dataclass(frozen=True)
class DirectTransferResult:
    """Persisted direct transfer."""

    transaction: Transaction
    user_operation: UserOperation
    sponsored: bool


@dataclass(frozen=True)
class ReconcileResult:
    """Outcome of one reconciliation pass."""

    examined: int
    confirmed: int
    failed: int
    pending: int
    errors: int


class DirectTransferService(BaseService):
    """Direct (wallet recipient) transfers."""

    def __init__(
        self,
        session: AsyncSession,
        settings: Settings,
        builder: AccountAbstractionBuilder,
        sponsorship: GasSponsorshipService,
        signer: Signer | None = None,
    ) -> None:
        super().__init__(session)
        self.settings = settings
        self.builder = builder
        self.sponsorship = sponsorship
        self.signer = signer
        self.accounts = AccountRepository(session)
        self.user_operations = UserOperationRepository(session)
        self.ledger = TransactionLedger(session)

    @log_operation
    async def send(
        self,
        account_id: int,
        recipient_address: str,
        amount: Decimal,
        note: str | None = None,
    ) -> DirectTransferResult:
        """
        Send tokens to a wallet address.

        Args:
            account_id: Sender account ID
            recipient_address: Recipient wallet (0x, 40 hex)
            amount: Token amount
            note: Private reference note

        Returns:
            DirectTransferResult with a PROCESSING transaction

        Raises:
            ValidationError: Bad amount or address
            NotFoundError: Unknown sender
            InsufficientFundsError: Available balance below amount
            HashComputationError: Hash could not be computed
            RelayRejectedError: Relay refused the signed operation
        """
        is_valid, value, error = validate_amount(amount)
        if not is_valid:
            raise ValidationError(error, amount=str(amount))

        try:
            recipient = normalize_wallet_address(recipient_address)
        except ValueError as e:
            raise ValidationError(f"Invalid recipient address: {e}") from e

        account = await self.accounts.get_by_id(account_id)
        if not account:
            raise NotFoundError("Sender account not found", account_id=account_id)

        request = await self.builder.build_transfer(account, recipient, value)

        sponsored = await self.sponsorship.should_sponsor(account_id)
        request = await self.sponsorship.attach_paymaster_data(request, sponsored)
        request = self.builder.rehash(request)

        tx, op = await self._persist(account_id, request, recipient, value, note)

        self.logger.info(
            "Direct transfer recorded",
            extra={
                "transaction_id": tx.id,
                "recipient": mask_address(recipient),
                "amount": str(value),
                "user_op_hash": mask_tx_hash(op.user_op_hash),
                "sponsored": op.paymaster_used,
            },
        )

        if self.signer is not None:
            op = await self._sign_and_submit(op.user_op_hash)
            tx = await self.ledger.get(tx.id)

        return DirectTransferResult(
            transaction=tx, user_operation=op, sponsored=op.paymaster_used
        )

    @transaction
    async def _persist(
        self,
        account_id: int,
        request: UserOperationRequest,
        recipient: str,
        amount: Decimal,
        note: str | None,
    ) -> tuple[Transaction, UserOperation]:
        if not await self.accounts.reserve_outflow(account_id, amount):
            fresh = await self.accounts.get_fresh(account_id)
            raise InsufficientFundsError(
                "Insufficient available balance",
                account_id=account_id,
                available=str(fresh.available_balance),
                requested=str(amount),
            )

        record = None
        if request.paymaster_used:
            record = await self.sponsorship.record_sponsorship(account_id, request)
            if record is None:
                # Budget taken by a concurrent send since should_sponsor
                request = self.builder.rehash(request.without_paymaster())

        op = await self.user_operations.create(
            user_op_hash=request.user_op_hash,
            account_id=account_id,
            sender=request.sender,
            nonce=request.nonce,
            init_code=request.init_code,
            call_data=request.call_data,
            call_gas_limit=request.call_gas_limit,
            verification_gas_limit=request.verification_gas_limit,
            pre_verification_gas=request.pre_verification_gas,
            max_fee_per_gas=request.max_fee_per_gas,
            max_priority_fee_per_gas=request.max_priority_fee_per_gas,
            paymaster_and_data=request.paymaster_and_data,
            status=UserOperationStatus.PENDING,
        )

        wei, token = self.sponsorship.estimate_cost(request)
        tx = await self.ledger.create(
            type=TransactionType.DIRECT,
            status=TransactionStatus.PROCESSING,
            amount=amount,
            sender_account_id=account_id,
            recipient_address=recipient,
            recipient_account_id=await self._recipient_account_id(recipient),
            user_op_hash=request.user_op_hash,
            gas_limit_total=request.total_gas,
            gas_cost_wei=wei,
            gas_fee=Decimal("0") if request.paymaster_used else token,
            paymaster_used=request.paymaster_used,
            reference_note=note,
        )

        if record is not None:
            record.transaction_id = tx.id
            await self.session.flush()

        return tx, op

    async def _recipient_account_id(self, address: str) -> int | None:
        account = await self.accounts.get_by_address(address)
        return account.id if account else None

    async def _sign_and_submit(self, user_op_hash: str) -> UserOperation:
        try:
            signature = await with_timeout(
                self.signer.sign(user_op_hash),
                timeout=self.settings.external_call_timeout,
                operation_name="sign_user_operation",
            )
        except Exception as e:
            await self.mark_failed(user_op_hash, f"Signing failed: {e}")
            raise ExternalServiceError(
                "Could not sign the operation",
                user_op_hash=mask_tx_hash(user_op_hash),
            ) from e

        return await self.submit_signed(user_op_hash, signature)

    @log_operation
    async def submit_signed(self, user_op_hash: str, signature: str) -> UserOperation:
        """
        Submit a signed operation; a relay rejection fails its transaction.

        A relay that stays unreachable leaves the transaction PROCESSING
        for reconciliation, since the operation may have landed.

        Raises:
            RelayRejectedError: Relay refused the operation
            ExternalServiceError: Relay unreachable
        """
        try:
            return await self.builder.submit(user_op_hash, signature)
        except RelayRejectedError as e:
            await self.mark_failed(user_op_hash, e.message)
            raise

    @transaction
    async def mark_failed(self, user_op_hash: str, reason: str) -> None:
        """Fail an operation and its transaction together."""
        await self.user_operations.mark_failed(user_op_hash)
        tx = await self.ledger.transactions.get_by_user_op_hash(user_op_hash)
        if tx is not None and tx.status in TransactionStatus.UNRESOLVED:
            await self.ledger.update_status(
                tx.id, TransactionStatus.FAILED, failure_reason=reason[:500]
            )
            await self.accounts.release_outflow(tx.sender_account_id, tx.amount)

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    @log_operation
    async def reconcile(self, user_op_hash: str) -> Transaction:
        """
        Resolve a submitted operation from its relay receipt.

        An included operation completes its transaction and debits the
        sender; a reverted one fails it and releases the commitment. Without
        a receipt yet, nothing changes.

        Args:
            user_op_hash: Canonical operation hash

        Returns:
            The transaction after reconciliation

        Raises:
            NotFoundError: Unknown operation
            ExternalServiceError: No relay configured or relay unreachable
        """
        op = await self.user_operations.get_fresh(user_op_hash)
        tx = await self.ledger.transactions.get_by_user_op_hash(user_op_hash)
        if not op or not tx:
            raise NotFoundError(
                "UserOperation not found", user_op_hash=mask_tx_hash(user_op_hash)
            )
        if (
            tx.status not in TransactionStatus.UNRESOLVED
            or op.status != UserOperationStatus.SUBMITTED
        ):
            return tx

        relay = self.builder.relay
        if relay is None:
            raise ExternalServiceError("No relay configured")
        # Close the read transaction before the relay call
        await self.commit()

        data = await call_with_retry(
            lambda: relay.get_user_operation_receipt(user_op_hash),
            operation_name="get_user_operation_receipt",
            max_retries=self.settings.external_max_retries,
            timeout=self.settings.external_call_timeout,
        )
        if not data:
            return await self.ledger.get(tx.id)

        receipt = UserOperationReceipt.from_rpc(data)
        return await self._apply_receipt(op, tx.id, receipt)

    @transaction
    async def _apply_receipt(
        self, op: UserOperation, transaction_id: int, receipt: UserOperationReceipt
    ) -> Transaction:
        extra = {
            "transaction_hash": receipt.transaction_hash,
            "block_number": receipt.block_number,
        }
        if receipt.actual_gas_cost is not None:
            extra["gas_cost_wei"] = receipt.actual_gas_cost

        if receipt.success:
            await self.user_operations.mark_confirmed(
                op.user_op_hash, receipt.transaction_hash
            )
            tx = await self.ledger.update_status(
                transaction_id, TransactionStatus.COMPLETED, **extra
            )
            await self.accounts.settle_outflow(tx.sender_account_id, tx.amount)
            if op.init_code not in ("", "0x"):
                await self.accounts.mark_deployed(op.account_id)
        else:
            await self.user_operations.mark_failed(
                op.user_op_hash, receipt.transaction_hash
            )
            tx = await self.ledger.update_status(
                transaction_id,
                TransactionStatus.FAILED,
                failure_reason=(receipt.reason or "UserOperation reverted")[:500],
                **extra,
            )
            await self.accounts.release_outflow(tx.sender_account_id, tx.amount)

        self.logger.info(
            f"Direct transfer {transaction_id} resolved as {tx.status}",
            extra={
                "transaction_id": transaction_id,
                "user_op_hash": mask_tx_hash(op.user_op_hash),
                "block_number": receipt.block_number,
            },
        )
        return tx

    async def reconcile_stale(
        self, older_than: datetime, limit: int = 100
    ) -> ReconcileResult:
        """
        Reconcile unresolved direct transfers untouched since older_than.

        A failure on one row is logged and counted; the rest still run.
        """
        stale = await self.ledger.find_stale(older_than, limit=limit)
        await self.commit()

        confirmed = failed = pending = errors = 0
        for tx in stale:
            if tx.type != TransactionType.DIRECT or not tx.user_op_hash:
                pending += 1
                continue
            try:
                resolved = await self.reconcile(tx.user_op_hash)
            except PaymentError as e:
                self.logger.error(
                    f"Failed to reconcile transaction {tx.id}: {e.message}",
                    extra={"transaction_id": tx.id, "error": e.code},
                )
                errors += 1
                continue

            if resolved.status == TransactionStatus.COMPLETED:
                confirmed += 1
            elif resolved.status == TransactionStatus.FAILED:
                failed += 1
            else:
                pending += 1

        return ReconcileResult(
            examined=len(stale),
            confirmed=confirmed,
            failed=failed,
            pending=pending,
            errors=errors,
        )

    @log_operation
    @transaction
    async def cancel(
        self,
        transaction_id: int,
        requesting_account_id: int,
        reason: str | None = None,
    ) -> Transaction:
        """
        Cancel a direct transfer that has not reached the relay.

        Raises:
            NotFoundError: Unknown transaction
            ValidationError: Requester is not the sender, or not a direct
                transfer
            ConflictError: Already submitted or resolved
        """
        tx = await self.ledger.get(transaction_id)

        if tx.sender_account_id != requesting_account_id:
            raise ValidationError(
                "Only the sender can cancel this transaction",
                transaction_id=transaction_id,
                account_id=requesting_account_id,
            )
        if tx.type != TransactionType.DIRECT:
            raise ValidationError(
                "Only direct transfers can be cancelled here",
                transaction_id=transaction_id,
            )
        if tx.status not in TransactionStatus.UNRESOLVED:
            raise ConflictError(
                f"Transaction is already {tx.status.lower()}",
                transaction_id=transaction_id,
                current_status=tx.status,
            )

        op = await self.user_operations.get_fresh(tx.user_op_hash)
        if op is not None and op.status != UserOperationStatus.PENDING:
            raise ConflictError(
                "Transaction was already submitted to the network",
                transaction_id=transaction_id,
                current_status=op.status,
            )

        await self.user_operations.mark_failed(tx.user_op_hash)
        tx = await self.ledger.update_status(
            transaction_id,
            TransactionStatus.CANCELLED,
            failure_reason=reason or CancelReason.SENDER_REQUEST,
        )
        await self.accounts.release_outflow(tx.sender_account_id, tx.amount)

        self.logger.info(
            "Direct transfer cancelled",
            extra={"transaction_id": transaction_id, "account_id": requesting_account_id},
        )
        return tx

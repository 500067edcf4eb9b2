"""
Escrow payment ledger.

Owns create / claim / cancel / expire for deferred (email and phone)
payments. One implementation serves both channels; identifier rules come
from the channel strategy.

Every money-moving operation is one atomic unit touching four ledgers:
the sender's escrow commitment, the pending aggregate of the recipient
identifier, the escrow row and its linked transaction. The escrow status
change is a conditional UPDATE guarded by the non-terminal statuses, so of
two concurrent claim / cancel / expire calls exactly one wins and the other
sees the winner's status.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from paylink.config.settings import Settings
from paylink.models.enums import (
    CancelReason,
    EngagementEvent,
    EscrowStatus,
    TransactionStatus,
    TransactionType,
)
from paylink.models.escrow_payment import EscrowPayment
from paylink.models.transaction import Transaction
from paylink.repositories.account_repository import AccountRepository
from paylink.repositories.escrow_payment_repository import EscrowPaymentRepository
from paylink.repositories.pending_aggregate_repository import (
    PendingAggregateRepository,
)
from paylink.services.balance_service import BalanceService
from paylink.services.base_service import BaseService, log_operation, transaction
from paylink.services.escrow.channels import get_strategy
from paylink.services.escrow.views import (
    DEFAULT_SENDER_NAME,
    EscrowResult,
    PublicEscrowView,
    SweepResult,
)
from paylink.services.interfaces import BalanceProvider, Notifier
from paylink.services.transaction_ledger import TransactionLedger
from paylink.utils.datetime_utils import add_days, ensure_utc, utc_now
from paylink.utils.exceptions import (
    ConflictError,
    EscrowExpiredError,
    InsufficientFundsError,
    NotFoundError,
    PaymentError,
    ValidationError,
)
from paylink.utils.retry import with_timeout
from paylink.utils.security import generate_tracking_id, mask_identifier
from paylink.validators.unified import validate_amount


class EscrowPaymentLedger(BaseService):
    """Deferred payment lifecycle for email and phone recipients."""

    def __init__(
        self,
        session: AsyncSession,
        settings: Settings,
        notifier: Notifier | None = None,
        balance_provider: BalanceProvider | None = None,
    ) -> None:
        super().__init__(session)
        self.settings = settings
        self.notifier = notifier
        self.balances = BalanceService(session, settings, balance_provider)
        self.accounts = AccountRepository(session)
        self.escrows = EscrowPaymentRepository(session)
        self.aggregates = PendingAggregateRepository(session)
        self.ledger = TransactionLedger(session)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    @log_operation
    async def create(
        self,
        sender_account_id: int,
        channel: str,
        recipient_identifier: str,
        amount: Decimal,
        message: str | None = None,
        expiration_days: int | None = None,
        note: str | None = None,
    ) -> EscrowResult:
        """
        Hold value for an email or phone recipient.

        Args:
            sender_account_id: Sender account ID
            channel: EscrowChannel.EMAIL or EscrowChannel.PHONE
            recipient_identifier: Raw email or phone
            amount: Amount, > 0 with at most 6 decimals
            message: Personal message shown to the recipient
            expiration_days: Validity in days (settings default when None)
            note: Private reference note

        Returns:
            EscrowResult with the PENDING (or DELIVERED) escrow and its
            IN_ESCROW transaction

        Raises:
            ValidationError: Bad channel, identifier, amount or expiration
            NotFoundError: Unknown sender
            InsufficientFundsError: Available balance below amount
        """
        strategy = get_strategy(channel)
        identifier = strategy.normalize(recipient_identifier)

        is_valid, value, error = validate_amount(amount)
        if not is_valid:
            raise ValidationError(error, amount=str(amount))

        days = self._resolve_expiration_days(expiration_days)

        await self._refresh_sender_balance(sender_account_id)
        escrow, tx = await self._create_atomic(
            sender_account_id, channel, identifier, value, message, days, note
        )

        self.logger.info(
            "Escrow created",
            extra={
                "escrow_id": escrow.id,
                "channel": channel,
                "recipient": mask_identifier(identifier),
                "amount": str(value),
                "expires_at": escrow.expires_at.isoformat(),
            },
        )

        escrow = await self._notify(escrow)
        return EscrowResult(escrow=escrow, transaction=tx)

    async def _refresh_sender_balance(self, sender_account_id: int) -> None:
        sender = await self.accounts.get_fresh(sender_account_id)
        if not sender:
            raise NotFoundError(
                "Sender account not found", account_id=sender_account_id
            )
        # Close the read transaction before the provider call
        await self.commit()
        await self.balances.refresh(sender)

    def _resolve_expiration_days(self, expiration_days: int | None) -> int:
        if expiration_days is None:
            return self.settings.default_expiration_days
        if (
            isinstance(expiration_days, bool)
            or not isinstance(expiration_days, int)
            or not 1 <= expiration_days <= self.settings.max_expiration_days
        ):
            raise ValidationError(
                f"Expiration must be between 1 and "
                f"{self.settings.max_expiration_days} days",
                expiration_days=expiration_days,
            )
        return expiration_days

    @transaction
    async def _create_atomic(
        self,
        sender_account_id: int,
        channel: str,
        identifier: str,
        amount: Decimal,
        message: str | None,
        days: int,
        note: str | None,
    ) -> tuple[EscrowPayment, Transaction]:
        sender = await self.accounts.get_by_id(sender_account_id)
        if not sender:
            raise NotFoundError(
                "Sender account not found", account_id=sender_account_id
            )

        # Informational only: claim re-checks the claiming account
        recipient = await get_strategy(channel).find_account(
            self.accounts, identifier
        )

        if not await self.accounts.reserve_escrow(sender_account_id, amount):
            fresh = await self.accounts.get_fresh(sender_account_id)
            raise InsufficientFundsError(
                "Insufficient available balance",
                account_id=sender_account_id,
                available=str(fresh.available_balance),
                requested=str(amount),
            )

        now = utc_now()
        escrow = await self.escrows.create(
            channel=channel,
            sender_account_id=sender_account_id,
            recipient_identifier=identifier,
            recipient_account_id=recipient.id if recipient else None,
            amount=amount,
            status=EscrowStatus.PENDING,
            tracking_id=generate_tracking_id(),
            personal_message=message,
            reference_note=note,
            created_at=now,
            expires_at=add_days(now, days),
        )

        await self.aggregates.add(identifier, channel, amount)

        tx = await self.ledger.create(
            type=TransactionType.ESCROW_HOLD,
            status=TransactionStatus.IN_ESCROW,
            amount=amount,
            sender_account_id=sender_account_id,
            recipient_identifier=identifier,
            escrow_payment_id=escrow.id,
            reference_note=note,
        )

        return escrow, tx

    async def _notify(self, escrow: EscrowPayment) -> EscrowPayment:
        """
        Hand the claim link to the notifier. Best-effort.

        Runs after the escrow is committed; a failure is logged and leaves
        the escrow PENDING.
        """
        if self.notifier is None:
            return escrow

        try:
            await with_timeout(
                self.notifier.send_claim_link(
                    channel=escrow.channel,
                    identifier=escrow.recipient_identifier,
                    tracking_id=escrow.tracking_id,
                    amount=escrow.amount,
                    message=escrow.personal_message,
                    expires_at=ensure_utc(escrow.expires_at),
                ),
                timeout=self.settings.external_call_timeout,
                operation_name="send_claim_link",
            )
        except Exception as e:
            self.logger.warning(
                f"Claim link delivery failed for escrow {escrow.id}: {e}",
                extra={"escrow_id": escrow.id, "error": str(e)},
            )
            return escrow

        return await self._advance_engagement(escrow, EscrowStatus.DELIVERED)

    # ------------------------------------------------------------------
    # Claim
    # ------------------------------------------------------------------

    @log_operation
    @transaction
    async def claim(
        self, escrow_id: int, claiming_account_id: int
    ) -> EscrowResult:
        """
        Release an escrow to the account that owns its identifier.

        Preconditions, first failure wins: escrow exists, claiming account
        exists, identifier matches, not claimed, not cancelled or expired,
        validity window still open.

        Raises:
            NotFoundError: Unknown escrow or claiming account
            ValidationError: Identifier does not belong to the account
            ConflictError: Escrow already claimed, cancelled or expired
            EscrowExpiredError: expires_at <= now
            InsufficientFundsError: Sender balance no longer covers the amount
        """
        escrow = await self._get_for_update(escrow_id)

        account = await self.accounts.get_by_id(claiming_account_id)
        if not account:
            raise NotFoundError(
                "Claiming account not found", account_id=claiming_account_id
            )

        strategy = get_strategy(escrow.channel)
        if not strategy.matches(account, escrow.recipient_identifier):
            raise ValidationError(
                "This payment was sent to a different recipient",
                escrow_id=escrow_id,
                account_id=claiming_account_id,
            )

        self._ensure_claimable(escrow)

        now = utc_now()
        if escrow.is_expired(now):
            raise EscrowExpiredError(
                "This payment has expired",
                escrow_id=escrow_id,
                expires_at=escrow.expires_at.isoformat(),
            )

        won = await self.escrows.transition(
            escrow_id,
            EscrowStatus.NON_TERMINAL,
            EscrowStatus.CLAIMED,
            claimed_at=now,
            recipient_account_id=claiming_account_id,
        )
        if not won:
            await self._raise_lost_race(escrow_id)

        if not await self.accounts.settle_escrow(
            escrow.sender_account_id, escrow.amount
        ):
            raise InsufficientFundsError(
                "The sender no longer holds the funds for this payment",
                escrow_id=escrow_id,
                account_id=escrow.sender_account_id,
            )
        await self.accounts.credit_balance(claiming_account_id, escrow.amount)
        await self.aggregates.subtract(escrow.recipient_identifier, escrow.amount)

        tx = await self._linked_transaction(escrow_id)
        tx = await self.ledger.update_status(
            tx.id,
            TransactionStatus.COMPLETED,
            recipient_account_id=claiming_account_id,
            completed_at=now,
        )

        self.logger.info(
            "Escrow claimed",
            extra={
                "escrow_id": escrow_id,
                "account_id": claiming_account_id,
                "amount": str(escrow.amount),
            },
        )

        return EscrowResult(
            escrow=await self.escrows.get_fresh(escrow_id), transaction=tx
        )

    @log_operation
    async def claim_by_tracking_id(
        self, tracking_id: str, claiming_account_id: int
    ) -> EscrowResult:
        """Claim an escrow addressed by its public token."""
        escrow = await self.get_by_tracking_id(tracking_id)
        # Close the lookup read before the atomic claim
        await self.commit()
        return await self.claim(escrow.id, claiming_account_id)

    @staticmethod
    def _ensure_claimable(escrow: EscrowPayment) -> None:
        if escrow.status == EscrowStatus.CLAIMED:
            raise ConflictError(
                "This payment has already been claimed",
                escrow_id=escrow.id,
                current_status=escrow.status,
            )
        if escrow.status in (EscrowStatus.CANCELLED, EscrowStatus.EXPIRED):
            raise ConflictError(
                f"This payment is {escrow.status.lower()}",
                escrow_id=escrow.id,
                current_status=escrow.status,
            )

    # ------------------------------------------------------------------
    # Cancel / expire
    # ------------------------------------------------------------------

    @log_operation
    @transaction
    async def cancel(
        self,
        escrow_id: int,
        requesting_account_id: int,
        reason: str | None = None,
    ) -> EscrowResult:
        """
        Return an unclaimed escrow to its sender.

        Raises:
            NotFoundError: Unknown escrow
            ValidationError: Requester is not the sender
            ConflictError: Escrow already claimed, cancelled or expired
        """
        escrow = await self._get_for_update(escrow_id)

        if escrow.sender_account_id != requesting_account_id:
            raise ValidationError(
                "Only the sender can cancel this payment",
                escrow_id=escrow_id,
                account_id=requesting_account_id,
            )

        if escrow.status == EscrowStatus.CLAIMED:
            raise ConflictError(
                "This payment has already been claimed",
                escrow_id=escrow_id,
                current_status=escrow.status,
            )
        if escrow.is_terminal:
            raise ConflictError(
                f"This payment is already {escrow.status.lower()}",
                escrow_id=escrow_id,
                current_status=escrow.status,
            )

        won = await self._reverse(
            escrow,
            EscrowStatus.CANCELLED,
            reason or CancelReason.SENDER_REQUEST,
            cancelled_by=requesting_account_id,
        )
        if not won:
            await self._raise_lost_race(escrow_id)

        self.logger.info(
            "Escrow cancelled",
            extra={
                "escrow_id": escrow_id,
                "account_id": requesting_account_id,
                "reason": reason or CancelReason.SENDER_REQUEST,
            },
        )

        return EscrowResult(
            escrow=await self.escrows.get_fresh(escrow_id),
            transaction=await self._linked_transaction(escrow_id),
        )

    async def _reverse(
        self,
        escrow: EscrowPayment,
        to_status: str,
        reason: str,
        cancelled_by: int | None = None,
    ) -> bool:
        """
        Undo an escrow hold inside the caller's atomic unit.

        Returns:
            False if another writer already moved the escrow to a sink
        """
        won = await self.escrows.transition(
            escrow.id,
            EscrowStatus.NON_TERMINAL,
            to_status,
            cancelled_at=utc_now(),
            cancel_reason=reason,
            cancelled_by_account_id=cancelled_by,
        )
        if not won:
            return False

        await self.accounts.release_escrow(escrow.sender_account_id, escrow.amount)
        await self.aggregates.subtract(escrow.recipient_identifier, escrow.amount)

        tx = await self._linked_transaction(escrow.id)
        await self.ledger.update_status(
            tx.id, TransactionStatus.CANCELLED, failure_reason=reason
        )
        return True

    async def sweep_expired(
        self,
        now: datetime | None = None,
        batch_size: int | None = None,
    ) -> SweepResult:
        """
        Expire every non-terminal escrow whose expires_at <= now.

        Each row is its own atomic unit guarded by the status precondition,
        so rows already resolved by a concurrent sweep, claim or cancel are
        skipped. Safe to run repeatedly and concurrently.

        Args:
            now: Reference time (current UTC time when None)
            batch_size: Rows fetched per batch

        Returns:
            SweepResult with examined, expired and skipped counts
        """
        now = now or utc_now()
        batch_size = batch_size or self.settings.sweep_batch_size

        examined = expired = skipped = 0

        while True:
            batch = await self.escrows.find_expired(now, limit=batch_size)
            await self.commit()
            if not batch:
                break

            progress = 0
            for escrow in batch:
                examined += 1
                try:
                    swept = await self._expire_one(escrow.id)
                except PaymentError as e:
                    self.logger.error(
                        f"Failed to expire escrow {escrow.id}: {e.message}",
                        extra={"escrow_id": escrow.id, "error": e.code},
                    )
                    swept = False

                if swept:
                    expired += 1
                    progress += 1
                else:
                    skipped += 1

            if progress == 0 or len(batch) < batch_size:
                break

        result = SweepResult(examined=examined, expired=expired, skipped=skipped)
        if examined:
            self.logger.info(
                f"Expiry sweep: {expired} expired, {skipped} skipped",
                extra={"examined": examined, "expired": expired, "skipped": skipped},
            )
        return result

    @transaction
    async def _expire_one(self, escrow_id: int) -> bool:
        escrow = await self.escrows.get_fresh(escrow_id)
        if not escrow or escrow.is_terminal:
            return False
        return await self._reverse(escrow, EscrowStatus.EXPIRED, CancelReason.EXPIRED)

    # ------------------------------------------------------------------
    # Engagement (informational)
    # ------------------------------------------------------------------

    @log_operation
    async def record_engagement(self, tracking_id: str, event: str) -> EscrowPayment:
        """
        Record delivery / open / click of a claim link.

        Moves forward through PENDING -> DELIVERED -> OPENED -> CLICKED only
        and never touches a terminal escrow or any balance. Stale or
        repeated events are no-ops.

        Raises:
            ValidationError: Unknown event
            NotFoundError: Unknown tracking id
        """
        target = EngagementEvent.TO_STATUS.get(event)
        if target is None:
            raise ValidationError(f"Unknown engagement event: {event}")

        escrow = await self.get_by_tracking_id(tracking_id)
        return await self._advance_engagement(escrow, target)

    async def _advance_engagement(
        self, escrow: EscrowPayment, target: str
    ) -> EscrowPayment:
        order = EscrowStatus.ENGAGEMENT_ORDER
        earlier = tuple(s for s in EscrowStatus.NON_TERMINAL if order[s] < order[target])
        timestamp_column = f"{target.lower()}_at"

        await self.escrows.transition(
            escrow.id, earlier, target, **{timestamp_column: utc_now()}
        )
        await self.commit()
        return await self.escrows.get_fresh(escrow.id)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, escrow_id: int) -> EscrowPayment:
        """
        Get escrow by ID.

        Raises:
            NotFoundError: Unknown escrow
        """
        escrow = await self.escrows.get_fresh(escrow_id)
        if not escrow:
            raise NotFoundError("Payment not found", escrow_id=escrow_id)
        return escrow

    async def get_by_tracking_id(self, tracking_id: str) -> EscrowPayment:
        """
        Get escrow by its public token.

        Raises:
            NotFoundError: Unknown tracking id
        """
        escrow = None
        if tracking_id:
            escrow = await self.escrows.get_by_tracking_id(tracking_id)
        if not escrow:
            raise NotFoundError("Payment not found")
        return escrow

    async def get_public_view(self, tracking_id: str) -> PublicEscrowView:
        """
        Redacted view for an unauthenticated tracking-id holder.

        An escrow past its expiry that the sweep has not reached yet is
        reported as EXPIRED.
        """
        escrow = await self.get_by_tracking_id(tracking_id)
        sender = await self.accounts.get_by_id(escrow.sender_account_id)

        status = escrow.status
        if not escrow.is_terminal and escrow.is_expired(utc_now()):
            status = EscrowStatus.EXPIRED

        return PublicEscrowView(
            amount=escrow.amount,
            currency=self.settings.token_symbol,
            message=escrow.personal_message,
            sender_display_name=(
                sender.display_name if sender and sender.display_name
                else DEFAULT_SENDER_NAME
            ),
            status=status,
            expires_at=ensure_utc(escrow.expires_at),
            channel=escrow.channel,
        )

    async def list_for_account(
        self,
        account_id: int,
        role: str = "all",
        status: str | None = None,
        page: int = 1,
        per_page: int = 50,
    ) -> tuple[list[EscrowPayment], int]:
        """
        Escrows an account sent, can claim, or both.

        Args:
            account_id: Account ID
            role: "sent", "received" or "all"
            status: Optional status filter
            page: Page number (1-indexed)
            per_page: Items per page

        Raises:
            NotFoundError: Unknown account
            ValidationError: Unknown role
        """
        if role not in ("sent", "received", "all"):
            raise ValidationError(f"Unknown role: {role}")

        account = await self.accounts.get_by_id(account_id)
        if not account:
            raise NotFoundError("Account not found", account_id=account_id)

        identifiers = [i for i in (account.email, account.phone) if i]
        return await self.escrows.list_for_account(
            account_id,
            identifiers,
            role=role,
            status=status,
            page=page,
            per_page=per_page,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _get_for_update(self, escrow_id: int) -> EscrowPayment:
        escrow = await self.escrows.get_fresh(escrow_id)
        if not escrow:
            raise NotFoundError("Payment not found", escrow_id=escrow_id)
        return escrow

    async def _linked_transaction(self, escrow_id: int) -> Transaction:
        tx = await self.ledger.transactions.get_by_escrow_id(escrow_id)
        if not tx:
            raise NotFoundError(
                "Escrow transaction record missing", escrow_id=escrow_id
            )
        return tx

    async def _raise_lost_race(self, escrow_id: int) -> None:
        latest = await self.escrows.get_fresh(escrow_id)
        raise ConflictError(
            f"This payment is already {latest.status.lower()}",
            escrow_id=escrow_id,
            current_status=latest.status,
        )

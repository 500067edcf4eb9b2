"""
Send router.

Validates a send, consults the limits checker, classifies the recipient and
dispatches to the direct or escrow path. Nothing is written before all
checks pass; each successful call produces exactly one transaction (plus
one escrow for email and phone recipients).
"""

from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from paylink.config.constants import MAX_MESSAGE_LENGTH
from paylink.config.settings import Settings
from paylink.models.enums import EscrowChannel
from paylink.models.escrow_payment import EscrowPayment
from paylink.models.transaction import Transaction
from paylink.models.user_operation import UserOperation
from paylink.services.base_service import BaseService, log_operation
from paylink.services.direct_transfer_service import DirectTransferService
from paylink.services.escrow.ledger import EscrowPaymentLedger
from paylink.services.interfaces import LimitsChecker
from paylink.services.recipient_classifier import RecipientKind, classify
from paylink.utils.exceptions import ValidationError
from paylink.validators.unified import validate_amount


@dataclass(frozen=True)
class SendOptions:
    """
    Optional fields of a send.

    expiration_days applies to email and phone recipients only; None means
    the configured default.
    """

    message: str | None = None
    note: str | None = None
    expiration_days: int | None = None


@dataclass(frozen=True)
class SendResult:
    """
    Outcome of a send, tagged by channel.

    WALLET sends carry user_operation; EMAIL and PHONE sends carry escrow
    and tracking_id.
    """

    channel: str
    transaction: Transaction
    escrow: EscrowPayment | None = None
    tracking_id: str | None = None
    user_operation: UserOperation | None = None


_ESCROW_CHANNELS = {
    RecipientKind.EMAIL: EscrowChannel.EMAIL,
    RecipientKind.PHONE: EscrowChannel.PHONE,
}


class SendRouter(BaseService):
    """Entry point for all sends."""

    def __init__(
        self,
        session: AsyncSession,
        settings: Settings,
        limits_checker: LimitsChecker,
        direct: DirectTransferService,
        escrow: EscrowPaymentLedger,
    ) -> None:
        super().__init__(session)
        self.settings = settings
        self.limits_checker = limits_checker
        self.direct = direct
        self.escrow = escrow

    @log_operation
    async def send(
        self,
        account_id: int,
        recipient: str,
        amount: str | Decimal,
        options: SendOptions | None = None,
    ) -> SendResult:
        """
        Send value to a wallet, email or phone recipient.

        Args:
            account_id: Sender account ID
            recipient: Raw recipient (address, email or phone)
            amount: Amount, > 0 with at most 6 decimals
            options: Message, note and expiration

        Returns:
            SendResult for the selected channel

        Raises:
            ValidationError: Bad amount, options, recipient or a limit denial
        """
        options = options or SendOptions()

        is_valid, value, error = validate_amount(amount)
        if not is_valid:
            raise ValidationError(error, amount=str(amount))

        self._validate_options(options)

        decision = await self.limits_checker.check(account_id, value)
        if not decision.allowed:
            raise ValidationError(
                decision.reason or "Transaction limit exceeded",
                account_id=account_id,
            )
        # Close any read transaction left by the limits check
        await self.commit()

        target = classify(recipient)

        if target.kind == RecipientKind.WALLET:
            result = await self.direct.send(
                account_id, target.value, value, note=options.note
            )
            return SendResult(
                channel=RecipientKind.WALLET,
                transaction=result.transaction,
                user_operation=result.user_operation,
            )

        channel = _ESCROW_CHANNELS.get(target.kind)
        if channel is None:
            raise ValidationError(
                "Recipient must be a wallet address, email or phone number"
            )

        result = await self.escrow.create(
            account_id,
            channel,
            target.value,
            value,
            message=options.message,
            expiration_days=options.expiration_days,
            note=options.note,
        )
        return SendResult(
            channel=target.kind,
            transaction=result.transaction,
            escrow=result.escrow,
            tracking_id=result.escrow.tracking_id,
        )

    def _validate_options(self, options: SendOptions) -> None:
        if options.message is not None and len(options.message) > MAX_MESSAGE_LENGTH:
            raise ValidationError(
                f"Message is too long (maximum {MAX_MESSAGE_LENGTH} characters)"
            )

        days = options.expiration_days
        if days is not None and (
            isinstance(days, bool)
            or not isinstance(days, int)
            or not 1 <= days <= self.settings.max_expiration_days
        ):
            raise ValidationError(
                f"Expiration must be between 1 and "
                f"{self.settings.max_expiration_days} days",
                expiration_days=days,
            )

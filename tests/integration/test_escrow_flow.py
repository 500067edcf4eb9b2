"""Integration tests for escrow payments against SQLite."""

import asyncio
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import update

from paylink.models.enums import EscrowStatus, TransactionStatus, TransactionType
from paylink.models.escrow_payment import EscrowPayment
from paylink.repositories.account_repository import AccountRepository
from paylink.repositories.pending_aggregate_repository import PendingAggregateRepository
from paylink.services.payment_service import PaymentService
from paylink.utils.datetime_utils import ensure_utc, utc_now
from paylink.utils.exceptions import (
    ConflictError,
    EscrowExpiredError,
    InsufficientFundsError,
    NotFoundError,
    ValidationError,
)

RECIPIENT_EMAIL = "user@example.com"


async def _aggregate(session_maker, identifier):
    async with session_maker() as s:
        return await PendingAggregateRepository(s).get_by_identifier(identifier)


async def _backdate(session_maker, escrow_id, expires_at):
    async with session_maker() as s:
        await s.execute(
            update(EscrowPayment)
            .where(EscrowPayment.id == escrow_id)
            .values(expires_at=expires_at)
        )
        await s.commit()


class TestCreate:
    """Escrow creation."""

    @pytest.mark.asyncio
    async def test_send_to_unregistered_email(
        self, payment_service, make_account, load_account, session_maker
    ):
        """Sending 50.00 to an unknown email holds it in escrow."""
        sender = await make_account()

        result = await payment_service.send(sender.id, RECIPIENT_EMAIL, "50.00")

        assert result.channel == "EMAIL"
        assert result.escrow.status == EscrowStatus.PENDING
        assert result.escrow.recipient_account_id is None
        assert len(result.tracking_id) >= 32
        assert result.transaction.type == TransactionType.ESCROW_HOLD
        assert result.transaction.status == TransactionStatus.IN_ESCROW

        account = await load_account(sender.id)
        assert account.escrow_held == Decimal("50")
        assert account.available_balance == Decimal("50")

        aggregate = await _aggregate(session_maker, RECIPIENT_EMAIL)
        assert aggregate.total_amount == Decimal("50")
        assert aggregate.payment_count == 1

    @pytest.mark.asyncio
    async def test_default_and_custom_expiration(self, payment_service, make_account):
        sender = await make_account()

        default = await payment_service.send(sender.id, RECIPIENT_EMAIL, "1")
        custom = await payment_service.send(
            sender.id, RECIPIENT_EMAIL, "1", expiration_days=3
        )

        default_window = ensure_utc(default.escrow.expires_at) - ensure_utc(
            default.escrow.created_at
        )
        custom_window = ensure_utc(custom.escrow.expires_at) - ensure_utc(
            custom.escrow.created_at
        )
        assert default_window == timedelta(days=30)
        assert custom_window == timedelta(days=3)

    @pytest.mark.asyncio
    async def test_insufficient_available_balance(
        self, payment_service, make_account, load_account, session_maker
    ):
        sender = await make_account(balance=Decimal("60"))
        await payment_service.send(sender.id, RECIPIENT_EMAIL, "50")

        with pytest.raises(InsufficientFundsError):
            await payment_service.send(sender.id, "other@example.com", "20")

        account = await load_account(sender.id)
        assert account.escrow_held == Decimal("50")
        assert await _aggregate(session_maker, "other@example.com") is None

    @pytest.mark.asyncio
    async def test_limit_denial_writes_nothing(
        self, payment_service, make_account, load_account
    ):
        sender = await make_account(single_tx_limit=Decimal("10"))

        with pytest.raises(ValidationError):
            await payment_service.send(sender.id, RECIPIENT_EMAIL, "20")

        history, total = await payment_service.get_transaction_history(sender.id)
        assert total == 0
        assert (await load_account(sender.id)).escrow_held == 0

    @pytest.mark.asyncio
    async def test_notifier_marks_delivered(
        self, payment_context, mock_notifier, make_account
    ):
        payment_context.notifier = mock_notifier
        service = PaymentService(payment_context)
        sender = await make_account()

        result = await service.send(sender.id, RECIPIENT_EMAIL, "5", message="Lunch")

        assert result.escrow.status == EscrowStatus.DELIVERED
        kwargs = mock_notifier.send_claim_link.await_args.kwargs
        assert kwargs["identifier"] == RECIPIENT_EMAIL
        assert kwargs["tracking_id"] == result.tracking_id
        assert kwargs["message"] == "Lunch"

    @pytest.mark.asyncio
    async def test_notifier_failure_keeps_escrow(
        self, payment_context, mock_notifier, make_account
    ):
        mock_notifier.send_claim_link.side_effect = ConnectionError("smtp down")
        payment_context.notifier = mock_notifier
        service = PaymentService(payment_context)
        sender = await make_account()

        result = await service.send(sender.id, RECIPIENT_EMAIL, "5")

        assert result.escrow.status == EscrowStatus.PENDING
        assert result.transaction.status == TransactionStatus.IN_ESCROW


class TestClaim:
    """Escrow claims."""

    @pytest.mark.asyncio
    async def test_claim_by_tracking_id(
        self, payment_service, make_account, load_account, session_maker
    ):
        """Recipient registers and claims: escrow CLAIMED, transaction COMPLETED."""
        sender = await make_account()
        sent = await payment_service.send(sender.id, RECIPIENT_EMAIL, "50.00")
        recipient = await make_account(email=RECIPIENT_EMAIL, balance=Decimal("0"))

        result = await payment_service.claim(sent.tracking_id, recipient.id)

        assert result.escrow.status == EscrowStatus.CLAIMED
        assert result.escrow.claimed_at is not None
        assert result.escrow.recipient_account_id == recipient.id
        assert result.transaction.status == TransactionStatus.COMPLETED
        assert result.transaction.recipient_account_id == recipient.id
        assert result.transaction.completed_at is not None

        sender_after = await load_account(sender.id)
        assert sender_after.escrow_held == 0
        assert sender_after.balance == Decimal("50")
        assert (await load_account(recipient.id)).balance == Decimal("50")

        aggregate = await _aggregate(session_maker, RECIPIENT_EMAIL)
        assert aggregate.total_amount == 0
        assert aggregate.payment_count == 0

    @pytest.mark.asyncio
    async def test_claim_by_id_phone(self, payment_service, make_account):
        sender = await make_account()
        sent = await payment_service.send(sender.id, "(415) 555-0123", "5")
        recipient = await make_account(phone="+14155550123")

        result = await payment_service.claim(sent.escrow.id, recipient.id)

        assert sent.channel == "PHONE"
        assert result.escrow.status == EscrowStatus.CLAIMED

    @pytest.mark.asyncio
    async def test_double_claim_conflicts(self, payment_service, make_account):
        sender = await make_account()
        sent = await payment_service.send(sender.id, RECIPIENT_EMAIL, "5")
        recipient = await make_account(email=RECIPIENT_EMAIL)

        await payment_service.claim(sent.escrow.id, recipient.id)

        with pytest.raises(ConflictError) as exc_info:
            await payment_service.claim(sent.escrow.id, recipient.id)
        assert exc_info.value.context["current_status"] == EscrowStatus.CLAIMED

    @pytest.mark.asyncio
    async def test_concurrent_double_claim_one_winner(
        self, payment_service, make_account, load_account
    ):
        sender = await make_account()
        sent = await payment_service.send(sender.id, RECIPIENT_EMAIL, "40")
        recipient = await make_account(email=RECIPIENT_EMAIL, balance=Decimal("0"))

        results = await asyncio.gather(
            payment_service.claim(sent.escrow.id, recipient.id),
            payment_service.claim(sent.tracking_id, recipient.id),
            return_exceptions=True,
        )

        wins = [r for r in results if not isinstance(r, Exception)]
        conflicts = [r for r in results if isinstance(r, ConflictError)]
        assert len(wins) == 1
        assert len(conflicts) == 1

        # Credited exactly once
        assert (await load_account(recipient.id)).balance == Decimal("40")
        assert (await load_account(sender.id)).escrow_held == 0

    @pytest.mark.asyncio
    async def test_claim_racing_cancel_one_winner(
        self, payment_service, make_account, load_account, session_maker
    ):
        sender = await make_account()
        sent = await payment_service.send(sender.id, RECIPIENT_EMAIL, "40")
        recipient = await make_account(email=RECIPIENT_EMAIL, balance=Decimal("0"))

        claimed, cancelled = await asyncio.gather(
            payment_service.claim(sent.escrow.id, recipient.id),
            payment_service.cancel(sent.escrow.id, sender.id),
            return_exceptions=True,
        )

        outcomes = [r for r in (claimed, cancelled) if not isinstance(r, Exception)]
        assert len(outcomes) == 1
        assert sum(isinstance(r, ConflictError) for r in (claimed, cancelled)) == 1

        escrow = await payment_service.get_escrow(sent.escrow.id)
        sender_after = await load_account(sender.id)
        recipient_after = await load_account(recipient.id)
        assert sender_after.escrow_held == 0
        if escrow.status == EscrowStatus.CLAIMED:
            assert sender_after.balance == Decimal("60")
            assert recipient_after.balance == Decimal("40")
        else:
            assert escrow.status == EscrowStatus.CANCELLED
            assert sender_after.balance == Decimal("100")
            assert recipient_after.balance == 0
        assert (await _aggregate(session_maker, RECIPIENT_EMAIL)).total_amount == 0

    @pytest.mark.asyncio
    async def test_claim_after_sender_balance_drop(
        self, payment_service, make_account, load_account
    ):
        """A refreshed balance below the escrow fails the claim cleanly."""
        sender = await make_account(balance=Decimal("100"))
        sent = await payment_service.send(sender.id, RECIPIENT_EMAIL, "100")
        recipient = await make_account(email=RECIPIENT_EMAIL, balance=Decimal("0"))
        async with payment_service.context.session_maker() as s:
            await AccountRepository(s).refresh_balance(sender.id, Decimal("0"), utc_now())
            await s.commit()

        with pytest.raises(InsufficientFundsError):
            await payment_service.claim(sent.escrow.id, recipient.id)

        escrow = await payment_service.get_escrow(sent.escrow.id)
        assert escrow.status == EscrowStatus.PENDING
        assert (await load_account(recipient.id)).balance == 0
        assert (await load_account(sender.id)).escrow_held == Decimal("100")

    @pytest.mark.asyncio
    async def test_identifier_mismatch(self, payment_service, make_account):
        sender = await make_account()
        sent = await payment_service.send(sender.id, RECIPIENT_EMAIL, "5")
        stranger = await make_account(email="stranger@example.com")

        with pytest.raises(ValidationError):
            await payment_service.claim(sent.escrow.id, stranger.id)

    @pytest.mark.asyncio
    async def test_claim_requires_existing_account(self, payment_service, make_account):
        sender = await make_account()
        sent = await payment_service.send(sender.id, RECIPIENT_EMAIL, "5")

        with pytest.raises(NotFoundError):
            await payment_service.claim(sent.escrow.id, 9999)

    @pytest.mark.asyncio
    async def test_unknown_escrow(self, payment_service, make_account):
        recipient = await make_account(email=RECIPIENT_EMAIL)
        with pytest.raises(NotFoundError):
            await payment_service.claim("no-such-token", recipient.id)
        with pytest.raises(NotFoundError):
            await payment_service.claim(12345, recipient.id)


class TestCancel:
    """Sender cancellations."""

    @pytest.mark.asyncio
    async def test_cancel_restores_state(
        self, payment_service, make_account, load_account, session_maker
    ):
        sender = await make_account()
        sent = await payment_service.send(sender.id, RECIPIENT_EMAIL, "50")

        result = await payment_service.cancel(sent.escrow.id, sender.id, "Wrong person")

        assert result.escrow.status == EscrowStatus.CANCELLED
        assert result.escrow.cancel_reason == "Wrong person"
        assert result.escrow.cancelled_by_account_id == sender.id
        assert result.transaction.status == TransactionStatus.CANCELLED

        account = await load_account(sender.id)
        assert account.escrow_held == 0
        assert account.balance == Decimal("100")

        aggregate = await _aggregate(session_maker, RECIPIENT_EMAIL)
        assert aggregate.total_amount == 0
        assert aggregate.payment_count == 0

    @pytest.mark.asyncio
    async def test_only_sender_can_cancel(self, payment_service, make_account):
        sender = await make_account()
        other = await make_account()
        sent = await payment_service.send(sender.id, RECIPIENT_EMAIL, "5")

        with pytest.raises(ValidationError):
            await payment_service.cancel(sent.escrow.id, other.id)

    @pytest.mark.asyncio
    async def test_cancel_after_claim_conflicts(self, payment_service, make_account):
        sender = await make_account()
        sent = await payment_service.send(sender.id, RECIPIENT_EMAIL, "5")
        recipient = await make_account(email=RECIPIENT_EMAIL)
        await payment_service.claim(sent.escrow.id, recipient.id)

        with pytest.raises(ConflictError):
            await payment_service.cancel(sent.escrow.id, sender.id)

    @pytest.mark.asyncio
    async def test_claim_after_cancel_conflicts(self, payment_service, make_account):
        sender = await make_account()
        sent = await payment_service.send(sender.id, RECIPIENT_EMAIL, "5")
        recipient = await make_account(email=RECIPIENT_EMAIL)
        await payment_service.cancel(sent.escrow.id, sender.id)

        with pytest.raises(ConflictError):
            await payment_service.claim(sent.escrow.id, recipient.id)


class TestExpiry:
    """Passive and active expiry."""

    @pytest.mark.asyncio
    async def test_expired_escrow_cannot_be_claimed(
        self, payment_service, make_account, session_maker
    ):
        sender = await make_account()
        sent = await payment_service.send(sender.id, RECIPIENT_EMAIL, "5")
        recipient = await make_account(email=RECIPIENT_EMAIL)
        await _backdate(session_maker, sent.escrow.id, utc_now() - timedelta(seconds=1))

        with pytest.raises(EscrowExpiredError):
            await payment_service.claim(sent.escrow.id, recipient.id)

        view = await payment_service.get_by_tracking_id(sent.tracking_id)
        assert view.status == EscrowStatus.EXPIRED

    @pytest.mark.asyncio
    async def test_sweep_refunds_and_is_idempotent(
        self, payment_service, make_account, load_account, session_maker
    ):
        sender = await make_account()
        overdue = await payment_service.send(sender.id, RECIPIENT_EMAIL, "30")
        current = await payment_service.send(sender.id, RECIPIENT_EMAIL, "20")
        await _backdate(session_maker, overdue.escrow.id, utc_now() - timedelta(hours=1))

        first = await payment_service.sweep_expired()
        second = await payment_service.sweep_expired()

        assert first.expired == 1
        assert second.expired == 0
        assert second.examined == 0

        escrow = await payment_service.get_escrow(overdue.escrow.id)
        assert escrow.status == EscrowStatus.EXPIRED
        assert (await payment_service.get_escrow(current.escrow.id)).status == (
            EscrowStatus.PENDING
        )

        account = await load_account(sender.id)
        assert account.escrow_held == Decimal("20")
        aggregate = await _aggregate(session_maker, RECIPIENT_EMAIL)
        assert aggregate.total_amount == Decimal("20")
        assert aggregate.payment_count == 1

        history, _ = await payment_service.get_transaction_history(
            sender.id, status=TransactionStatus.CANCELLED
        )
        assert [tx.escrow_payment_id for tx in history] == [overdue.escrow.id]

    @pytest.mark.asyncio
    async def test_boundary_expires_at_equal_now_is_expired(
        self, payment_service, make_account
    ):
        """Validity window is [created_at, expires_at)."""
        sender = await make_account()
        sent = await payment_service.send(sender.id, RECIPIENT_EMAIL, "5")
        expires_at = ensure_utc(sent.escrow.expires_at)

        assert not sent.escrow.is_expired(expires_at - timedelta(microseconds=1))
        assert sent.escrow.is_expired(expires_at)

        early = await payment_service.sweep_expired(
            now=expires_at - timedelta(microseconds=1)
        )
        assert early.expired == 0

        exact = await payment_service.sweep_expired(now=expires_at)
        assert exact.expired == 1

    @pytest.mark.asyncio
    async def test_concurrent_sweeps(self, payment_service, make_account, load_account, session_maker):
        sender = await make_account()
        ids = []
        for _ in range(4):
            sent = await payment_service.send(sender.id, RECIPIENT_EMAIL, "5")
            ids.append(sent.escrow.id)
        for escrow_id in ids:
            await _backdate(session_maker, escrow_id, utc_now() - timedelta(minutes=1))

        results = await asyncio.gather(
            payment_service.sweep_expired(), payment_service.sweep_expired()
        )

        assert sum(r.expired for r in results) == 4
        assert (await load_account(sender.id)).escrow_held == 0


class TestEngagementAndViews:
    """Engagement tracking and public views."""

    @pytest.mark.asyncio
    async def test_engagement_moves_forward_only(self, payment_service, make_account):
        sender = await make_account()
        sent = await payment_service.send(sender.id, RECIPIENT_EMAIL, "5")

        opened = await payment_service.record_engagement(sent.tracking_id, "opened")
        stale = await payment_service.record_engagement(sent.tracking_id, "delivered")

        assert opened.status == EscrowStatus.OPENED
        assert opened.opened_at is not None
        assert stale.status == EscrowStatus.OPENED

        with pytest.raises(ValidationError):
            await payment_service.record_engagement(sent.tracking_id, "bounced")

    @pytest.mark.asyncio
    async def test_engagement_never_touches_terminal(self, payment_service, make_account):
        sender = await make_account()
        sent = await payment_service.send(sender.id, RECIPIENT_EMAIL, "5")
        await payment_service.cancel(sent.escrow.id, sender.id)

        result = await payment_service.record_engagement(sent.tracking_id, "clicked")

        assert result.status == EscrowStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_public_view_is_redacted(self, payment_service, make_account):
        sender = await make_account(display_name="Alice")
        sent = await payment_service.send(
            sender.id, RECIPIENT_EMAIL, "12.5", message="Dinner"
        )

        view = (await payment_service.get_by_tracking_id(sent.tracking_id)).to_dict()

        assert set(view) == {
            "amount",
            "currency",
            "message",
            "sender_display_name",
            "status",
            "expires_at",
            "channel",
        }
        assert Decimal(view["amount"]) == Decimal("12.5")
        assert view["sender_display_name"] == "Alice"
        assert view["message"] == "Dinner"
        assert RECIPIENT_EMAIL not in str(view)

    @pytest.mark.asyncio
    async def test_public_view_default_sender_name(self, payment_service, make_account):
        sender = await make_account()
        sent = await payment_service.send(sender.id, RECIPIENT_EMAIL, "1")

        view = await payment_service.get_by_tracking_id(sent.tracking_id)

        assert view.sender_display_name == "Someone"

    @pytest.mark.asyncio
    async def test_unknown_tracking_id(self, payment_service):
        with pytest.raises(NotFoundError):
            await payment_service.get_by_tracking_id("missing")

    @pytest.mark.asyncio
    async def test_list_escrows_by_role(self, payment_service, make_account):
        sender = await make_account()
        await payment_service.send(sender.id, RECIPIENT_EMAIL, "1")
        recipient = await make_account(email=RECIPIENT_EMAIL)

        sent, sent_total = await payment_service.list_escrows(sender.id, role="sent")
        received, received_total = await payment_service.list_escrows(
            recipient.id, role="received"
        )

        assert sent_total == 1
        assert received_total == 1
        assert sent[0].id == received[0].id

        with pytest.raises(ValidationError):
            await payment_service.list_escrows(sender.id, role="everyone")

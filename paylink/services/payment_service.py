"""
Payment service facade.

Single entry point for callers (API handlers, jobs, scripts). Each
operation opens its own session from the context's session maker and
builds the services it needs on that session.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from paylink.config.settings import Settings
from paylink.models.escrow_payment import EscrowPayment
from paylink.models.transaction import Transaction
from paylink.models.user_operation import UserOperation
from paylink.services.account_abstraction.builder import AccountAbstractionBuilder
from paylink.services.direct_transfer_service import (
    DirectTransferService,
    ReconcileResult,
)
from paylink.services.escrow.ledger import EscrowPaymentLedger
from paylink.services.escrow.views import EscrowResult, PublicEscrowView, SweepResult
from paylink.services.gas_sponsorship_service import GasSponsorshipService
from paylink.services.interfaces import (
    AuthContext,
    BalanceProvider,
    DeploymentChecker,
    FeeOracle,
    LimitsChecker,
    Notifier,
    Relay,
    Signer,
    SponsorService,
)
from paylink.services.limits_service import StoredLimitsChecker
from paylink.services.recipient_classifier import RecipientPreview, preview
from paylink.services.send_router import SendOptions, SendResult, SendRouter
from paylink.services.transaction_ledger import TransactionLedger
from paylink.utils.datetime_utils import utc_now
from paylink.utils.exceptions import ValidationError


@dataclass
class PaymentContext:
    """Settings, database handle and external collaborators."""

    settings: Settings
    session_maker: async_sessionmaker[AsyncSession]
    fee_oracle: FeeOracle
    balance_provider: BalanceProvider | None = None
    deployment_checker: DeploymentChecker | None = None
    sponsor_service: SponsorService | None = None
    relay: Relay | None = None
    signer: Signer | None = None
    notifier: Notifier | None = None
    limits_checker: LimitsChecker | None = None
    auth: AuthContext | None = None


class PaymentService:
    """Facade over the payment services."""

    def __init__(self, context: PaymentContext) -> None:
        self.context = context
        self.settings = context.settings
        self.logger = logger.bind(service="PaymentService")

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        async with self.context.session_maker() as session:
            yield session

    # ------------------------------------------------------------------
    # Service wiring
    # ------------------------------------------------------------------

    def _escrow_ledger(self, session: AsyncSession) -> EscrowPaymentLedger:
        return EscrowPaymentLedger(
            session,
            self.settings,
            self.context.notifier,
            balance_provider=self.context.balance_provider,
        )

    def _builder(self, session: AsyncSession) -> AccountAbstractionBuilder:
        return AccountAbstractionBuilder(
            session,
            self.settings,
            self.context.fee_oracle,
            balance_provider=self.context.balance_provider,
            deployment_checker=self.context.deployment_checker,
            relay=self.context.relay,
        )

    def _direct(self, session: AsyncSession) -> DirectTransferService:
        return DirectTransferService(
            session,
            self.settings,
            self._builder(session),
            GasSponsorshipService(
                session, self.settings, self.context.sponsor_service
            ),
            signer=self.context.signer,
        )

    def _router(self, session: AsyncSession) -> SendRouter:
        limits = self.context.limits_checker or StoredLimitsChecker(session)
        return SendRouter(
            session,
            self.settings,
            limits,
            self._direct(session),
            self._escrow_ledger(session),
        )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def preview_recipient(self, raw: str) -> RecipientPreview:
        """Classify a raw recipient without side effects."""
        return preview(raw)

    async def send(
        self,
        account_id: int,
        recipient: str,
        amount: str | Decimal,
        message: str | None = None,
        note: str | None = None,
        expiration_days: int | None = None,
    ) -> SendResult:
        """Send to a wallet, email or phone recipient."""
        options = SendOptions(
            message=message, note=note, expiration_days=expiration_days
        )
        async with self._session() as session:
            return await self._router(session).send(
                account_id, recipient, amount, options
            )

    async def claim(self, escrow_ref: int | str, account_id: int) -> EscrowResult:
        """
        Claim an escrow by numeric id or tracking id.

        Args:
            escrow_ref: Escrow ID (int) or tracking token (str)
            account_id: Claiming account ID
        """
        async with self._session() as session:
            ledger = self._escrow_ledger(session)
            if isinstance(escrow_ref, int) and not isinstance(escrow_ref, bool):
                return await ledger.claim(escrow_ref, account_id)
            if isinstance(escrow_ref, str):
                return await ledger.claim_by_tracking_id(escrow_ref, account_id)
            raise ValidationError("Escrow reference must be an id or tracking id")

    async def claim_as(self, credentials: Any, escrow_ref: int | str) -> EscrowResult:
        """Claim on behalf of the caller resolved by the auth context."""
        if self.context.auth is None:
            raise ValidationError("No auth context configured")
        identity = await self.context.auth.resolve(credentials)
        return await self.claim(escrow_ref, identity.account_id)

    async def cancel(
        self, escrow_id: int, account_id: int, reason: str | None = None
    ) -> EscrowResult:
        """Cancel an unclaimed escrow (sender only)."""
        async with self._session() as session:
            return await self._escrow_ledger(session).cancel(
                escrow_id, account_id, reason
            )

    async def get_by_tracking_id(self, tracking_id: str) -> PublicEscrowView:
        """Redacted view for a tracking-id holder."""
        async with self._session() as session:
            return await self._escrow_ledger(session).get_public_view(tracking_id)

    async def get_escrow(self, escrow_id: int) -> EscrowPayment:
        async with self._session() as session:
            return await self._escrow_ledger(session).get(escrow_id)

    async def submit(self, user_op_hash: str, signature: str) -> UserOperation:
        """Submit an externally signed UserOperation."""
        async with self._session() as session:
            return await self._direct(session).submit_signed(user_op_hash, signature)

    async def reconcile(self, user_op_hash: str) -> Transaction:
        """Resolve a submitted direct transfer from its relay receipt."""
        async with self._session() as session:
            return await self._direct(session).reconcile(user_op_hash)

    async def reconcile_stale(
        self, older_than_minutes: int = 15, limit: int = 100
    ) -> ReconcileResult:
        """Reconcile every unresolved transaction untouched for the given time."""
        cutoff = utc_now() - timedelta(minutes=older_than_minutes)
        async with self._session() as session:
            return await self._direct(session).reconcile_stale(cutoff, limit=limit)

    async def cancel_transaction(
        self, transaction_id: int, account_id: int, reason: str | None = None
    ) -> Transaction:
        """Cancel a direct transfer not yet submitted (sender only)."""
        async with self._session() as session:
            return await self._direct(session).cancel(
                transaction_id, account_id, reason
            )

    async def sweep_expired(self, now: datetime | None = None) -> SweepResult:
        """Expire every overdue escrow and refund its sender."""
        async with self._session() as session:
            return await self._escrow_ledger(session).sweep_expired(
                now=now, batch_size=self.settings.sweep_batch_size
            )

    async def record_engagement(self, tracking_id: str, event: str) -> EscrowPayment:
        async with self._session() as session:
            return await self._escrow_ledger(session).record_engagement(
                tracking_id, event
            )

    async def get_transaction_history(
        self,
        account_id: int,
        status: str | None = None,
        tx_type: str | None = None,
        page: int = 1,
        per_page: int = 50,
    ) -> tuple[list[Transaction], int]:
        async with self._session() as session:
            return await TransactionLedger(session).get_history(
                account_id, status=status, tx_type=tx_type, page=page, per_page=per_page
            )

    async def list_escrows(
        self,
        account_id: int,
        role: str = "all",
        status: str | None = None,
        page: int = 1,
        per_page: int = 50,
    ) -> tuple[list[EscrowPayment], int]:
        async with self._session() as session:
            return await self._escrow_ledger(session).list_for_account(
                account_id, role=role, status=status, page=page, per_page=per_page
            )

    async def find_stale_transactions(
        self, older_than_minutes: int = 30, limit: int = 100
    ) -> list[Transaction]:
        """Unresolved transactions untouched for the given time."""
        cutoff = utc_now() - timedelta(minutes=older_than_minutes)
        async with self._session() as session:
            return await TransactionLedger(session).find_stale(cutoff, limit=limit)

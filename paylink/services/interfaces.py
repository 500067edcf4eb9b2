"""
Collaborator contracts.

Typed protocols for everything the payment core consumes but does not own:
authentication, limits, signing, fee data, notifications, fee sponsorship,
the execution relay and chain reads.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Protocol, runtime_checkable


@dataclass(frozen=True)
class CallerIdentity:
    """Resolved caller: account plus the identifiers it owns."""

    account_id: int
    email: str | None = None
    phone: str | None = None


@dataclass(frozen=True)
class LimitDecision:
    """Outcome of a limits check."""

    allowed: bool
    reason: str | None = None


@dataclass(frozen=True)
class FeeData:
    """EIP-1559 fee fields in wei."""

    max_fee_per_gas: int
    max_priority_fee_per_gas: int


@runtime_checkable
class AuthContext(Protocol):
    async def resolve(self, credentials: Any) -> CallerIdentity:
        """Resolve caller credentials to an account. Raises on failure."""
        ...


@runtime_checkable
class LimitsChecker(Protocol):
    async def check(self, account_id: int, amount: Decimal) -> LimitDecision:
        ...


@runtime_checkable
class Signer(Protocol):
    async def sign(self, user_op_hash: str) -> str:
        """Return a 0x-prefixed signature over the operation hash."""
        ...


@runtime_checkable
class FeeOracle(Protocol):
    async def get_fee_data(self) -> FeeData:
        ...


@runtime_checkable
class Notifier(Protocol):
    async def send_claim_link(
        self,
        channel: str,
        identifier: str,
        tracking_id: str,
        amount: Decimal,
        message: str | None,
        expires_at: datetime,
    ) -> None:
        """Deliver a claim link. Best-effort; may raise."""
        ...


@runtime_checkable
class SponsorService(Protocol):
    async def sponsor(self, user_operation: dict[str, Any], entry_point: str) -> str:
        """Return paymasterAndData for the operation."""
        ...


@runtime_checkable
class Relay(Protocol):
    async def send_user_operation(
        self, user_operation: dict[str, Any], entry_point: str
    ) -> str:
        """Forward a signed operation; returns the relay's operation hash."""
        ...

    async def get_user_operation(self, user_op_hash: str) -> dict[str, Any] | None:
        """Existing remote state of an operation, or None if unknown."""
        ...

    async def get_user_operation_receipt(
        self, user_op_hash: str
    ) -> dict[str, Any] | None:
        """Inclusion receipt of an operation, or None while not mined."""
        ...


@runtime_checkable
class BalanceProvider(Protocol):
    async def get_token_balance(self, address: str) -> Decimal:
        ...


@runtime_checkable
class DeploymentChecker(Protocol):
    async def is_deployed(self, address: str) -> bool:
        ...

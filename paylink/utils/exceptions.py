"""
Exception handling utilities.

Defines the payment error taxonomy and the categories used to decide how
each failure is handled.
"""

from typing import Any

from sqlalchemy.exc import InterfaceError, OperationalError
from web3.exceptions import Web3Exception


class PaymentError(Exception):
    """
    Base class for domain errors.

    Carries a stable code and context (ids, current status) for precise
    caller-facing messages. Only `message` and `code` cross the external
    boundary, see `to_public`.
    """

    code = "payment_error"

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def to_public(self) -> dict[str, Any]:
        """Serializable view safe to return to callers."""
        return {"error": self.code, "message": self.message}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context!r})"


class ValidationError(PaymentError):
    """Bad input. Not retried, surfaced verbatim."""

    code = "validation_error"


class NotFoundError(PaymentError):
    """Unknown escrow, account, tracking id or operation."""

    code = "not_found"


class ConflictError(PaymentError):
    """State conflict: double claim, cancel of a settled escrow, nonce reuse."""

    code = "conflict"


class InvalidTransitionError(ConflictError):
    """Illegal transaction status transition."""

    code = "invalid_transition"


class EscrowExpiredError(ValidationError):
    """Claim attempted outside the escrow validity window."""

    code = "escrow_expired"


class InsufficientFundsError(PaymentError):
    """Pre-flight balance check failed."""

    code = "insufficient_funds"


class ExternalServiceError(PaymentError):
    """Fee oracle, sponsor service or relay unreachable."""

    code = "external_service_error"


class RelayRejectedError(ExternalServiceError):
    """Relay refused the operation. Retryable by the caller."""

    code = "relay_rejected"


class FatalError(PaymentError):
    """Aborts the whole send with no partial writes."""

    code = "internal_error"

    def to_public(self) -> dict[str, Any]:
        return {"error": self.code, "message": "Payment could not be processed"}


class HashComputationError(FatalError):
    """Canonical UserOperation hash could not be computed."""


class StoreUnavailableError(FatalError):
    """Persistence store unavailable."""


# Exception categories based on handling strategy

# Store connectivity failures - surfaced as StoreUnavailableError
STORE_UNAVAILABLE = (
    OperationalError,
    InterfaceError,
)

# Safe to retry with backoff - idempotent reads only
RETRYABLE_READ = (
    ExternalServiceError,
    Web3Exception,
    TimeoutError,
    ConnectionError,
)


def is_store_unavailable(exc: Exception) -> bool:
    """
    Check if exception means the store cannot be reached.

    Args:
        exc: Exception to check

    Returns:
        True if the store is unavailable
    """
    return isinstance(exc, STORE_UNAVAILABLE)


def is_retryable_read(exc: Exception) -> bool:
    """
    Check if a failed idempotent read may be retried.

    Args:
        exc: Exception to check

    Returns:
        True if retry is allowed
    """
    if isinstance(exc, RelayRejectedError):
        return False
    return isinstance(exc, RETRYABLE_READ)


# Relay answers meaning the operation is already in its mempool
DUPLICATE_SUBMISSION_MARKERS = (
    "already known",
    "already in mempool",
    "already exists",
    "duplicate",
)


def is_duplicate_submission(exc: Exception) -> bool:
    """
    Check if a relay rejection only says the operation was seen before.

    Args:
        exc: Exception to check

    Returns:
        True if the relay already holds the operation
    """
    if not isinstance(exc, RelayRejectedError):
        return False
    text = exc.message.lower()
    return any(marker in text for marker in DUPLICATE_SUBMISSION_MARKERS)

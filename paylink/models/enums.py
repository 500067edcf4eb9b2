"""
Status and type constants for payment models.

Values are stored as plain strings.
"""


class EscrowChannel:
    """Delivery channel of a deferred (escrow) payment."""

    EMAIL = "EMAIL"
    PHONE = "PHONE"

    ALL = (EMAIL, PHONE)


class EscrowStatus:
    """Escrow payment status constants.

    PENDING -> DELIVERED -> OPENED -> CLICKED are informational only.
    CLAIMED, CANCELLED and EXPIRED are terminal.
    """

    PENDING = "PENDING"
    DELIVERED = "DELIVERED"
    OPENED = "OPENED"
    CLICKED = "CLICKED"
    CLAIMED = "CLAIMED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"

    NON_TERMINAL = (PENDING, DELIVERED, OPENED, CLICKED)
    TERMINAL = (CLAIMED, CANCELLED, EXPIRED)

    # Forward order of the informational progression
    ENGAGEMENT_ORDER = {PENDING: 0, DELIVERED: 1, OPENED: 2, CLICKED: 3}


class TransactionStatus:
    """Transaction status constants."""

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    IN_ESCROW = "IN_ESCROW"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    UNRESOLVED = (PENDING, PROCESSING)
    TERMINAL = (COMPLETED, FAILED, CANCELLED)


class TransactionType:
    """Transaction type constants."""

    DIRECT = "DIRECT"
    ESCROW_HOLD = "ESCROW_HOLD"
    ESCROW_RELEASE = "ESCROW_RELEASE"
    CANCEL_REFUND = "CANCEL_REFUND"


class UserOperationStatus:
    """UserOperation status constants."""

    PENDING = "PENDING"
    SUBMITTED = "SUBMITTED"
    CONFIRMED = "CONFIRMED"
    FAILED = "FAILED"


class SponsorshipReason:
    """Reasons recorded on gas sponsorship entries."""

    NEW_ACCOUNT = "NEW_ACCOUNT"


class CancelReason:
    """Well-known cancellation reasons."""

    SENDER_REQUEST = "SENDER_REQUEST"
    EXPIRED = "EXPIRED"


class EngagementEvent:
    """Claim-link engagement events reported by the notification channel."""

    DELIVERED = "delivered"
    OPENED = "opened"
    CLICKED = "clicked"

    TO_STATUS = {
        DELIVERED: EscrowStatus.DELIVERED,
        OPENED: EscrowStatus.OPENED,
        CLICKED: EscrowStatus.CLICKED,
    }

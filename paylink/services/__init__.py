"""
Payment services.
"""

from paylink.services.direct_transfer_service import (
    DirectTransferResult,
    DirectTransferService,
)
from paylink.services.gas_sponsorship_service import GasSponsorshipService
from paylink.services.limits_service import StoredLimitsChecker
from paylink.services.payment_service import PaymentContext, PaymentService
from paylink.services.recipient_classifier import (
    RecipientClassification,
    RecipientKind,
    RecipientPreview,
    classify,
    preview,
)
from paylink.services.send_router import SendOptions, SendResult, SendRouter
from paylink.services.transaction_ledger import TransactionLedger

__all__ = [
    "DirectTransferResult",
    "DirectTransferService",
    "GasSponsorshipService",
    "PaymentContext",
    "PaymentService",
    "RecipientClassification",
    "RecipientKind",
    "RecipientPreview",
    "SendOptions",
    "SendResult",
    "SendRouter",
    "StoredLimitsChecker",
    "TransactionLedger",
    "classify",
    "preview",
]

"""
Recipient classifier.

Pure detection of the recipient kind behind a raw identifier. The same
function backs both the preview operation and routing, so a preview always
agrees with the channel a send selects.
"""

from dataclasses import dataclass

from paylink.validators.unified import (
    format_phone_number,
    validate_email,
    validate_phone,
    validate_wallet_address,
)


class RecipientKind:
    """Recipient kind constants."""

    WALLET = "WALLET"
    EMAIL = "EMAIL"
    PHONE = "PHONE"
    UNKNOWN = "UNKNOWN"


@dataclass(frozen=True)
class RecipientClassification:
    """Tagged classification result; value is the normalized identifier."""

    kind: str
    value: str | None = None

    @property
    def is_deferred(self) -> bool:
        """Email and phone recipients are paid through escrow."""
        return self.kind in (RecipientKind.EMAIL, RecipientKind.PHONE)


@dataclass(frozen=True)
class RecipientPreview:
    """Preview of how a raw recipient would be handled."""

    type: str
    valid: bool
    normalized: str | None
    explanation: str


_EXPLANATIONS = {
    RecipientKind.WALLET: "Sent immediately to the wallet address",
    RecipientKind.EMAIL: "Held in escrow until the recipient claims it by email",
    RecipientKind.PHONE: "Held in escrow until the recipient claims it by phone",
    RecipientKind.UNKNOWN: "Not a wallet address, email or phone number",
}


def classify(raw: str | None) -> RecipientClassification:
    """
    Classify a raw recipient string. First matching rule wins.

    Examples:
        >>> classify("0x" + "AB" * 20).kind
        'WALLET'
        >>> classify("Alice@Example.com")
        RecipientClassification(kind='EMAIL', value='alice@example.com')
        >>> classify("(415) 555-0123")
        RecipientClassification(kind='PHONE', value='+14155550123')
        >>> classify("hello").kind
        'UNKNOWN'
    """
    if not raw or not isinstance(raw, str) or not raw.strip():
        return RecipientClassification(RecipientKind.UNKNOWN)

    candidate = raw.strip()

    is_wallet, _ = validate_wallet_address(candidate)
    if is_wallet:
        return RecipientClassification(RecipientKind.WALLET, candidate.lower())

    is_email, _ = validate_email(candidate)
    if is_email:
        return RecipientClassification(RecipientKind.EMAIL, candidate.lower())

    is_phone, _ = validate_phone(candidate)
    if is_phone:
        return RecipientClassification(
            RecipientKind.PHONE, format_phone_number(candidate)
        )

    return RecipientClassification(RecipientKind.UNKNOWN)


def preview(raw: str | None) -> RecipientPreview:
    """Non-mutating preview of a recipient."""
    result = classify(raw)
    return RecipientPreview(
        type=result.kind,
        valid=result.kind != RecipientKind.UNKNOWN,
        normalized=result.value,
        explanation=_EXPLANATIONS[result.kind],
    )

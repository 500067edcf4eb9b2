"""
Security utilities.

Masks sensitive data in logs and generates unguessable claim tokens:
- Wallet addresses
- Operation hashes
- Email addresses and phone numbers
"""

import secrets

from paylink.config.constants import TRACKING_ID_BYTES


def mask_address(address: str | None) -> str:
    """
    Mask wallet address for logging: 0x1234...5678

    Args:
        address: Wallet address to mask

    Returns:
        Masked address showing first 6 and last 4 characters

    Examples:
        >>> mask_address("0x1234567890abcdef1234567890abcdef12345678")
        '0x1234...5678'
        >>> mask_address(None)
        '***'
    """
    if not address or len(address) < 10:
        return "***"
    return f"{address[:6]}...{address[-4:]}"


def mask_tx_hash(tx_hash: str | None) -> str:
    """
    Mask transaction or operation hash for logging.

    Examples:
        >>> mask_tx_hash("0x" + "ab" * 32)
        '0xabababab...ababab'
    """
    if not tx_hash or len(tx_hash) < 16:
        return "***"
    return f"{tx_hash[:10]}...{tx_hash[-6:]}"


def mask_email(email: str | None) -> str:
    """
    Mask email for logging.

    Examples:
        >>> mask_email("alice@example.com")
        'al***@example.com'
        >>> mask_email("a@example.com")
        'a***@example.com'
    """
    if not email or "@" not in email:
        return "***"
    local, domain = email.split("@", 1)
    if len(local) <= 2:
        return f"{local[:1]}***@{domain}"
    return f"{local[:2]}***@{domain}"


def mask_phone(phone: str | None) -> str:
    """
    Mask phone number for logging, keeping country code and last two digits.

    Examples:
        >>> mask_phone("+14155550123")
        '+14155****23'
    """
    if not phone or len(phone) < 7:
        return "***"
    head = phone[: len(phone) - 6]
    tail = phone[-2:]
    return f"{head}****{tail}"


def mask_identifier(identifier: str | None) -> str:
    """Mask an escrow recipient identifier of either channel."""
    if identifier and "@" in identifier:
        return mask_email(identifier)
    return mask_phone(identifier)


def generate_tracking_id() -> str:
    """
    Generate an unguessable public claim token.

    The token carries no information about the recipient or the amount.
    """
    return secrets.token_urlsafe(TRACKING_ID_BYTES)

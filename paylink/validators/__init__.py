"""
Input validators.

Each validator returns a tuple; normalizers raise ValueError.
"""

from paylink.validators.unified import (
    format_phone_number,
    normalize_email,
    normalize_phone,
    normalize_wallet_address,
    validate_amount,
    validate_email,
    validate_phone,
    validate_wallet_address,
)

__all__ = [
    "format_phone_number",
    "normalize_email",
    "normalize_phone",
    "normalize_wallet_address",
    "validate_amount",
    "validate_email",
    "validate_phone",
    "validate_wallet_address",
]

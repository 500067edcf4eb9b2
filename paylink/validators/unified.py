"""Unified validators for amounts and recipient identifiers."""
import re
from decimal import Decimal, InvalidOperation

from paylink.config.constants import MAX_AMOUNT, MAX_AMOUNT_DECIMALS

WALLET_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")
E164_PATTERN = re.compile(r"^\+[1-9]\d{1,14}$")  # 2 to 15 digits
# Digits plus the usual phone punctuation
PHONE_CHARS = re.compile(r"^\+?[\d\s\-().]+$")


def validate_wallet_address(address: str) -> tuple[bool, str | None]:
    """
    Validate a 20-byte hex wallet address.

    Returns:
        Tuple of (is_valid, error_message)

    Examples:
        >>> validate_wallet_address("0x1234567890123456789012345678901234567890")
        (True, None)
        >>> validate_wallet_address("invalid")
        (False, 'Address must start with 0x')
    """
    if not address or not isinstance(address, str):
        return False, "Address is empty"

    address = address.strip()

    if not address.startswith("0x"):
        return False, "Address must start with 0x"

    if len(address) != 42:
        return False, "Address must be 42 characters"

    if not WALLET_PATTERN.match(address):
        return False, "Invalid address format"

    return True, None


def validate_email(email: str) -> tuple[bool, str | None]:
    """
    Validate email address grammar.

    Exactly one '@', no whitespace, non-empty local part, and a domain
    with a dot and non-empty labels.

    Returns:
        Tuple of (is_valid, error_message)

    Examples:
        >>> validate_email("user@example.com")
        (True, None)
        >>> validate_email("user@localhost")
        (False, 'Email domain must contain a dot (.)')
    """
    if not email or not isinstance(email, str):
        return False, "Email is empty"

    email = email.strip()

    if len(email) > 255:
        return False, "Email is too long (maximum 255 characters)"

    if re.search(r"\s", email):
        return False, "Email must not contain whitespace"

    if email.count("@") != 1:
        return False, "Email must contain exactly one '@'"

    local, domain = email.split("@")

    if not local:
        return False, "Email local part is empty"

    if "." not in domain:
        return False, "Email domain must contain a dot (.)"

    if any(not label for label in domain.split(".")):
        return False, "Email domain has invalid structure"

    return True, None


def validate_phone(phone: str) -> tuple[bool, str | None]:
    """
    Validate that a phone number normalizes to E.164.

    Returns:
        Tuple of (is_valid, error_message)

    Examples:
        >>> validate_phone("(415) 555-0123")
        (True, None)
        >>> validate_phone("+0123")
        (False, 'Phone must be in E.164 format')
    """
    if not phone or not isinstance(phone, str):
        return False, "Phone is empty"

    if len(phone) > 50:
        return False, "Phone is too long (maximum 50 characters)"

    if not PHONE_CHARS.match(phone.strip()):
        return False, "Phone contains invalid characters"

    if not E164_PATTERN.match(format_phone_number(phone)):
        return False, "Phone must be in E.164 format"

    return True, None


def validate_amount(
    amount: str | Decimal | int,
    min_exclusive: Decimal = Decimal("0"),
    max_val: Decimal | None = MAX_AMOUNT,
) -> tuple[bool, Decimal | None, str | None]:
    """
    Validate a transfer amount.

    Args:
        amount: Amount as string, Decimal or int
        min_exclusive: Amount must be strictly greater than this value
        max_val: Maximum allowed value (optional)

    Returns:
        Tuple of (is_valid, parsed_value, error_message)

    Examples:
        >>> validate_amount("50.00")
        (True, Decimal('50.00'), None)
        >>> validate_amount("10.0000001")
        (False, None, 'Amount has too many decimal places (maximum 6)')
    """
    if amount is None or isinstance(amount, bool):
        return False, None, "Amount is empty"

    if isinstance(amount, Decimal):
        value = amount
    else:
        text = str(amount).strip()
        if not text:
            return False, None, "Amount is empty"
        try:
            value = Decimal(text)
        except InvalidOperation:
            return False, None, "Invalid amount format"

    if not value.is_finite():
        return False, None, "Amount must be a finite number"

    if value <= min_exclusive:
        return False, None, f"Amount must be greater than {min_exclusive}"

    if max_val is not None and value > max_val:
        return False, None, f"Amount must be <= {max_val}"

    if value.as_tuple().exponent < -MAX_AMOUNT_DECIMALS:
        return (
            False,
            None,
            f"Amount has too many decimal places (maximum {MAX_AMOUNT_DECIMALS})",
        )

    return True, value, None


def format_phone_number(phone: str) -> str:
    """
    Normalize a phone number towards E.164 without validating it.

    Without a leading '+': 10 digits get +1, 11 digits starting with 1 get
    '+', anything else gets '+'. With a leading '+' the digits are kept.

    Examples:
        >>> format_phone_number("(415) 555-0123")
        '+14155550123'
        >>> format_phone_number("1-415-555-0123")
        '+14155550123'
        >>> format_phone_number("+44 20 7946 0958")
        '+442079460958'
    """
    stripped = phone.strip()
    digits = re.sub(r"\D", "", stripped)

    if stripped.startswith("+"):
        return f"+{digits}"
    if len(digits) == 10:
        return f"+1{digits}"
    return f"+{digits}"


def normalize_wallet_address(address: str) -> str:
    """
    Normalize wallet address to lowercase hex.

    Raises:
        ValueError: If address is invalid
    """
    is_valid, error = validate_wallet_address(address)
    if not is_valid:
        raise ValueError(error)

    return address.strip().lower()


def normalize_email(email: str) -> str:
    """
    Normalize email to lowercase.

    Raises:
        ValueError: If email is invalid
    """
    is_valid, error = validate_email(email)
    if not is_valid:
        raise ValueError(error)

    return email.strip().lower()


def normalize_phone(phone: str) -> str:
    """
    Normalize phone number to E.164.

    Raises:
        ValueError: If phone is invalid
    """
    is_valid, error = validate_phone(phone)
    if not is_valid:
        raise ValueError(error)

    return format_phone_number(phone)

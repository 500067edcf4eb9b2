"""
Call data encoding for smart-account transfers.
"""

from decimal import Decimal

from eth_abi import encode
from web3 import Web3

from paylink.config.constants import (
    ACCOUNT_EXECUTE_SIGNATURE,
    ACCOUNT_SALT,
    CALLDATA_NONZERO_BYTE_GAS,
    CALLDATA_ZERO_BYTE_GAS,
    ERC20_TRANSFER_SIGNATURE,
    FACTORY_CREATE_ACCOUNT_SIGNATURE,
)


def function_selector(signature: str) -> bytes:
    """
    First four bytes of keccak256 of a function signature.

    Examples:
        >>> function_selector("transfer(address,uint256)").hex()
        'a9059cbb'
    """
    return bytes(Web3.keccak(text=signature)[:4])


def to_token_units(amount: Decimal, decimals: int) -> int:
    """
    Convert a decimal amount to integer token units.

    Examples:
        >>> to_token_units(Decimal("50.25"), 6)
        50250000
    """
    return int(amount.scaleb(decimals).to_integral_exact())


def encode_token_transfer(recipient: str, amount_units: int) -> bytes:
    """ERC-20 transfer(recipient, amount) call."""
    return function_selector(ERC20_TRANSFER_SIGNATURE) + encode(
        ["address", "uint256"],
        [Web3.to_checksum_address(recipient), amount_units],
    )


def encode_execute(target: str, value: int, data: bytes) -> str:
    """Smart-account execute(target, value, data) call as 0x hex."""
    encoded = function_selector(ACCOUNT_EXECUTE_SIGNATURE) + encode(
        ["address", "uint256", "bytes"],
        [Web3.to_checksum_address(target), value, data],
    )
    return "0x" + encoded.hex()


def encode_init_code(factory: str, owner: str, salt: int = ACCOUNT_SALT) -> str:
    """
    Deployment data: factory address followed by createAccount(owner, salt).
    """
    call = function_selector(FACTORY_CREATE_ACCOUNT_SIGNATURE) + encode(
        ["address", "uint256"],
        [Web3.to_checksum_address(owner), salt],
    )
    return "0x" + bytes.fromhex(factory[2:]).hex() + call.hex()


def calldata_gas(data: str) -> int:
    """Intrinsic calldata gas: 16 per non-zero byte, 4 per zero byte."""
    raw = bytes.fromhex(data[2:]) if data.startswith("0x") else bytes.fromhex(data)
    zeros = raw.count(0)
    return zeros * CALLDATA_ZERO_BYTE_GAS + (len(raw) - zeros) * CALLDATA_NONZERO_BYTE_GAS

"""
Canonical UserOperation hash (EntryPoint v0.6).

userOpHash = keccak256(abi.encode(
    keccak256(pack(userOp)), entryPoint, chainId
))

where pack(userOp) ABI-encodes the static fields with the dynamic ones
(initCode, callData, paymasterAndData) replaced by their keccak256. The
signature is not part of the hash.
"""

from eth_abi import encode
from eth_abi.exceptions import EncodingError
from eth_utils import to_bytes
from web3 import Web3

from paylink.services.account_abstraction.user_operation import UserOperationRequest
from paylink.utils.exceptions import HashComputationError


def _hex_bytes(value: str) -> bytes:
    if not value or value == "0x":
        return b""
    return to_bytes(hexstr=value)


def pack_user_operation(op: UserOperationRequest) -> bytes:
    """ABI-encode the hashed fields of a UserOperation."""
    return encode(
        [
            "address",
            "uint256",
            "bytes32",
            "bytes32",
            "uint256",
            "uint256",
            "uint256",
            "uint256",
            "uint256",
            "bytes32",
        ],
        [
            Web3.to_checksum_address(op.sender),
            op.nonce,
            Web3.keccak(_hex_bytes(op.init_code)),
            Web3.keccak(_hex_bytes(op.call_data)),
            op.call_gas_limit,
            op.verification_gas_limit,
            op.pre_verification_gas,
            op.max_fee_per_gas,
            op.max_priority_fee_per_gas,
            Web3.keccak(_hex_bytes(op.paymaster_and_data)),
        ],
    )


def compute_user_op_hash(
    op: UserOperationRequest, entry_point: str, chain_id: int
) -> str:
    """
    Compute the canonical hash of a UserOperation.

    Args:
        op: UserOperation
        entry_point: EntryPoint contract address
        chain_id: EVM chain id

    Returns:
        0x-prefixed lowercase hex hash

    Raises:
        HashComputationError: Malformed fields
    """
    try:
        inner = Web3.keccak(pack_user_operation(op))
        outer = encode(
            ["bytes32", "address", "uint256"],
            [inner, Web3.to_checksum_address(entry_point), chain_id],
        )
        raw = Web3.keccak(outer).hex()
    except (EncodingError, ValueError, TypeError, OverflowError) as e:
        raise HashComputationError(
            "Could not compute UserOperation hash",
            sender=op.sender,
            nonce=op.nonce,
            error=str(e),
        ) from e

    # HexBytes.hex() includes 0x only in newer hexbytes releases
    return raw if raw.startswith("0x") else "0x" + raw

"""
UserOperation request types.
"""

from dataclasses import dataclass, replace
from typing import Any

from paylink.config.constants import EMPTY_BYTES


@dataclass(frozen=True)
class GasEstimate:
    """Gas limits of a UserOperation."""

    call_gas_limit: int
    verification_gas_limit: int
    pre_verification_gas: int


@dataclass(frozen=True)
class UserOperationRequest:
    """
    ERC-4337 (EntryPoint v0.6) UserOperation.

    Immutable: paymaster or signature changes produce a new instance, and
    the hash must be recomputed with `AccountAbstractionBuilder.rehash`.
    """

    sender: str
    nonce: int
    init_code: str
    call_data: str
    call_gas_limit: int
    verification_gas_limit: int
    pre_verification_gas: int
    max_fee_per_gas: int
    max_priority_fee_per_gas: int
    paymaster_and_data: str = EMPTY_BYTES
    signature: str = EMPTY_BYTES
    user_op_hash: str | None = None

    @property
    def paymaster_used(self) -> bool:
        return self.paymaster_and_data not in ("", EMPTY_BYTES)

    @property
    def deployment_needed(self) -> bool:
        return self.init_code not in ("", EMPTY_BYTES)

    @property
    def total_gas(self) -> int:
        return self.call_gas_limit + self.verification_gas_limit + self.pre_verification_gas

    @property
    def max_gas_cost_wei(self) -> int:
        """Upper bound of the network fee in wei."""
        return self.total_gas * self.max_fee_per_gas

    def with_paymaster(self, paymaster_and_data: str) -> "UserOperationRequest":
        """Copy with new paymaster data; the hash is cleared."""
        return replace(
            self, paymaster_and_data=paymaster_and_data or EMPTY_BYTES, user_op_hash=None
        )

    def without_paymaster(self) -> "UserOperationRequest":
        return self.with_paymaster(EMPTY_BYTES)

    def to_rpc(self, signature: str | None = None) -> dict[str, Any]:
        """
        JSON-RPC representation used by bundlers and paymasters.

        Integers are 0x-prefixed hex quantities.
        """
        return {
            "sender": self.sender,
            "nonce": hex(self.nonce),
            "initCode": self.init_code,
            "callData": self.call_data,
            "callGasLimit": hex(self.call_gas_limit),
            "verificationGasLimit": hex(self.verification_gas_limit),
            "preVerificationGas": hex(self.pre_verification_gas),
            "maxFeePerGas": hex(self.max_fee_per_gas),
            "maxPriorityFeePerGas": hex(self.max_priority_fee_per_gas),
            "paymasterAndData": self.paymaster_and_data,
            "signature": signature if signature is not None else self.signature,
        }


def _quantity(value: Any) -> int | None:
    if value is None:
        return None
    if isinstance(value, str):
        return int(value, 16) if value.startswith("0x") else int(value)
    return int(value)


@dataclass(frozen=True)
class UserOperationReceipt:
    """Inclusion outcome reported by the relay."""

    success: bool
    transaction_hash: str | None
    block_number: int | None
    actual_gas_cost: int | None = None
    reason: str | None = None

    @classmethod
    def from_rpc(cls, data: dict[str, Any]) -> "UserOperationReceipt":
        """Parse an eth_getUserOperationReceipt result."""
        inner = data.get("receipt") or {}
        return cls(
            success=bool(data.get("success")),
            transaction_hash=inner.get("transactionHash") or data.get("transactionHash"),
            block_number=_quantity(inner.get("blockNumber")),
            actual_gas_cost=_quantity(data.get("actualGasCost")),
            reason=data.get("reason") or None,
        )

"""
Account abstraction (ERC-4337) request pipeline.
"""

from paylink.services.account_abstraction.builder import AccountAbstractionBuilder
from paylink.services.account_abstraction.hashing import compute_user_op_hash
from paylink.services.account_abstraction.user_operation import (
    GasEstimate,
    UserOperationRequest,
)

__all__ = [
    "AccountAbstractionBuilder",
    "GasEstimate",
    "UserOperationRequest",
    "compute_user_op_hash",
]

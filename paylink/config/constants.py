"""
Application constants.

Centralized constants for the application.
"""

from decimal import Decimal

# ========================================================================
# TOKEN CONSTANTS
# ========================================================================

TOKEN_DECIMALS = 6  # USDC
MAX_AMOUNT_DECIMALS = 6
MIN_AMOUNT = Decimal("0.000001")
MAX_AMOUNT = Decimal("1000000000")
NATIVE_DECIMALS = 18

# ========================================================================
# ESCROW CONSTANTS
# ========================================================================

DEFAULT_EXPIRATION_DAYS = 30
MAX_EXPIRATION_DAYS = 365
TRACKING_ID_BYTES = 24  # secrets.token_urlsafe -> 32 chars

# ========================================================================
# GAS CONSTANTS
# ========================================================================

DEFAULT_TRANSFER_GAS_LIMIT = 100_000
DEFAULT_DEPLOY_GAS_LIMIT = 500_000
DEFAULT_VERIFICATION_GAS_LIMIT = 100_000
DEFAULT_PRE_VERIFICATION_GAS = 50_000

# Calldata cost per byte (EIP-2028: 16 for non-zero, 4 for zero bytes)
CALLDATA_NONZERO_BYTE_GAS = 16
CALLDATA_ZERO_BYTE_GAS = 4

EMPTY_BYTES = "0x"

# ========================================================================
# EXTERNAL CALLS
# ========================================================================

EXTERNAL_CALL_TIMEOUT = 15.0  # seconds per attempt
EXTERNAL_MAX_RETRIES = 3
EXTERNAL_RETRY_DELAY_BASE = 0.5  # seconds; 0.5, 1, 2...
EXTERNAL_RETRY_MAX_DELAY = 8.0

# ========================================================================
# ABIS
# ========================================================================

ERC20_ABI = [
    {
        "constant": False,
        "inputs": [
            {"name": "_to", "type": "address"},
            {"name": "_value", "type": "uint256"},
        ],
        "name": "transfer",
        "outputs": [{"name": "", "type": "bool"}],
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [{"name": "_owner", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "balance", "type": "uint256"}],
        "type": "function",
    },
]

# Function signatures encoded into UserOperation callData and initCode
ERC20_TRANSFER_SIGNATURE = "transfer(address,uint256)"
ACCOUNT_EXECUTE_SIGNATURE = "execute(address,uint256,bytes)"
FACTORY_CREATE_ACCOUNT_SIGNATURE = "createAccount(address,uint256)"

ACCOUNT_SALT = 0

# ========================================================================
# ESCROW MESSAGES
# ========================================================================

MAX_MESSAGE_LENGTH = 500

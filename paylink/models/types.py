"""
Standard type definitions for database models.

Provides consistent types for monetary and gas fields across all models.
"""

from sqlalchemy import DECIMAL, BigInteger

# Standard money type for token amounts, balances, escrow holds
# Precision: 18 digits total, 6 after decimal point (USDC)
# Range: up to 999,999,999,999.999999
MoneyType = DECIMAL(18, 6)

# Gas quantities and wei values
# Gas limits and per-gas fees fit comfortably in a signed 64-bit integer
GasType = BigInteger

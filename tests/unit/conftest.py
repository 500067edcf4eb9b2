"""
Shared fixtures for unit tests.

This module provides common fixtures used across multiple test modules:
- Mock database session
- A ready-made UserOperationRequest
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from paylink.services.account_abstraction.user_operation import UserOperationRequest


@pytest.fixture
def mock_session():
    """
    Mock async database session.

    Returns:
        AsyncMock: Mocked async session for database operations
    """
    session = AsyncMock()
    session.add = MagicMock()
    return session


@pytest.fixture
def user_operation():
    """Unsigned, unsponsored transfer operation."""
    return UserOperationRequest(
        sender="0x" + "11" * 20,
        nonce=7,
        init_code="0x",
        call_data="0xb61d27f6" + "00" * 96,
        call_gas_limit=110_000,
        verification_gas_limit=100_000,
        pre_verification_gas=50_000,
        max_fee_per_gas=2_000_000_000,
        max_priority_fee_per_gas=1_000_000_000,
    )

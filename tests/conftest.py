"""Pytest configuration and shared fixtures for all tests."""

import itertools
import os
import sys
from decimal import Decimal
from pathlib import Path
from unittest.mock import AsyncMock

# Minimal environment for Settings
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./paylink_test.db")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

# Add project root to PYTHONPATH
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import pytest
import pytest_asyncio

from paylink.config.database import create_engine, create_session_maker, init_db
from paylink.config.settings import Settings, load_settings
from paylink.models.account import Account
from paylink.services.interfaces import FeeData
from paylink.services.payment_service import PaymentContext, PaymentService

PAYMASTER_ADDRESS = "0x00000000000000000000000000000000000000aa"
USER_OP_HASH = "0x" + "ab" * 32


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings bound to a throwaway SQLite file."""
    return load_settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'paylink.db'}",
        environment="test",
        paymaster_address=PAYMASTER_ADDRESS,
        external_max_retries=2,
        external_call_timeout=2.0,
    )


@pytest_asyncio.fixture
async def engine(settings):
    """Engine with the schema created."""
    engine = create_engine(settings)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return create_session_maker(engine)


@pytest_asyncio.fixture
async def session(session_maker):
    """Session for direct repository access."""
    async with session_maker() as session:
        yield session


@pytest.fixture
def make_account(session_maker):
    """
    Factory creating committed accounts.

    Each account gets a distinct address and owner; defaults to a deployed
    account holding 100 tokens.
    """
    counter = itertools.count(1)

    async def _make(**fields) -> Account:
        i = next(counter)
        data = {
            "address": f"0x{i:040x}",
            "owner_address": f"0x{i + 0x1000:040x}",
            "balance": Decimal("100"),
            "is_deployed": True,
        }
        data.update(fields)
        async with session_maker() as s:
            account = Account(**data)
            s.add(account)
            await s.commit()
            await s.refresh(account)
            return account

    return _make


@pytest.fixture
def load_account(session_maker):
    """Read the committed state of an account."""

    async def _load(account_id: int) -> Account:
        async with session_maker() as s:
            return await s.get(Account, account_id)

    return _load


@pytest.fixture
def mock_fee_oracle():
    """Fee oracle returning 2 gwei / 1 gwei."""
    oracle = AsyncMock()
    oracle.get_fee_data = AsyncMock(
        return_value=FeeData(
            max_fee_per_gas=2_000_000_000,
            max_priority_fee_per_gas=1_000_000_000,
        )
    )
    return oracle


@pytest.fixture
def mock_relay():
    """Relay accepting every operation."""
    relay = AsyncMock()
    relay.send_user_operation = AsyncMock(return_value=USER_OP_HASH)
    relay.get_user_operation = AsyncMock(return_value=None)
    relay.get_user_operation_receipt = AsyncMock(return_value=None)
    return relay


@pytest.fixture
def mock_notifier():
    notifier = AsyncMock()
    notifier.send_claim_link = AsyncMock(return_value=None)
    return notifier


@pytest.fixture
def payment_context(settings, session_maker, mock_fee_oracle):
    """Context with only the required collaborators."""
    return PaymentContext(
        settings=settings,
        session_maker=session_maker,
        fee_oracle=mock_fee_oracle,
    )


@pytest.fixture
def payment_service(payment_context):
    return PaymentService(payment_context)

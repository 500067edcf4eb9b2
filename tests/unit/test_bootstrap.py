"""Unit tests for service wiring."""

from unittest.mock import MagicMock

import pytest

from paylink.bootstrap import close_payment_context, create_payment_context
from paylink.services.blockchain.chain_client import ChainClient
from paylink.services.external.bundler_client import BundlerClient
from paylink.services.external.notifier import LoggingNotifier
from paylink.services.external.sponsor_client import SponsorClient


def test_minimal_wiring(settings):
    context = create_payment_context(settings, MagicMock())

    assert isinstance(context.fee_oracle, ChainClient)
    assert context.balance_provider is context.fee_oracle
    assert context.relay is None
    assert context.sponsor_service is None
    assert isinstance(context.notifier, LoggingNotifier)


@pytest.mark.asyncio
async def test_full_wiring(settings):
    configured = settings.model_copy(
        update={
            "paymaster_enabled": True,
            "sponsor_api_url": "https://sponsor.example/rpc",
            "bundler_url": "https://bundler.example/rpc",
        }
    )

    context = create_payment_context(configured, MagicMock())

    assert isinstance(context.sponsor_service, SponsorClient)
    assert isinstance(context.relay, BundlerClient)
    await close_payment_context(context)

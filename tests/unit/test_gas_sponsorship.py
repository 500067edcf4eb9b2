"""Unit tests for GasSponsorshipService."""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from paylink.services.gas_sponsorship_service import GasSponsorshipService
from paylink.utils.exceptions import ExternalServiceError

PAYMASTER_ADDRESS = "0x" + "00" * 19 + "aa"
PAYMASTER_DATA = PAYMASTER_ADDRESS + "beef" * 8


@pytest.fixture
def sponsoring_settings(settings):
    return settings.model_copy(
        update={"paymaster_enabled": True, "sponsor_limit_per_account": 2}
    )


@pytest.fixture
def sponsor():
    service = AsyncMock()
    service.sponsor = AsyncMock(return_value=PAYMASTER_DATA)
    return service


class TestShouldSponsor:
    """Tests for the sponsorship budget check."""

    @pytest.mark.asyncio
    async def test_disabled_globally(self, mock_session, settings, sponsor):
        service = GasSponsorshipService(mock_session, settings, sponsor)
        assert await service.should_sponsor(1) is False

    @pytest.mark.asyncio
    async def test_under_limit(self, mock_session, sponsoring_settings, sponsor):
        service = GasSponsorshipService(mock_session, sponsoring_settings, sponsor)
        service.records.count_for_account = AsyncMock(return_value=1)
        assert await service.should_sponsor(1) is True

    @pytest.mark.asyncio
    async def test_limit_reached(self, mock_session, sponsoring_settings, sponsor):
        service = GasSponsorshipService(mock_session, sponsoring_settings, sponsor)
        service.records.count_for_account = AsyncMock(return_value=2)
        assert await service.should_sponsor(1) is False


class TestAttachPaymasterData:
    """Sponsor failures must degrade to an unsponsored operation."""

    @pytest.mark.asyncio
    async def test_attaches_data(
        self, mock_session, sponsoring_settings, sponsor, user_operation
    ):
        service = GasSponsorshipService(mock_session, sponsoring_settings, sponsor)
        result = await service.attach_paymaster_data(user_operation, True)
        assert result.paymaster_and_data == PAYMASTER_DATA
        assert result.user_op_hash is None
        sponsor.sponsor.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_sponsor_error_degrades(
        self, mock_session, sponsoring_settings, sponsor, user_operation
    ):
        sponsor.sponsor.side_effect = ExternalServiceError("sponsor down")
        service = GasSponsorshipService(mock_session, sponsoring_settings, sponsor)

        result = await service.attach_paymaster_data(user_operation, True)

        assert not result.paymaster_used

    @pytest.mark.asyncio
    async def test_unexpected_error_degrades(
        self, mock_session, sponsoring_settings, sponsor, user_operation
    ):
        sponsor.sponsor.side_effect = RuntimeError("boom")
        service = GasSponsorshipService(mock_session, sponsoring_settings, sponsor)
        assert not (await service.attach_paymaster_data(user_operation, True)).paymaster_used

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "data",
        ["", "0x", "not-hex", "0x" + "bb" * 20 + "beef", PAYMASTER_ADDRESS + "zz", 42],
    )
    async def test_unusable_data_degrades(
        self, mock_session, sponsoring_settings, sponsor, user_operation, data
    ):
        sponsor.sponsor.return_value = data
        service = GasSponsorshipService(mock_session, sponsoring_settings, sponsor)
        assert not (await service.attach_paymaster_data(user_operation, True)).paymaster_used

    @pytest.mark.asyncio
    async def test_not_sponsored_skips_call(
        self, mock_session, sponsoring_settings, sponsor, user_operation
    ):
        service = GasSponsorshipService(mock_session, sponsoring_settings, sponsor)
        result = await service.attach_paymaster_data(user_operation, False)
        assert not result.paymaster_used
        sponsor.sponsor.assert_not_awaited()


class TestRecordSponsorship:
    """Tests for the append-only audit."""

    @pytest.mark.asyncio
    async def test_records_when_budget_left(
        self, mock_session, sponsoring_settings, user_operation
    ):
        service = GasSponsorshipService(mock_session, sponsoring_settings)
        service.accounts.lock = AsyncMock(return_value=True)
        service.records.count_for_account = AsyncMock(return_value=0)
        service.records.create = AsyncMock(return_value="record")

        request = user_operation.with_paymaster(PAYMASTER_DATA)
        assert await service.record_sponsorship(1, request) == "record"

        kwargs = service.records.create.call_args.kwargs
        assert kwargs["paymaster_address"] == PAYMASTER_ADDRESS
        assert kwargs["gas_amount_wei"] == request.max_gas_cost_wei
        service.accounts.lock.assert_awaited_once_with(1)

    @pytest.mark.asyncio
    async def test_budget_race_returns_none(
        self, mock_session, sponsoring_settings, user_operation
    ):
        service = GasSponsorshipService(mock_session, sponsoring_settings)
        service.accounts.lock = AsyncMock(return_value=True)
        service.records.count_for_account = AsyncMock(return_value=2)
        service.records.create = AsyncMock()

        request = user_operation.with_paymaster(PAYMASTER_DATA)
        assert await service.record_sponsorship(1, request) is None
        service.records.create.assert_not_awaited()


def test_estimate_cost(mock_session, settings, user_operation):
    """Token estimate uses the configured native price."""
    service = GasSponsorshipService(mock_session, settings)
    wei, token = service.estimate_cost(user_operation)

    assert wei == 260_000 * 2_000_000_000
    # 0.00052 native * 2000
    assert token == Decimal("1.040000")

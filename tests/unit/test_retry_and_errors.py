"""Unit tests for the error taxonomy and external call retries."""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from paylink.services.base_service import BaseService, transaction
from paylink.utils.exceptions import (
    ConflictError,
    ExternalServiceError,
    HashComputationError,
    InvalidTransitionError,
    RelayRejectedError,
    StoreUnavailableError,
    ValidationError,
    is_duplicate_submission,
    is_retryable_read,
    is_store_unavailable,
)
from paylink.utils.retry import backoff_delay, call_with_retry, with_timeout


class TestExceptions:
    """Tests for the exception taxonomy."""

    def test_public_view_hides_context(self):
        error = ConflictError("Already claimed", escrow_id=5, current_status="CLAIMED")
        assert error.to_public() == {"error": "conflict", "message": "Already claimed"}
        assert error.context["current_status"] == "CLAIMED"

    def test_fatal_public_view_is_generic(self):
        error = HashComputationError("encode failed: bad nonce -1")
        public = error.to_public()
        assert "nonce" not in public["message"]
        assert public["error"] == "internal_error"

    def test_hierarchy(self):
        assert issubclass(InvalidTransitionError, ConflictError)
        assert issubclass(RelayRejectedError, ExternalServiceError)

    def test_categories(self):
        assert is_retryable_read(ExternalServiceError("down"))
        assert is_retryable_read(ConnectionError())
        assert not is_retryable_read(RelayRejectedError("AA21"))
        assert not is_retryable_read(ValidationError("bad"))
        assert is_store_unavailable(OperationalError("select 1", {}, Exception("gone")))

    def test_duplicate_submission(self):
        assert is_duplicate_submission(RelayRejectedError("already known"))
        assert is_duplicate_submission(
            RelayRejectedError("UserOperation already in mempool")
        )
        assert not is_duplicate_submission(RelayRejectedError("AA21 didn't pay prefund"))
        assert not is_duplicate_submission(ExternalServiceError("already known"))


class TestRetry:
    """Tests for call_with_retry and with_timeout."""

    def test_backoff_is_capped(self):
        assert backoff_delay(0, 0.5) == 0.5
        assert backoff_delay(2, 0.5) == 2.0
        assert backoff_delay(10, 0.5) == 8.0

    @pytest.mark.asyncio
    async def test_succeeds_after_transient_failure(self):
        call = AsyncMock(side_effect=[ConnectionError("reset"), "ok"])

        with patch("paylink.utils.retry.asyncio.sleep", new=AsyncMock()):
            result = await call_with_retry(call, "fee_data", max_retries=3)

        assert result == "ok"
        assert call.await_count == 2

    @pytest.mark.asyncio
    async def test_gives_up_with_external_error(self):
        call = AsyncMock(side_effect=ConnectionError("reset"))

        with patch("paylink.utils.retry.asyncio.sleep", new=AsyncMock()):
            with pytest.raises(ExternalServiceError):
                await call_with_retry(call, "fee_data", max_retries=3)

        assert call.await_count == 3

    @pytest.mark.asyncio
    async def test_non_retryable_propagates_immediately(self):
        call = AsyncMock(side_effect=ValueError("bad input"))

        with pytest.raises(ValueError):
            await call_with_retry(call, "fee_data", max_retries=3)

        assert call.await_count == 1

    @pytest.mark.asyncio
    async def test_timeout_becomes_external_error(self):
        async def slow():
            await asyncio.sleep(1)

        with pytest.raises(ExternalServiceError):
            await with_timeout(slow(), timeout=0.01, operation_name="slow")


class _Service(BaseService):
    @transaction
    async def fail_with(self, exc: Exception):
        raise exc


class TestTransactionDecorator:
    """Tests for the atomic unit decorator."""

    @pytest.mark.asyncio
    async def test_domain_error_rolls_back(self, mock_session):
        service = _Service(mock_session)
        with pytest.raises(ValidationError):
            await service.fail_with(ValidationError("bad"))
        mock_session.rollback.assert_awaited_once()
        mock_session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_store_failure_becomes_fatal(self, mock_session):
        service = _Service(mock_session)
        with pytest.raises(StoreUnavailableError):
            await service.fail_with(OperationalError("update", {}, Exception("gone")))
        mock_session.rollback.assert_awaited_once()

"""Unit tests for chain, sponsor and bundler adapters."""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from eth_account import Account
from eth_account.messages import encode_defunct
from web3.exceptions import Web3Exception

from paylink.services.blockchain.chain_client import ChainClient
from paylink.services.external.bundler_client import BundlerClient
from paylink.services.external.signer import LocalAccountSigner
from paylink.services.external.sponsor_client import SponsorClient
from paylink.utils.exceptions import ExternalServiceError

TEST_KEY = "0x" + "4c" * 32


async def _value(value):
    return value


@pytest.fixture
def mock_web3():
    """AsyncWeb3 stand-in with a token contract."""
    web3 = MagicMock()
    web3.eth.get_block = AsyncMock(return_value={"baseFeePerGas": 100})
    web3.eth.get_code = AsyncMock(return_value=b"")
    contract = MagicMock()
    contract.functions.balanceOf.return_value.call = AsyncMock(return_value=12_500_000)
    web3.eth.contract.return_value = contract
    return web3


class TestChainClient:
    """Tests for ChainClient."""

    @pytest.mark.asyncio
    async def test_fee_data(self, settings, mock_web3):
        mock_web3.eth.max_priority_fee = _value(7)
        client = ChainClient(settings, web3=mock_web3)

        fees = await client.get_fee_data()

        assert fees.max_priority_fee_per_gas == 7
        assert fees.max_fee_per_gas == 100 * 2 + 7

    @pytest.mark.asyncio
    async def test_token_balance_scaled(self, settings, mock_web3):
        client = ChainClient(settings, web3=mock_web3)
        assert await client.get_token_balance("0x" + "11" * 20) == Decimal("12.5")

    @pytest.mark.asyncio
    async def test_deployment_state(self, settings, mock_web3):
        client = ChainClient(settings, web3=mock_web3)
        assert await client.is_deployed("0x" + "11" * 20) is False

        mock_web3.eth.get_code.return_value = b"\x60\x80"
        assert await client.is_deployed("0x" + "11" * 20) is True

    @pytest.mark.asyncio
    async def test_provider_error_is_external(self, settings, mock_web3):
        mock_web3.eth.get_code.side_effect = Web3Exception("rpc down")
        client = ChainClient(settings, web3=mock_web3)
        with pytest.raises(ExternalServiceError):
            await client.is_deployed("0x" + "11" * 20)


class TestJsonRpcAdapters:
    """Tests for sponsor and bundler clients over a mocked transport."""

    @pytest.mark.asyncio
    async def test_sponsor_accepts_object_result(self, settings):
        rpc = AsyncMock()
        rpc.call = AsyncMock(return_value={"paymasterAndData": "0xabc"})
        client = SponsorClient(settings, rpc=rpc)

        assert await client.sponsor({"sender": "0x1"}, "0xentry") == "0xabc"
        rpc.call.assert_awaited_once_with(
            "pm_sponsorUserOperation", [{"sender": "0x1"}, "0xentry"]
        )

    @pytest.mark.asyncio
    async def test_sponsor_missing_data(self, settings):
        rpc = AsyncMock()
        rpc.call = AsyncMock(return_value={})
        with pytest.raises(ExternalServiceError):
            await SponsorClient(settings, rpc=rpc).sponsor({}, "0xentry")

    @pytest.mark.asyncio
    async def test_bundler_methods(self, settings):
        rpc = AsyncMock()
        rpc.call = AsyncMock(side_effect=["0xhash", None, {"success": True}])
        client = BundlerClient(settings, rpc=rpc)

        assert await client.send_user_operation({"nonce": "0x0"}, "0xentry") == "0xhash"
        assert await client.get_user_operation("0xhash") is None
        assert await client.get_user_operation_receipt("0xhash") == {"success": True}
        assert rpc.call.await_args_list[0].args[0] == "eth_sendUserOperation"
        assert rpc.call.await_args_list[1].args[0] == "eth_getUserOperationByHash"
        assert rpc.call.await_args_list[2].args[0] == "eth_getUserOperationReceipt"

    def test_unconfigured_urls(self, settings):
        with pytest.raises(ValueError):
            SponsorClient(settings)
        with pytest.raises(ValueError):
            BundlerClient(settings)


class TestLocalAccountSigner:
    """Tests for LocalAccountSigner."""

    @pytest.mark.asyncio
    async def test_signature_recovers_owner(self):
        signer = LocalAccountSigner(TEST_KEY)
        user_op_hash = "0x" + "ab" * 32

        signature = await signer.sign(user_op_hash)

        assert signature.startswith("0x")
        recovered = Account.recover_message(
            encode_defunct(hexstr=user_op_hash), signature=signature
        )
        assert recovered == signer.address

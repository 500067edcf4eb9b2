"""
Chain client.

Read-only AsyncWeb3 access used by the builder: EIP-1559 fee data, token
balances and smart-account deployment state. Provider failures surface as
ExternalServiceError so callers can retry them with backoff.
"""

from decimal import Decimal

import aiohttp
from eth_utils import to_checksum_address
from loguru import logger
from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.exceptions import Web3Exception

from paylink.config.constants import ERC20_ABI
from paylink.config.settings import Settings
from paylink.services.interfaces import FeeData
from paylink.utils.exceptions import ExternalServiceError
from paylink.utils.security import mask_address

# maxFeePerGas = base fee * multiplier + priority fee
BASE_FEE_MULTIPLIER = 2


class ChainClient:
    """FeeOracle, BalanceProvider and DeploymentChecker over JSON-RPC."""

    def __init__(self, settings: Settings, web3: AsyncWeb3 | None = None) -> None:
        """
        Initialize chain client.

        Args:
            settings: Application settings (rpc_url, token contract)
            web3: Preconfigured AsyncWeb3 instance (tests)
        """
        self.settings = settings
        self.web3 = web3 or AsyncWeb3(
            AsyncHTTPProvider(
                settings.rpc_url,
                request_kwargs={"timeout": settings.external_call_timeout},
            )
        )
        self.token = self.web3.eth.contract(
            address=to_checksum_address(settings.token_contract_address),
            abi=ERC20_ABI,
        )

    async def get_fee_data(self) -> FeeData:
        """Current EIP-1559 fee fields."""
        try:
            block = await self.web3.eth.get_block("latest")
            priority = await self.web3.eth.max_priority_fee
        except (Web3Exception, aiohttp.ClientError) as e:
            logger.warning(f"Fee data lookup failed: {e}")
            raise ExternalServiceError("Fee data unavailable", error=str(e)) from e

        base_fee = block.get("baseFeePerGas", 0)
        return FeeData(
            max_fee_per_gas=int(base_fee) * BASE_FEE_MULTIPLIER + int(priority),
            max_priority_fee_per_gas=int(priority),
        )

    async def get_token_balance(self, address: str) -> Decimal:
        """Token balance of an address in token units."""
        try:
            raw = await self.token.functions.balanceOf(
                to_checksum_address(address)
            ).call()
        except (Web3Exception, aiohttp.ClientError) as e:
            logger.warning(f"Balance lookup failed for {mask_address(address)}: {e}")
            raise ExternalServiceError(
                "Balance unavailable", address=mask_address(address)
            ) from e
        return Decimal(raw).scaleb(-self.settings.token_decimals)

    async def is_deployed(self, address: str) -> bool:
        """True when contract code exists at the address."""
        try:
            code = await self.web3.eth.get_code(to_checksum_address(address))
        except (Web3Exception, aiohttp.ClientError) as e:
            logger.warning(f"Code lookup failed for {mask_address(address)}: {e}")
            raise ExternalServiceError(
                "Deployment state unavailable", address=mask_address(address)
            ) from e
        return len(code) > 0

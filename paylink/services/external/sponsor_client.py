"""
Paymaster sponsor client.
"""

from typing import Any

from paylink.config.settings import Settings
from paylink.services.external.json_rpc import JsonRpcClient
from paylink.utils.exceptions import ExternalServiceError


class SponsorClient:
    """SponsorService over the pm_sponsorUserOperation RPC."""

    def __init__(self, settings: Settings, rpc: JsonRpcClient | None = None) -> None:
        if rpc is None:
            if not settings.sponsor_api_url:
                raise ValueError("SPONSOR_API_URL is not configured")
            headers = {}
            if settings.sponsor_api_key:
                headers["Authorization"] = f"Bearer {settings.sponsor_api_key}"
            rpc = JsonRpcClient(
                settings.sponsor_api_url,
                timeout=settings.external_call_timeout,
                headers=headers,
            )
        self.rpc = rpc

    async def sponsor(self, user_operation: dict[str, Any], entry_point: str) -> str:
        """Return paymasterAndData for the operation."""
        result = await self.rpc.call(
            "pm_sponsorUserOperation", [user_operation, entry_point]
        )
        # Providers answer either with the hex string or an object
        if isinstance(result, dict):
            result = result.get("paymasterAndData")
        if not isinstance(result, str):
            raise ExternalServiceError("Sponsor returned no paymaster data")
        return result

    async def close(self) -> None:
        await self.rpc.close()

"""
Bundler (relay) client.
"""

from typing import Any

from paylink.config.settings import Settings
from paylink.services.external.json_rpc import JsonRpcClient


class BundlerClient:
    """Relay over the standard ERC-4337 bundler RPC."""

    def __init__(self, settings: Settings, rpc: JsonRpcClient | None = None) -> None:
        if rpc is None:
            if not settings.bundler_url:
                raise ValueError("BUNDLER_URL is not configured")
            rpc = JsonRpcClient(
                settings.bundler_url, timeout=settings.external_call_timeout
            )
        self.rpc = rpc

    async def send_user_operation(
        self, user_operation: dict[str, Any], entry_point: str
    ) -> str:
        return await self.rpc.call(
            "eth_sendUserOperation", [user_operation, entry_point]
        )

    async def get_user_operation(self, user_op_hash: str) -> dict[str, Any] | None:
        return await self.rpc.call("eth_getUserOperationByHash", [user_op_hash])

    async def get_user_operation_receipt(
        self, user_op_hash: str
    ) -> dict[str, Any] | None:
        return await self.rpc.call("eth_getUserOperationReceipt", [user_op_hash])

    async def close(self) -> None:
        await self.rpc.close()

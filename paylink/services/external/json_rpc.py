"""
JSON-RPC over HTTP.

Shared aiohttp transport for the sponsor service and the bundler. Transport
problems raise ExternalServiceError; an error object in the response
raises RelayRejectedError.
"""

from itertools import count
from typing import Any

import aiohttp
from loguru import logger

from paylink.utils.exceptions import ExternalServiceError, RelayRejectedError


class JsonRpcClient:
    """Minimal JSON-RPC 2.0 client with a lazily created session."""

    def __init__(
        self,
        url: str,
        timeout: float,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self.headers = {"Content-Type": "application/json", **(headers or {})}
        self._session: aiohttp.ClientSession | None = None
        self._ids = count(1)

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()

    async def call(self, method: str, params: list[Any]) -> Any:
        """
        Make a JSON-RPC call.

        Args:
            method: RPC method name
            params: RPC parameters

        Returns:
            The "result" member of the response

        Raises:
            ExternalServiceError: Transport failure or non-200 response
            RelayRejectedError: Response carried an error object
        """
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params,
        }
        session = await self._get_session()

        try:
            async with session.post(
                self.url,
                json=payload,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers=self.headers,
            ) as response:
                if response.status != 200:
                    logger.warning(f"RPC {method} failed: HTTP {response.status}")
                    raise ExternalServiceError(
                        f"{method} returned HTTP {response.status}",
                        method=method,
                        status=response.status,
                    )
                data = await response.json(content_type=None)
        except (aiohttp.ClientError, TimeoutError) as e:
            raise ExternalServiceError(f"{method} transport error", method=method) from e

        if not isinstance(data, dict):
            raise ExternalServiceError(f"{method} returned malformed response")

        error = data.get("error")
        if error:
            message = error.get("message") if isinstance(error, dict) else str(error)
            logger.debug(f"RPC {method} error: {error}")
            raise RelayRejectedError(
                message or f"{method} rejected",
                method=method,
                rpc_code=error.get("code") if isinstance(error, dict) else None,
            )

        return data.get("result")

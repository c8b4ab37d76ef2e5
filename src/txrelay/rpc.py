"""
Async JSON-RPC client for EVM nodes.

Used for health probes and for submitting pre-signed transactions.
Fallback across endpoints is the provider manager's job, so one client
talks to exactly one url.
"""

import asyncio
from typing import Any, Optional

import aiohttp
import structlog

from .errors import ProbeTimeout, ProviderUnhealthy, RPCError

logger = structlog.get_logger()


class RPCClient:
    """
    JSON-RPC client bound to a single endpoint.

    Features:
    - Connection pooling via aiohttp (own session or a shared one)
    - Request ID tracking
    - Non-2xx, JSON-RPC errors and malformed bodies raise ProviderUnhealthy
    """

    def __init__(
        self,
        url: str,
        timeout: float = 10,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.url = url
        self.timeout = aiohttp.ClientTimeout(total=timeout)

        self._request_id = 0
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self):
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._owns_session and self._session:
            await self._session.close()
            self._session = None

    def _next_request_id(self) -> int:
        self._request_id += 1
        return self._request_id

    async def call(self, method: str, params: Optional[list[Any]] = None, request_id: Optional[int] = None) -> Any:
        """Make a single RPC call. No retries here."""
        if self._session is None:
            raise RPCError("RPCClient used outside of 'async with'")

        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params or [],
            "id": request_id if request_id is not None else self._next_request_id(),
        }

        async with self._session.post(self.url, json=payload, timeout=self.timeout) as resp:
            if not 200 <= resp.status < 300:
                raise ProviderUnhealthy(
                    f"HTTP {resp.status}: {await resp.text()}", url=self.url, status=resp.status
                )

            try:
                data = await resp.json(content_type=None)
            except ValueError as e:
                raise ProviderUnhealthy(f"Malformed JSON-RPC response: {e}", url=self.url) from e

            if not isinstance(data, dict):
                raise ProviderUnhealthy("Malformed JSON-RPC response: not an object", url=self.url)

            if "error" in data:
                error = data["error"]
                message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
                raise ProviderUnhealthy(f"RPC error: {message}", url=self.url)

            return data.get("result")

    async def get_block_number(self) -> int:
        """Get the latest block number."""
        result = await self.call("eth_blockNumber", [])
        if not result:
            raise ProviderUnhealthy("Empty eth_blockNumber result", url=self.url)
        return int(result, 16)

    async def send_raw_transaction(self, raw_tx: str) -> str:
        """Broadcast a signed transaction and return its hash."""
        result = await self.call("eth_sendRawTransaction", [raw_tx])
        if not result:
            raise RPCError("eth_sendRawTransaction returned no hash")
        logger.debug("Broadcast transaction", rpc_url=self.url[:50], tx_hash=result)
        return result


async def probe_block_number(
    session: aiohttp.ClientSession,
    url: str,
    timeout: float = 5.0,
) -> bool:
    """
    Liveness probe: eth_blockNumber with request id 1.

    Healthy means HTTP 2xx and a truthy 'result' within the timeout.
    Raises on anything else; callers decide what a failure means.
    """
    client = RPCClient(url, timeout=timeout, session=session)
    try:
        async with client:
            result = await asyncio.wait_for(client.call("eth_blockNumber", [], request_id=1), timeout)
    except asyncio.TimeoutError as e:
        raise ProbeTimeout(f"Probe timed out after {timeout}s", url=url) from e

    if not result:
        raise ProviderUnhealthy("Probe returned no result", url=url)
    return True

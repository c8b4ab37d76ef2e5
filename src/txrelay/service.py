"""
RPC service: one entry point for JSON-RPC calls on a network.

Every request waits for a rate limit slot on the chosen provider, then goes
through the provider manager's fallback (which also feeds the monitor).
Errors the classifier marks as not retryable are re-raised as RPCError with
a user-facing message.
"""

from typing import Any, Awaitable, Callable, Optional, TypeVar

import aiohttp
import structlog

from .errors import RPCError, classify_error
from .providers.manager import RpcProviderManager
from .providers.rate_limiter import RateLimiter
from .rpc import RPCClient

logger = structlog.get_logger()

T = TypeVar("T")


class RpcService:
    """
    Rate-limited, fallback-aware JSON-RPC access.

    Usage:
        async with RpcService(manager) as service:
            head = await service.get_block_number()
    """

    def __init__(
        self,
        manager: RpcProviderManager,
        rate_limiter: Optional[RateLimiter] = None,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 10,
    ):
        self.manager = manager
        self.rate_limiter = rate_limiter or RateLimiter()
        self.timeout = timeout

        self._session = session
        self._owns_session = session is None

    async def __aenter__(self):
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout))
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._owns_session and self._session:
            await self._session.close()
            self._session = None

    async def _run(self, call: Callable[[RPCClient], Awaitable[T]], max_retries: int) -> T:
        if self._session is None:
            raise RPCError("RpcService used outside of 'async with'")

        async def operation(url: str) -> T:
            await self.rate_limiter.wait_for_slot(url)
            async with RPCClient(url, timeout=self.timeout, session=self._session) as client:
                try:
                    return await call(client)
                except Exception as e:
                    classified = classify_error(e)
                    if not classified.retryable:
                        raise RPCError(f"{classified.friendly_message} ({e})") from e
                    raise

        return await self.manager.execute_with_fallback(operation, max_attempts=max_retries)

    async def execute_request(self, method: str, params: Optional[list[Any]] = None, max_retries: int = 3) -> Any:
        return await self._run(lambda client: client.call(method, params or []), max_retries)

    async def _quantity(self, method: str, params: Optional[list[Any]] = None) -> int:
        result = await self.execute_request(method, params)
        if not isinstance(result, str) or not result.startswith("0x"):
            raise RPCError(f"{method} returned a non-hex result: {result!r}")
        return int(result, 16)

    async def get_block_number(self) -> int:
        return await self._quantity("eth_blockNumber")

    async def get_balance(self, address: str) -> int:
        """Balance in wei at the latest block."""
        return await self._quantity("eth_getBalance", [address, "latest"])

    async def get_gas_price(self) -> int:
        """Gas price in wei."""
        return await self._quantity("eth_gasPrice")

    async def send_raw_transaction(self, raw_tx: str, max_retries: int = 3) -> str:
        return await self._run(lambda client: client.send_raw_transaction(raw_tx), max_retries)

    def get_provider_stats(self) -> list[dict[str, Any]]:
        return self.manager.get_provider_stats()

    def get_performance_stats(self) -> list[dict[str, Any]]:
        return self.manager.get_performance_stats()

    def get_rate_limit_stats(self, url: str) -> dict[str, int]:
        return self.rate_limiter.get_stats(url)

    def get_best_provider(self) -> Optional[str]:
        return self.manager.get_best_provider()

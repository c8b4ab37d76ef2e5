"""
RPC Provider Manager: picks the endpoint to use and runs operations with fallback.

Providers are tried in priority order (lower first). Health results are
cached for the network's health_check_interval so degraded endpoints are not
probed on every call, and recover on their own once a later probe passes.
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, Optional, TypeVar

import aiohttp
import structlog

from ..config import NetworkRpcConfig, RpcProvider, get_rpc_config
from ..errors import AllProvidersExhausted, classify_error
from ..rpc import probe_block_number
from .health import ProviderHealthTracker
from .monitor import RpcMonitor

logger = structlog.get_logger()

T = TypeVar("T")

PROBE_TIMEOUT_SECONDS = 5.0


class RpcProviderManager:
    """
    Endpoint selection and fallback for one network.

    Features:
    - Priority-based selection with lazy, TTL-cached health probes
    - Fail-open: with no healthy provider the first by priority is returned
    - Per-provider retry budget in execute_with_fallback
    - Latency / success tracking per provider
    """

    def __init__(
        self,
        config: NetworkRpcConfig,
        tracker: Optional[ProviderHealthTracker] = None,
        monitor: Optional[RpcMonitor] = None,
        probe: Optional[Callable[[str], Awaitable[bool]]] = None,
        probe_timeout: float = PROBE_TIMEOUT_SECONDS,
    ):
        if not config.providers:
            raise ValueError(f"No RPC providers configured for chain {config.chain_id}")

        self.config = config
        self.tracker = tracker or ProviderHealthTracker()
        self.monitor = monitor or RpcMonitor()
        self.probe_timeout = probe_timeout

        self._probe = probe or self._probe_http
        self._http_session: Optional[aiohttp.ClientSession] = None
        self._session_loop: Optional[asyncio.AbstractEventLoop] = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self) -> None:
        if self._http_session:
            if self._session_loop is asyncio.get_running_loop():
                await self._http_session.close()
            self._http_session = None
            self._session_loop = None

    @property
    def providers(self) -> list[RpcProvider]:
        return self.config.sorted_providers()

    def _get_http_session(self) -> aiohttp.ClientSession:
        """Probe session for the running loop; sessions cannot cross event loops."""
        loop = asyncio.get_running_loop()
        if self._http_session is None or self._http_session.closed or self._session_loop is not loop:
            if self._http_session is not None and not self._http_session.closed:
                logger.debug("Event loop changed, replacing probe session", chain_id=self.config.chain_id)
            self._http_session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.probe_timeout)
            )
            self._session_loop = loop
        return self._http_session

    async def _probe_http(self, url: str) -> bool:
        session = self._get_http_session()
        return await probe_block_number(session, url, timeout=self.probe_timeout)

    async def is_healthy(self, provider: RpcProvider) -> bool:
        """Cached health flag, re-probed once the TTL has passed. Never raises."""
        return await self.tracker.check(
            provider.url,
            self.config.health_check_interval,
            self._probe,
        )

    async def get_active_provider(self) -> str:
        """First healthy provider by priority; the first overall if none is healthy."""
        providers = self.providers
        for provider in providers:
            if await self.is_healthy(provider):
                return provider.url

        logger.warning(
            "No healthy RPC provider, using first by priority",
            chain_id=self.config.chain_id,
            rpc_url=providers[0].url[:50],
        )
        return providers[0].url

    async def execute_with_fallback(
        self,
        operation: Callable[[str], Awaitable[T]],
        max_attempts: int = 3,
    ) -> T:
        """
        Run operation(url) against providers in priority order.

        Each provider gets min(max_attempts, provider.max_retries) attempts.
        Returns the first success. When everything fails the last error is
        re-raised; AllProvidersExhausted is raised if nothing was attempted.
        """
        last_error: Optional[Exception] = None
        attempts = 0

        for provider in self.providers:
            budget = min(max_attempts, provider.max_retries)

            for attempt in range(budget):
                attempts += 1
                start = time.monotonic()
                try:
                    result = await operation(provider.url)
                except Exception as e:
                    latency_ms = (time.monotonic() - start) * 1000
                    last_error = e
                    self.tracker.record(provider.url, False)
                    self.monitor.record_request(provider.url, False, latency_ms)

                    classified = classify_error(e)
                    logger.warning(
                        "RPC operation failed",
                        chain_id=self.config.chain_id,
                        rpc_url=provider.url[:50],
                        attempt=attempt + 1,
                        budget=budget,
                        error_type=classified.type.value,
                        hint=classified.friendly_message,
                        error=str(e),
                    )
                    continue

                latency_ms = (time.monotonic() - start) * 1000
                self.tracker.record(provider.url, True)
                self.monitor.record_request(provider.url, True, latency_ms)
                return result

        if last_error is not None:
            logger.error(
                "All RPC providers failed",
                chain_id=self.config.chain_id,
                attempts=attempts,
                error=str(last_error),
            )
            raise last_error

        raise AllProvidersExhausted(f"All RPC providers failed for chain {self.config.chain_id}")

    def get_provider_stats(self) -> list[dict[str, Any]]:
        """Snapshot of health per provider. Does not probe."""
        stats = []
        for provider in self.config.providers:
            record = self.tracker.get(provider.url)
            stats.append(
                {
                    "url": provider.url,
                    "priority": provider.priority,
                    "healthy": record.healthy,
                    "last_checked_at": record.last_checked_at,
                }
            )
        return stats

    def get_performance_stats(self) -> list[dict[str, Any]]:
        return self.monitor.get_stats()

    def get_best_provider(self) -> Optional[str]:
        return self.monitor.get_best_provider()


# Shared across networks
_shared_tracker = ProviderHealthTracker()
_managers: dict[int, RpcProviderManager] = {}


def get_provider_manager(chain_id: int) -> RpcProviderManager:
    """Get or create the manager for a chain. All of them share one health tracker."""
    manager = _managers.get(chain_id)
    if manager is None:
        config = get_rpc_config(chain_id)
        if config is None:
            raise ValueError(f"No RPC config for chain {chain_id}")
        manager = RpcProviderManager(config, tracker=_shared_tracker)
        _managers[chain_id] = manager
    return manager


async def close_provider_managers() -> None:
    """Close and forget every cached manager. The health tracker is kept."""
    managers = list(_managers.values())
    _managers.clear()
    for manager in managers:
        await manager.close()

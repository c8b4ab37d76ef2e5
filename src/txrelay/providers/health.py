"""
Provider health tracking: last known status and probe time per url.
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

import structlog

from ..models import now_ms

logger = structlog.get_logger()


@dataclass(frozen=True)
class HealthRecord:
    healthy: bool = True
    last_checked_at: int = 0  # ms; 0 = never probed


class ProviderHealthTracker:
    """
    Per-url health flags with a TTL cache.

    Features:
    - Records are replaced whole, so flag and timestamp always move together
    - One asyncio.Lock per url: concurrent reads after the TTL share a probe
    - Shared safely between managers of different networks
    """

    def __init__(self, clock: Callable[[], int] = now_ms):
        self._clock = clock
        self._records: dict[str, HealthRecord] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def get(self, url: str) -> HealthRecord:
        return self._records.get(url, HealthRecord())

    def record(self, url: str, healthy: bool) -> HealthRecord:
        """Store a fresh result for url, stamped now."""
        record = HealthRecord(healthy=healthy, last_checked_at=self._clock())
        previous = self._records.get(url)
        self._records[url] = record

        if previous is not None and previous.healthy != healthy:
            logger.info(
                "Provider health changed",
                rpc_url=url[:50],
                healthy=healthy,
            )
        return record

    def is_fresh(self, url: str, ttl_ms: int) -> bool:
        return self._clock() - self.get(url).last_checked_at < ttl_ms

    async def check(
        self,
        url: str,
        ttl_ms: int,
        probe: Callable[[str], Awaitable[bool]],
    ) -> bool:
        """
        Cached flag while fresh, otherwise run probe(url) and store the result.

        probe may raise; any exception counts as unhealthy.
        """
        if self.is_fresh(url, ttl_ms):
            return self.get(url).healthy

        lock = self._locks.setdefault(url, asyncio.Lock())
        async with lock:
            # Another caller may have probed while we waited
            if self.is_fresh(url, ttl_ms):
                return self.get(url).healthy

            try:
                healthy = bool(await probe(url))
            except Exception as e:
                logger.debug("Health probe failed", rpc_url=url[:50], error=str(e))
                healthy = False

            return self.record(url, healthy).healthy

    def reset(self, url: Optional[str] = None) -> None:
        if url is None:
            self._records.clear()
        else:
            self._records.pop(url, None)

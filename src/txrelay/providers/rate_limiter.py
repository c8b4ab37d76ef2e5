"""
Sliding-window rate limiter keyed by provider url.

Each key may make max_requests calls in any window_ms span. Callers that
find the window full poll until the oldest request ages out.
"""

import asyncio
from collections import deque
from typing import Callable

import structlog

from ..models import now_ms

logger = structlog.get_logger()

DEFAULT_MAX_REQUESTS = 100
DEFAULT_WINDOW_MS = 60_000
POLL_INTERVAL_SECONDS = 0.1


class RateLimiter:
    def __init__(
        self,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        window_ms: int = DEFAULT_WINDOW_MS,
        clock: Callable[[], int] = now_ms,
        poll_interval: float = POLL_INTERVAL_SECONDS,
    ):
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")

        self.max_requests = max_requests
        self.window_ms = window_ms
        self.poll_interval = poll_interval
        self._clock = clock
        self._requests: dict[str, deque] = {}

    def _prune(self, key: str, now: int) -> deque:
        requests = self._requests.setdefault(key, deque())
        while requests and now - requests[0] >= self.window_ms:
            requests.popleft()
        return requests

    def check_limit(self, key: str) -> bool:
        """Take a slot if one is free. Returns False when the window is full."""
        now = self._clock()
        requests = self._prune(key, now)
        if len(requests) >= self.max_requests:
            return False
        requests.append(now)
        return True

    async def wait_for_slot(self, key: str) -> None:
        waited = False
        while not self.check_limit(key):
            if not waited:
                logger.debug("Rate limit reached, waiting for slot", rpc_url=key[:50])
                waited = True
            await asyncio.sleep(self.poll_interval)

    def reset(self, key: str) -> None:
        self._requests.pop(key, None)

    def get_stats(self, key: str) -> dict[str, int]:
        current = len(self._prune(key, self._clock()))
        return {
            "current": current,
            "max": self.max_requests,
            "remaining": self.max_requests - current,
        }

"""
RPC performance monitor: request counts and rolling latency per provider.
"""

from collections import deque
from dataclasses import dataclass, field
from typing import Optional

from ..models import now_ms

LATENCY_WINDOW = 100


@dataclass
class ProviderMetrics:
    url: str
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    last_request_at: int = 0
    latencies: deque = field(default_factory=lambda: deque(maxlen=LATENCY_WINDOW))

    @property
    def average_latency_ms(self) -> float:
        if not self.latencies:
            return 0.0
        return sum(self.latencies) / len(self.latencies)

    @property
    def success_rate(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.successful_requests / self.total_requests


class RpcMonitor:
    def __init__(self):
        self._metrics: dict[str, ProviderMetrics] = {}

    def record_request(self, url: str, success: bool, latency_ms: float) -> None:
        metrics = self._metrics.setdefault(url, ProviderMetrics(url=url))
        metrics.total_requests += 1
        if success:
            metrics.successful_requests += 1
        else:
            metrics.failed_requests += 1
        metrics.last_request_at = now_ms()
        metrics.latencies.append(latency_ms)

    def get_best_provider(self) -> Optional[str]:
        """Highest success rate minus average latency in seconds."""
        best_url = None
        best_score = float("-inf")
        for url, metrics in self._metrics.items():
            score = metrics.success_rate * 100 - metrics.average_latency_ms / 1000
            if score > best_score:
                best_score = score
                best_url = url
        return best_url

    def get_stats(self) -> list[dict]:
        return [
            {
                "url": m.url,
                "total_requests": m.total_requests,
                "successful_requests": m.successful_requests,
                "failed_requests": m.failed_requests,
                "success_rate": round(m.success_rate, 4),
                "average_latency_ms": round(m.average_latency_ms, 1),
                "last_request_at": m.last_request_at,
            }
            for m in self._metrics.values()
        ]

"""
RPC provider selection, health tracking and fallback.
"""

from .health import HealthRecord, ProviderHealthTracker
from .manager import RpcProviderManager, close_provider_managers, get_provider_manager
from .monitor import ProviderMetrics, RpcMonitor
from .rate_limiter import RateLimiter

__all__ = [
    "HealthRecord",
    "ProviderHealthTracker",
    "RpcProviderManager",
    "close_provider_managers",
    "get_provider_manager",
    "ProviderMetrics",
    "RpcMonitor",
    "RateLimiter",
]

"""
txrelay: submit blockchain transactions over unreliable JSON-RPC endpoints.
"""

from .config import NetworkRpcConfig, RpcProvider, get_rpc_config
from .errors import (
    AllProvidersExhausted,
    ProbeTimeout,
    ProviderUnhealthy,
    RPCError,
    TransactionSubmissionFailed,
)
from .models import QueuedTransaction, QueueEvent, QueueRunState, TransactionStatus
from .providers import ProviderHealthTracker, RateLimiter, RpcProviderManager, get_provider_manager
from .queue import QueueStore, TransactionQueueEngine
from .rpc import RPCClient
from .service import RpcService

__all__ = [
    "NetworkRpcConfig",
    "RpcProvider",
    "get_rpc_config",
    "AllProvidersExhausted",
    "ProbeTimeout",
    "ProviderUnhealthy",
    "RPCError",
    "TransactionSubmissionFailed",
    "QueuedTransaction",
    "QueueEvent",
    "QueueRunState",
    "TransactionStatus",
    "ProviderHealthTracker",
    "RateLimiter",
    "RpcProviderManager",
    "get_provider_manager",
    "QueueStore",
    "TransactionQueueEngine",
    "RPCClient",
    "RpcService",
]

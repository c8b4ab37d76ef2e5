"""
RPC endpoint configuration per network.

Config file (rpcs.json):
{
    "chain_id": 8453,
    "health_check_interval": 60000,
    "rpcs": [
        {"url": "https://rpc1.example.com", "priority": 1, "max_retries": 3},
        {"url": "https://rpc2.example.com", "priority": 2, "max_retries": 2}
    ]
}
"""

import json
import os
from pathlib import Path
from typing import Optional

import structlog
from dotenv import load_dotenv
from pydantic import BaseModel, Field

logger = structlog.get_logger()

load_dotenv()

DEFAULT_HEALTH_CHECK_INTERVAL_MS = 60_000


class RpcProvider(BaseModel):
    url: str
    priority: int = 1  # Lower = tried first
    max_retries: int = Field(default=3, ge=0)


class NetworkRpcConfig(BaseModel):
    chain_id: int
    providers: list[RpcProvider]
    health_check_interval: int = Field(
        default=DEFAULT_HEALTH_CHECK_INTERVAL_MS,
        description="How long (ms) a health result is trusted before re-probing",
    )

    def sorted_providers(self) -> list[RpcProvider]:
        """Providers by ascending priority; sorted() is stable so ties keep declaration order."""
        return sorted(self.providers, key=lambda p: p.priority)


BASE_RPC_CONFIG = NetworkRpcConfig(
    chain_id=8453,
    health_check_interval=60_000,
    providers=[
        RpcProvider(url="https://mainnet.base.org", priority=1, max_retries=3),
        RpcProvider(url="https://base.llamarpc.com", priority=2, max_retries=3),
        RpcProvider(url="https://base.blockpi.network/v1/rpc/public", priority=3, max_retries=2),
        RpcProvider(url="https://base-rpc.publicnode.com", priority=4, max_retries=2),
        RpcProvider(url="https://1rpc.io/base", priority=5, max_retries=2),
    ],
)

BASE_SEPOLIA_RPC_CONFIG = NetworkRpcConfig(
    chain_id=84532,
    health_check_interval=60_000,
    providers=[
        RpcProvider(url="https://sepolia.base.org", priority=1, max_retries=3),
        RpcProvider(url="https://base-sepolia.blockpi.network/v1/rpc/public", priority=2, max_retries=2),
        RpcProvider(url="https://base-sepolia-rpc.publicnode.com", priority=3, max_retries=2),
    ],
)

NETWORK_CONFIGS: dict[int, NetworkRpcConfig] = {
    BASE_RPC_CONFIG.chain_id: BASE_RPC_CONFIG,
    BASE_SEPOLIA_RPC_CONFIG.chain_id: BASE_SEPOLIA_RPC_CONFIG,
}


def load_rpc_config(path: Path, chain_id: Optional[int] = None) -> NetworkRpcConfig:
    """Load a network config from a JSON file in the {"rpcs": [...]} shape."""
    with open(path) as f:
        data = json.load(f)

    rpcs = data.get("rpcs", [])
    if not rpcs:
        raise ValueError(f"No RPC providers in {path}")

    resolved_chain_id = chain_id if chain_id is not None else data.get("chain_id")
    if resolved_chain_id is None:
        raise ValueError(f"No chain_id in {path} and none given")

    return NetworkRpcConfig(
        chain_id=resolved_chain_id,
        providers=[RpcProvider(**rpc) for rpc in rpcs],
        health_check_interval=data.get("health_check_interval", DEFAULT_HEALTH_CHECK_INTERVAL_MS),
    )


def get_rpc_config(chain_id: int) -> Optional[NetworkRpcConfig]:
    """
    Get the RPC config for a chain.

    TXRELAY_RPC_CONFIG (a JSON file) wins over the built-in tables when it
    describes the same chain. TXRELAY_HEALTH_CHECK_INTERVAL_MS overrides the
    probe TTL.
    """
    config: Optional[NetworkRpcConfig] = None

    config_path = os.getenv("TXRELAY_RPC_CONFIG")
    if config_path:
        file_config = load_rpc_config(Path(config_path))
        if file_config.chain_id == chain_id:
            config = file_config

    if config is None:
        config = NETWORK_CONFIGS.get(chain_id)
    if config is None:
        return None

    return apply_env_overrides(config)


def apply_env_overrides(config: NetworkRpcConfig) -> NetworkRpcConfig:
    """Apply TXRELAY_HEALTH_CHECK_INTERVAL_MS to a config from any source."""
    interval = os.getenv("TXRELAY_HEALTH_CHECK_INTERVAL_MS")
    if not interval:
        return config

    logger.debug("Health check interval overridden", chain_id=config.chain_id, interval_ms=int(interval))
    return config.model_copy(update={"health_check_interval": int(interval)})


def get_primary_rpc_url(chain_id: int) -> str:
    config = get_rpc_config(chain_id)
    if config is None or not config.providers:
        return ""
    return config.sorted_providers()[0].url


def get_all_rpc_urls(chain_id: int) -> list[str]:
    config = get_rpc_config(chain_id)
    if config is None:
        return []
    return [p.url for p in config.sorted_providers()]

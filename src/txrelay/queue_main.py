#!/usr/bin/env python3
"""
Batch submitter CLI.

Usage:
    python -m txrelay.queue_main --chain-id 8453 --batch batch.json

Batch file (batch.json), transactions already signed:
{
    "transactions": [
        {"to": "0xabc...", "value": 1000, "description": "pay A", "raw": "0x02f8..."},
        {"to": "0xdef...", "value": 2000, "description": "pay B", "raw": "0x02f8..."}
    ]
}

RPCs come from the built-in network tables, --config rpcs.json, or inline:
    python -m txrelay.queue_main --chain-id 8453 --batch batch.json \\
        --rpc '{"url": "https://rpc1.example.com", "priority": 1, "max_retries": 3}'

SIGINT / SIGTERM pause the queue after the transaction in flight.
"""

import argparse
import asyncio
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

import orjson
import structlog
from pydantic import BaseModel

from .config import NetworkRpcConfig, RpcProvider, apply_env_overrides, get_rpc_config, load_rpc_config
from .history import InMemoryHistoryStore
from .models import QueuedTransaction
from .providers import RateLimiter, RpcProviderManager
from .queue import StructlogSink, TransactionQueueEngine
from .service import RpcService

logger = structlog.get_logger()


def configure_logging(level: str = "info") -> None:
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer()
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(level.upper())),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


class BatchItem(BaseModel):
    to: str
    value: int = 0
    description: str
    raw: str
    data: Optional[str] = None


def parse_args(argv: Optional[list[str]] = None):
    parser = argparse.ArgumentParser(
        description="Submit a batch of signed transactions one at a time with RPC fallback"
    )

    parser.add_argument(
        "--chain-id",
        type=int,
        required=True,
        help="Chain id (e.g., 8453 for Base)",
    )

    parser.add_argument(
        "--batch",
        type=Path,
        required=True,
        help="Path to batch JSON file",
    )

    parser.add_argument(
        "--config",
        type=Path,
        help="Path to RPC config JSON file",
    )

    parser.add_argument(
        "--rpc",
        action="append",
        dest="rpcs",
        help="RPC provider as JSON string (can be repeated)",
    )

    parser.add_argument(
        "--tx-delay",
        type=float,
        default=1.0,
        help="Seconds between transactions (default: 1)",
    )

    parser.add_argument(
        "--max-attempts",
        type=int,
        default=3,
        help="Attempts per provider for each submission (default: 3)",
    )

    parser.add_argument(
        "--rate-limit",
        type=int,
        default=100,
        help="Max requests per provider per minute (default: 100)",
    )

    parser.add_argument(
        "--log-level",
        default="info",
        choices=["debug", "info", "warning", "error"],
        help="Log level (default: info)",
    )

    return parser.parse_args(argv)


def resolve_network_config(args) -> NetworkRpcConfig:
    """--rpc wins over --config, which wins over the built-in tables."""
    if args.rpcs:
        providers = [RpcProvider(**json.loads(rpc_json)) for rpc_json in args.rpcs]
        return apply_env_overrides(NetworkRpcConfig(chain_id=args.chain_id, providers=providers))

    if args.config:
        return apply_env_overrides(load_rpc_config(args.config, chain_id=args.chain_id))

    config = get_rpc_config(args.chain_id)
    if config is None:
        raise ValueError(f"No RPC config for chain {args.chain_id}. Use --config or --rpc")
    return config


def load_batch(path: Path) -> list[BatchItem]:
    with open(path) as f:
        data = json.load(f)

    items = [BatchItem(**item) for item in data.get("transactions", [])]
    if not items:
        raise ValueError(f"No transactions in {path}")
    return items


def setup_signal_handlers(engine: TransactionQueueEngine) -> None:
    """Pause the queue on SIGINT / SIGTERM."""
    def handler() -> None:
        logger.info("Shutdown signal received, pausing queue")
        engine.pause()

    try:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, handler)
    except NotImplementedError:
        # Windows doesn't support add_signal_handler
        signal.signal(signal.SIGINT, lambda s, f: handler())
        signal.signal(signal.SIGTERM, lambda s, f: handler())


async def run(args) -> int:
    config = resolve_network_config(args)
    batch = load_batch(args.batch)

    logger.info(
        "Starting batch submitter",
        chain_id=config.chain_id,
        rpc_count=len(config.providers),
        transactions=len(batch),
    )

    history = InMemoryHistoryStore()
    raw_by_id: dict[str, str] = {}

    rate_limiter = RateLimiter(max_requests=args.rate_limit, window_ms=60_000)

    async with RpcProviderManager(config) as manager, RpcService(
        manager, rate_limiter=rate_limiter, timeout=30
    ) as service:
        active = await manager.get_active_provider()
        try:
            head = await service.get_block_number()
            logger.info("Active RPC provider", rpc_url=active[:50], head=head)
        except Exception as e:
            logger.warning("Could not read chain head", rpc_url=active[:50], error=str(e))

        async def submit(transaction: QueuedTransaction) -> str:
            return await service.send_raw_transaction(
                raw_by_id[transaction.id], max_retries=args.max_attempts
            )

        engine = TransactionQueueEngine(
            submit,
            sink=StructlogSink(),
            history=history,
            tx_delay=args.tx_delay,
            chain_id=config.chain_id,
        )

        for item in batch:
            tx_id = engine.enqueue(item.to, item.value, item.description, item.data)
            raw_by_id[tx_id] = item.raw

        setup_signal_handlers(engine)
        await engine.process_queue()

        state = engine.state
        stats = engine.stats()
        summary = {
            "chain_id": config.chain_id,
            "paused": state.is_paused,
            "stats": stats.model_dump(),
            "transactions": [tx.model_dump(mode="json") for tx in engine.queue],
            "providers": manager.get_provider_stats(),
            "performance": service.get_performance_stats(),
            "rate_limits": {p.url: service.get_rate_limit_stats(p.url) for p in config.providers},
            "history": [entry.model_dump(mode="json") for entry in history.get()],
        }

    print(orjson.dumps(summary, option=orjson.OPT_INDENT_2).decode())

    if state.is_paused or stats.failed:
        return 1
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level)
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())

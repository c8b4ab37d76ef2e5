"""Tests for RpcProviderManager"""
import asyncio
import json
from unittest.mock import AsyncMock

import orjson
import pytest

from txrelay.config import NetworkRpcConfig, RpcProvider
from txrelay.errors import AllProvidersExhausted
from txrelay.providers import RpcProviderManager, close_provider_managers, get_provider_manager

from fake_node import FakeNode, running_node

A, B, C = "https://a.example", "https://b.example", "https://c.example"


def make_manager(config, tracker, healthy=()):
    probe = AsyncMock(side_effect=lambda url: url in healthy)
    return RpcProviderManager(config, tracker=tracker, probe=probe), probe


@pytest.mark.asyncio
async def test_active_provider_is_first_by_priority_when_healthy(network_config, tracker):
    manager, probe = make_manager(network_config, tracker, healthy={A, B, C})

    assert await manager.get_active_provider() == A
    probe.assert_awaited_once_with(A)


@pytest.mark.asyncio
async def test_active_provider_skips_unhealthy(network_config, tracker):
    manager, _ = make_manager(network_config, tracker, healthy={C})

    assert await manager.get_active_provider() == C


@pytest.mark.asyncio
async def test_active_provider_fails_open(network_config, tracker):
    manager, _ = make_manager(network_config, tracker, healthy=set())

    active = await manager.get_active_provider()

    assert active == A
    assert active in {p.url for p in network_config.providers}


@pytest.mark.asyncio
async def test_priority_ties_keep_declaration_order(tracker):
    config = NetworkRpcConfig(
        chain_id=1,
        providers=[
            RpcProvider(url="https://first.example", priority=1),
            RpcProvider(url="https://second.example", priority=1),
        ],
    )
    manager, _ = make_manager(config, tracker, healthy={"https://first.example", "https://second.example"})

    assert await manager.get_active_provider() == "https://first.example"


@pytest.mark.asyncio
async def test_fallback_returns_next_provider_result(network_config, tracker):
    manager, _ = make_manager(network_config, tracker)
    calls = []

    async def operation(url):
        calls.append(url)
        if url == A:
            raise ConnectionError("connection refused")
        return f"result from {url}"

    result = await manager.execute_with_fallback(operation)

    assert result == f"result from {B}"
    assert calls == [A, A, A, B]
    assert tracker.get(A).healthy is False
    assert tracker.get(B).healthy is True


@pytest.mark.asyncio
async def test_fallback_all_fail_raises_last_error_after_budget(network_config, tracker):
    manager, _ = make_manager(network_config, tracker)
    attempts = 0

    async def operation(url):
        nonlocal attempts
        attempts += 1
        raise RuntimeError(f"boom {attempts}")

    with pytest.raises(RuntimeError, match="boom 6"):
        await manager.execute_with_fallback(operation)

    # min(3, 3) + min(3, 2) + min(3, 1)
    assert attempts == 6
    assert all(not tracker.get(url).healthy for url in (A, B, C))


@pytest.mark.asyncio
async def test_max_attempts_caps_provider_budget(network_config, tracker):
    manager, _ = make_manager(network_config, tracker)
    operation = AsyncMock(side_effect=RuntimeError("down"))

    with pytest.raises(RuntimeError):
        await manager.execute_with_fallback(operation, max_attempts=1)

    assert operation.await_count == 3


@pytest.mark.asyncio
async def test_no_attempts_raises_all_providers_exhausted(tracker):
    config = NetworkRpcConfig(chain_id=1, providers=[RpcProvider(url=A, max_retries=0)])
    manager, _ = make_manager(config, tracker)
    operation = AsyncMock()

    with pytest.raises(AllProvidersExhausted):
        await manager.execute_with_fallback(operation)

    operation.assert_not_awaited()


@pytest.mark.asyncio
async def test_unhealthy_mark_is_cached_until_ttl(network_config, tracker, clock):
    manager, probe = make_manager(network_config, tracker, healthy={A, B, C})

    async def operation(url):
        if url == A:
            raise ConnectionError("down")
        return "ok"

    await manager.execute_with_fallback(operation)

    assert await manager.get_active_provider() == B
    assert probe.await_count == 0

    clock.advance(network_config.health_check_interval)
    assert await manager.get_active_provider() == A
    probe.assert_awaited_once_with(A)


@pytest.mark.asyncio
async def test_provider_stats_do_not_probe(network_config, tracker, clock):
    manager, probe = make_manager(network_config, tracker)
    tracker.record(B, False)

    stats = manager.get_provider_stats()

    probe.assert_not_awaited()
    assert stats == [
        {"url": B, "priority": 2, "healthy": False, "last_checked_at": clock.now},
        {"url": A, "priority": 1, "healthy": True, "last_checked_at": 0},
        {"url": C, "priority": 3, "healthy": True, "last_checked_at": 0},
    ]
    # Plain data, ready for JSON
    assert json.loads(orjson.dumps(stats)) == stats


@pytest.mark.asyncio
async def test_performance_stats_track_requests(network_config, tracker):
    manager, _ = make_manager(network_config, tracker)

    async def operation(url):
        if url == A:
            raise ConnectionError("down")
        return "ok"

    await manager.execute_with_fallback(operation)

    by_url = {s["url"]: s for s in manager.get_performance_stats()}
    assert by_url[A]["failed_requests"] == 3
    assert by_url[B]["successful_requests"] == 1
    assert manager.get_best_provider() == B


def test_empty_provider_list_is_rejected():
    with pytest.raises(ValueError):
        RpcProviderManager(NetworkRpcConfig(chain_id=1, providers=[]))


@pytest.mark.integration
@pytest.mark.asyncio
async def test_http_probe_sends_block_number_request(tracker):
    node = FakeNode(block_number="0x1b4")
    async with running_node(node) as url:
        config = NetworkRpcConfig(chain_id=1, providers=[RpcProvider(url=url)])
        async with RpcProviderManager(config, tracker=tracker) as manager:
            assert await manager.is_healthy(config.providers[0]) is True

    assert node.requests == [{"jsonrpc": "2.0", "method": "eth_blockNumber", "params": [], "id": 1}]


@pytest.mark.integration
@pytest.mark.asyncio
@pytest.mark.parametrize(
    "node",
    [
        FakeNode(status=503),
        FakeNode(block_number=None),
        FakeNode(body="not json"),
        FakeNode(body='{"jsonrpc": "2.0", "id": 1, "error": {"code": -32000, "message": "rate limited"}}'),
    ],
    ids=["http-503", "empty-result", "malformed", "rpc-error"],
)
async def test_http_probe_failures_are_unhealthy(tracker, node):
    async with running_node(node) as url:
        config = NetworkRpcConfig(chain_id=1, providers=[RpcProvider(url=url)])
        async with RpcProviderManager(config, tracker=tracker) as manager:
            assert await manager.is_healthy(config.providers[0]) is False


@pytest.mark.integration
@pytest.mark.asyncio
async def test_http_probe_timeout_is_unhealthy(tracker):
    node = FakeNode(delay=1.0)
    async with running_node(node) as url:
        config = NetworkRpcConfig(chain_id=1, providers=[RpcProvider(url=url)])
        async with RpcProviderManager(config, tracker=tracker, probe_timeout=0.2) as manager:
            assert await manager.is_healthy(config.providers[0]) is False


@pytest.mark.integration
@pytest.mark.asyncio
async def test_http_probe_unreachable_is_unhealthy(tracker):
    config = NetworkRpcConfig(chain_id=1, providers=[RpcProvider(url="http://127.0.0.1:9/")])
    async with RpcProviderManager(config, tracker=tracker, probe_timeout=1.0) as manager:
        assert await manager.is_healthy(config.providers[0]) is False


@pytest.mark.integration
def test_probe_session_follows_event_loop(tracker):
    node = FakeNode()
    config = NetworkRpcConfig(chain_id=8453, providers=[RpcProvider(url="https://unused.example")])
    manager = RpcProviderManager(config, tracker=tracker)

    async def probe_in_fresh_loop(close: bool):
        async with running_node(node) as url:
            healthy = await manager._probe_http(url)
        session = manager._get_http_session()
        if close:
            await manager.close()
        return healthy, session

    first_healthy, first_session = asyncio.run(probe_in_fresh_loop(close=False))
    second_healthy, second_session = asyncio.run(probe_in_fresh_loop(close=True))

    assert (first_healthy, second_healthy) == (True, True)
    assert second_session is not first_session
    assert second_session.closed


@pytest.mark.asyncio
async def test_close_provider_managers_drops_cached_managers(monkeypatch):
    monkeypatch.delenv("TXRELAY_RPC_CONFIG", raising=False)
    first = get_provider_manager(8453)

    await close_provider_managers()

    second = get_provider_manager(8453)
    assert second is not first
    assert second.tracker is first.tracker
    await close_provider_managers()

"""Tests for ProviderHealthTracker"""
import asyncio
from unittest.mock import AsyncMock

import pytest

from txrelay.providers import HealthRecord

URL = "https://a.example"
TTL = 60_000


def test_unknown_provider_starts_healthy_and_unchecked(tracker):
    assert tracker.get(URL) == HealthRecord(healthy=True, last_checked_at=0)


def test_record_sets_flag_and_timestamp_together(tracker, clock):
    tracker.record(URL, False)
    assert tracker.get(URL) == HealthRecord(healthy=False, last_checked_at=clock.now)

    clock.advance(10)
    tracker.record(URL, True)
    assert tracker.get(URL) == HealthRecord(healthy=True, last_checked_at=clock.now)


@pytest.mark.asyncio
async def test_check_reuses_result_within_ttl(tracker, clock):
    probe = AsyncMock(return_value=True)

    assert await tracker.check(URL, TTL, probe) is True
    clock.advance(TTL - 1)
    assert await tracker.check(URL, TTL, probe) is True

    assert probe.await_count == 1


@pytest.mark.asyncio
async def test_check_reprobes_once_after_ttl(tracker, clock):
    probe = AsyncMock(side_effect=[True, False])

    await tracker.check(URL, TTL, probe)
    clock.advance(TTL)

    assert await tracker.check(URL, TTL, probe) is False
    assert await tracker.check(URL, TTL, probe) is False
    assert probe.await_count == 2


@pytest.mark.asyncio
async def test_probe_exception_means_unhealthy(tracker, clock):
    probe = AsyncMock(side_effect=ConnectionError("refused"))

    assert await tracker.check(URL, TTL, probe) is False
    assert tracker.get(URL).last_checked_at == clock.now


@pytest.mark.asyncio
async def test_concurrent_checks_share_one_probe(tracker):
    calls = 0

    async def slow_probe(url):
        nonlocal calls
        calls += 1
        await asyncio.sleep(0.01)
        return True

    results = await asyncio.gather(*(tracker.check(URL, TTL, slow_probe) for _ in range(5)))

    assert results == [True] * 5
    assert calls == 1


@pytest.mark.asyncio
async def test_providers_are_tracked_independently(tracker):
    await tracker.check("https://a.example", TTL, AsyncMock(return_value=False))
    await tracker.check("https://b.example", TTL, AsyncMock(return_value=True))

    assert tracker.get("https://a.example").healthy is False
    assert tracker.get("https://b.example").healthy is True


def test_reset_forgets_records(tracker):
    tracker.record(URL, False)
    tracker.reset(URL)
    assert tracker.get(URL).last_checked_at == 0

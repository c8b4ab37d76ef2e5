"""
Pytest fixtures for txrelay tests.
"""

import pytest

from txrelay.config import NetworkRpcConfig, RpcProvider
from txrelay.providers import ProviderHealthTracker
from txrelay.queue import EventRecorder
from txrelay.queue_main import configure_logging

TTL_MS = 60_000


@pytest.fixture(scope="session", autouse=True)
def quiet_logging():
    """Logs go to stderr so stdout stays free for CLI output."""
    configure_logging("debug")


class FakeClock:
    """Millisecond clock the tests move by hand."""

    def __init__(self, start: int = 10_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def tracker(clock):
    return ProviderHealthTracker(clock=clock)


@pytest.fixture
def network_config():
    # Declared out of priority order on purpose
    return NetworkRpcConfig(
        chain_id=8453,
        health_check_interval=TTL_MS,
        providers=[
            RpcProvider(url="https://b.example", priority=2, max_retries=2),
            RpcProvider(url="https://a.example", priority=1, max_retries=3),
            RpcProvider(url="https://c.example", priority=3, max_retries=1),
        ],
    )


@pytest.fixture
def recorder():
    return EventRecorder()

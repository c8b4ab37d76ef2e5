"""Tests for RPC error classification"""
import asyncio

import aiohttp
import pytest

from txrelay.errors import ProbeTimeout, ProviderUnhealthy, RpcErrorType, classify_error


@pytest.mark.parametrize(
    "error, expected, retryable",
    [
        (asyncio.TimeoutError(), RpcErrorType.TIMEOUT, True),
        (ProbeTimeout("Probe timed out after 5.0s"), RpcErrorType.TIMEOUT, True),
        (ProviderUnhealthy("HTTP 429: Too Many Requests", status=429), RpcErrorType.RATE_LIMIT, True),
        (aiohttp.ClientConnectionError("refused"), RpcErrorType.NETWORK_ERROR, True),
        (ProviderUnhealthy("Malformed JSON-RPC response: Expecting value"), RpcErrorType.PROVIDER_ERROR, True),
        (ValueError("could not parse"), RpcErrorType.INVALID_RESPONSE, False),
        (RuntimeError("insufficient funds"), RpcErrorType.UNKNOWN, True),
    ],
)
def test_classify_error(error, expected, retryable):
    classified = classify_error(error)

    assert classified.type == expected
    assert classified.retryable is retryable
    assert classified.original is error


def test_rate_limit_carries_retry_after():
    classified = classify_error(RuntimeError("rate limit exceeded"))

    assert classified.retry_after == 60.0
    assert "Rate limit" in classified.friendly_message

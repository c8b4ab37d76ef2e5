"""
Error taxonomy for RPC routing and queue submission.

Transport and probe errors are absorbed by the provider manager and turned
into health updates. Only total exhaustion reaches the caller.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import aiohttp


class RelayError(Exception):
    """Base class for txrelay errors."""
    pass


class RPCError(RelayError):
    """JSON-RPC call failed."""
    pass


class ProviderUnhealthy(RPCError):
    """A single probe or request against one provider failed."""

    def __init__(self, message: str, url: Optional[str] = None, status: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.status = status


class ProbeTimeout(ProviderUnhealthy):
    """Health probe did not answer within its timeout."""
    pass


class AllProvidersExhausted(RelayError):
    """No provider could run the operation."""
    pass


class TransactionSubmissionFailed(RelayError):
    """Submit returned without a transaction hash."""
    pass


class RpcErrorType(str, Enum):
    NETWORK_ERROR = "network_error"
    TIMEOUT = "timeout"
    RATE_LIMIT = "rate_limit"
    INVALID_RESPONSE = "invalid_response"
    PROVIDER_ERROR = "provider_error"
    UNKNOWN = "unknown"


_FRIENDLY_MESSAGES = {
    RpcErrorType.NETWORK_ERROR: "Network connection failed. Check your internet connection.",
    RpcErrorType.TIMEOUT: "Request timed out. The RPC provider may be slow.",
    RpcErrorType.RATE_LIMIT: "Rate limit exceeded. Please wait before retrying.",
    RpcErrorType.INVALID_RESPONSE: "Invalid response from RPC provider.",
    RpcErrorType.PROVIDER_ERROR: "RPC provider error. Trying fallback provider.",
    RpcErrorType.UNKNOWN: "An unexpected error occurred.",
}


@dataclass
class ClassifiedError:
    type: RpcErrorType
    message: str
    retryable: bool
    original: Optional[BaseException] = None
    retry_after: Optional[float] = None  # Seconds

    @property
    def friendly_message(self) -> str:
        return _FRIENDLY_MESSAGES.get(self.type, self.message)


def classify_error(error: BaseException) -> ClassifiedError:
    """
    Sort an exception into an RpcErrorType.

    Checks exception types first, then falls back to matching the message
    text, since most RPC providers only report problems as strings.
    """
    text = str(error).lower()
    status = getattr(error, "status", None)

    if isinstance(error, (asyncio.TimeoutError, ProbeTimeout)) or "timeout" in text or "timed out" in text:
        return ClassifiedError(RpcErrorType.TIMEOUT, "Request timed out", True, error)

    if status == 429 or "rate limit" in text or "too many requests" in text:
        return ClassifiedError(
            RpcErrorType.RATE_LIMIT, "Rate limit exceeded", True, error, retry_after=60.0
        )

    if isinstance(error, aiohttp.ClientConnectionError) or "network" in text or "connection" in text:
        return ClassifiedError(RpcErrorType.NETWORK_ERROR, "Network connection failed", True, error)

    if isinstance(error, ValueError) or "invalid" in text or "parse" in text:
        return ClassifiedError(RpcErrorType.INVALID_RESPONSE, "Invalid RPC response", False, error)

    if isinstance(error, ProviderUnhealthy):
        return ClassifiedError(RpcErrorType.PROVIDER_ERROR, str(error), True, error)

    return ClassifiedError(RpcErrorType.UNKNOWN, str(error) or "Unknown RPC error", True, error)

"""
Error taxonomy for provider calls and semantic memory.

Classification is heuristic (status codes first, then message patterns).
CircuitOpenError is always distinguishable since it short-circuits retries.
"""

import asyncio
import json
import logging
from enum import Enum
from typing import Optional

import httpx

from .models import ErrorInfo, Provider

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    TIMEOUT = "TIMEOUT"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    RATE_LIMITED = "RATE_LIMITED"
    NETWORK_UNREACHABLE = "NETWORK_UNREACHABLE"
    PROVIDER_API_ERROR = "PROVIDER_API_ERROR"
    CIRCUIT_OPEN = "CIRCUIT_OPEN"
    EMBEDDING_DIMENSION_MISMATCH = "EMBEDDING_DIMENSION_MISMATCH"
    UNKNOWN = "UNKNOWN"


class GrandCentralError(Exception):
    """Base class for every error raised by this package."""
    code: ErrorCode = ErrorCode.UNKNOWN


class ProviderError(GrandCentralError):
    """A provider call failed. Carries the provider and a classified code."""

    def __init__(
        self,
        detail: str,
        provider: Optional[Provider] = None,
        code: Optional[ErrorCode] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(detail)
        self.detail = detail
        self.provider = provider
        self.status_code = status_code
        if code is not None:
            self.code = code


class ProviderTimeout(ProviderError):
    code = ErrorCode.TIMEOUT


class InvalidCredentials(ProviderError):
    code = ErrorCode.INVALID_CREDENTIALS


class RateLimited(ProviderError):
    code = ErrorCode.RATE_LIMITED


class NetworkUnreachable(ProviderError):
    code = ErrorCode.NETWORK_UNREACHABLE


class ProviderAPIError(ProviderError):
    code = ErrorCode.PROVIDER_API_ERROR


class CircuitOpenError(ProviderError):
    """Raised when trying to call through an OPEN circuit breaker."""
    code = ErrorCode.CIRCUIT_OPEN


class EmbeddingDimensionMismatch(GrandCentralError, ValueError):
    """Vectors of different lengths were compared or stored together."""
    code = ErrorCode.EMBEDDING_DIMENSION_MISMATCH

    def __init__(self, expected: int, actual: int):
        super().__init__(
            f"Embedding dimension mismatch: expected {expected}, got {actual}"
        )
        self.expected = expected
        self.actual = actual


_CODE_TO_ERROR = {
    ErrorCode.TIMEOUT: ProviderTimeout,
    ErrorCode.INVALID_CREDENTIALS: InvalidCredentials,
    ErrorCode.RATE_LIMITED: RateLimited,
    ErrorCode.NETWORK_UNREACHABLE: NetworkUnreachable,
    ErrorCode.PROVIDER_API_ERROR: ProviderAPIError,
    ErrorCode.CIRCUIT_OPEN: CircuitOpenError,
}


def classify_error(exc: BaseException) -> ErrorCode:
    """Map any exception raised around a provider call onto the taxonomy."""
    if isinstance(exc, GrandCentralError):
        return exc.code

    if isinstance(exc, (httpx.TimeoutException, asyncio.TimeoutError, TimeoutError)):
        return ErrorCode.TIMEOUT
    if isinstance(exc, httpx.HTTPStatusError):
        return _classify_status(exc.response.status_code)
    if isinstance(exc, (httpx.ConnectError, httpx.NetworkError, ConnectionError)):
        return ErrorCode.NETWORK_UNREACHABLE

    message = str(exc).lower()
    if "timeout" in message or "timed out" in message:
        return ErrorCode.TIMEOUT
    if "api key" in message or "unauthorized" in message:
        return ErrorCode.INVALID_CREDENTIALS
    if "rate limit" in message:
        return ErrorCode.RATE_LIMITED
    if "enotfound" in message or "econnrefused" in message:
        return ErrorCode.NETWORK_UNREACHABLE
    return ErrorCode.UNKNOWN


def _classify_status(status: int) -> ErrorCode:
    if status in (401, 403):
        return ErrorCode.INVALID_CREDENTIALS
    if status == 429:
        return ErrorCode.RATE_LIMITED
    if 400 <= status < 600:
        return ErrorCode.PROVIDER_API_ERROR
    return ErrorCode.UNKNOWN


def as_provider_error(exc: BaseException, provider: Provider) -> ProviderError:
    """Wrap a raw exception into the matching ProviderError subclass."""
    if isinstance(exc, ProviderError):
        if exc.provider is None:
            exc.provider = provider
        return exc

    code = classify_error(exc)
    status = None
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
    detail = str(exc) or exc.__class__.__name__
    error_cls = _CODE_TO_ERROR.get(code, ProviderError)
    err = error_cls(detail, provider=provider, status_code=status)
    if error_cls is ProviderError:
        err.code = code
    err.__cause__ = exc
    return err


def to_error_info(
    exc: BaseException, provider: Provider, retry_count: Optional[int] = None
) -> ErrorInfo:
    """Structured record for logging and for degraded outcomes."""
    err = as_provider_error(exc, provider)
    return ErrorInfo(
        code=err.code.value,
        detail=err.detail,
        provider=provider,
        degraded=True,
        retry_count=retry_count,
    )


def log_structured_error(info: ErrorInfo) -> None:
    logger.error("[LLM Error] " + json.dumps(info.model_dump(mode="json")))

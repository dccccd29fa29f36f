import asyncio

import httpx
import pytest

from grand_central.errors import (
    CircuitOpenError,
    ErrorCode,
    NetworkUnreachable,
    ProviderError,
    RateLimited,
    as_provider_error,
    classify_error,
    to_error_info,
)
from grand_central.models import Provider


def status_error(code):
    request = httpx.Request("POST", "https://api.example.com/v1/chat/completions")
    response = httpx.Response(code, request=request)
    return httpx.HTTPStatusError(f"HTTP {code}", request=request, response=response)


@pytest.mark.parametrize("code,expected", [
    (401, ErrorCode.INVALID_CREDENTIALS),
    (403, ErrorCode.INVALID_CREDENTIALS),
    (429, ErrorCode.RATE_LIMITED),
    (400, ErrorCode.PROVIDER_API_ERROR),
    (503, ErrorCode.PROVIDER_API_ERROR),
])
def test_status_codes(code, expected):
    assert classify_error(status_error(code)) == expected


def test_transport_exceptions():
    request = httpx.Request("GET", "https://api.example.com")
    assert classify_error(httpx.ReadTimeout("slow", request=request)) == ErrorCode.TIMEOUT
    assert classify_error(asyncio.TimeoutError()) == ErrorCode.TIMEOUT
    assert classify_error(httpx.ConnectError("refused", request=request)) == ErrorCode.NETWORK_UNREACHABLE
    assert classify_error(ConnectionResetError()) == ErrorCode.NETWORK_UNREACHABLE


@pytest.mark.parametrize("message,expected", [
    ("Request timed out after 30s", ErrorCode.TIMEOUT),
    ("Invalid API key provided", ErrorCode.INVALID_CREDENTIALS),
    ("401 Unauthorized", ErrorCode.INVALID_CREDENTIALS),
    ("Rate limit reached for requests", ErrorCode.RATE_LIMITED),
    ("getaddrinfo ENOTFOUND api.x.ai", ErrorCode.NETWORK_UNREACHABLE),
    ("something odd", ErrorCode.UNKNOWN),
])
def test_message_heuristics(message, expected):
    assert classify_error(RuntimeError(message)) == expected


def test_own_errors_keep_their_code():
    assert classify_error(CircuitOpenError("open")) == ErrorCode.CIRCUIT_OPEN
    assert classify_error(ProviderError("x", code=ErrorCode.TIMEOUT)) == ErrorCode.TIMEOUT


def test_as_provider_error_picks_subclass():
    err = as_provider_error(status_error(429), Provider.GROK)
    assert isinstance(err, RateLimited)
    assert err.provider == Provider.GROK
    assert err.status_code == 429

    err = as_provider_error(RuntimeError("ECONNREFUSED"), Provider.CLAUDE)
    assert isinstance(err, NetworkUnreachable)

    err = as_provider_error(RuntimeError("weird"), Provider.CLAUDE)
    assert type(err) is ProviderError
    assert err.code == ErrorCode.UNKNOWN


def test_as_provider_error_passes_through_and_fills_provider():
    original = RateLimited("slow down")
    assert as_provider_error(original, Provider.OPENAI) is original
    assert original.provider == Provider.OPENAI


def test_error_info_is_json_safe():
    info = to_error_info(RuntimeError("rate limit"), Provider.DEEPSEEK, retry_count=3)
    dumped = info.model_dump(mode="json")
    assert dumped["code"] == "RATE_LIMITED"
    assert dumped["provider"] == "deepseek"
    assert dumped["degraded"] is True
    assert dumped["retry_count"] == 3

"""Tests for retry classification and backoff in the yfinance client."""

import asyncio
from unittest.mock import patch

import pytest
import requests
from requests.exceptions import HTTPError

from stock_score.data.yfinance_client import (
    ProviderRetryError,
    RetryResult,
    _calculate_backoff,
    _is_retryable_error,
    _retry_with_backoff,
)


def _http_error(status_code: int) -> HTTPError:
    response = requests.Response()
    response.status_code = status_code
    return HTTPError(f"HTTP {status_code}", response=response)


class TestRetryClassification:
    """Tests for _is_retryable_error."""

    def test_rate_limited(self) -> None:
        retryable, limit = _is_retryable_error(_http_error(429))
        assert retryable
        assert limit >= 1

    def test_server_error(self) -> None:
        assert _is_retryable_error(_http_error(503))[0]

    def test_invalid_crumb_retried_once(self) -> None:
        assert _is_retryable_error(_http_error(401)) == (True, 1)
        assert _is_retryable_error(Exception("Invalid Crumb")) == (True, 1)

    def test_not_found_is_permanent(self) -> None:
        assert _is_retryable_error(_http_error(404)) == (False, 0)
        assert _is_retryable_error(ValueError("Invalid symbol: ZZZZ")) == (False, 0)

    def test_message_patterns(self) -> None:
        assert _is_retryable_error(Exception("Read timeout"))[0]
        assert _is_retryable_error(Exception("Connection reset by peer"))[0]


class TestBackoff:
    """Tests for _calculate_backoff."""

    def test_jitter_bounds(self) -> None:
        for _ in range(50):
            delay = _calculate_backoff(1)
            assert 1.5 <= delay <= 2.5

    def test_capped(self) -> None:
        assert _calculate_backoff(20) <= 30.0


class TestRetryWithBackoff:
    """Tests for _retry_with_backoff."""

    def test_success_first_try(self) -> None:
        result = asyncio.run(_retry_with_backoff("op", lambda: 42))

        assert result.result == 42
        assert result.attempts == 1
        assert result.to_provenance() == {
            "source": "yfinance",
            "attempts": 1,
            "total_backoff_seconds": 0.0,
        }

    def test_transient_then_success(self) -> None:
        calls = {"n": 0}

        def flaky() -> str:
            calls["n"] += 1
            if calls["n"] < 3:
                raise ConnectionError("connection reset")
            return "ok"

        with patch("stock_score.data.yfinance_client._calculate_backoff", return_value=0.0):
            result = asyncio.run(_retry_with_backoff("op", flaky, max_retries=3))

        assert result.result == "ok"
        assert result.attempts == 3
        assert result.to_provenance()["retry_errors"] == ["ConnectionError", "ConnectionError"]

    def test_exhausted(self) -> None:
        def always_timeout() -> None:
            raise TimeoutError("timeout")

        with patch("stock_score.data.yfinance_client._calculate_backoff", return_value=0.0):
            with pytest.raises(ProviderRetryError, match="Failed after 3 attempts"):
                asyncio.run(_retry_with_backoff("op", always_timeout, max_retries=2))

    def test_permanent_error_raised_immediately(self) -> None:
        calls = {"n": 0}

        def unknown() -> None:
            calls["n"] += 1
            raise ValueError("Invalid symbol: ZZZZ")

        with pytest.raises(ValueError):
            asyncio.run(_retry_with_backoff("op", unknown))
        assert calls["n"] == 1


class TestRetryResult:
    """Provenance keeps the last three failures."""

    def test_error_tail(self) -> None:
        result = RetryResult(result=None, attempts=5, total_backoff_seconds=3.0, errors=list("abcde"))
        assert result.to_provenance()["retry_errors"] == ["c", "d", "e"]

"""Async yfinance client with bounded concurrency and retry logic."""

import asyncio
import logging
import os
import random
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, TypeVar

import pandas as pd
import yfinance as yf
from requests.exceptions import HTTPError

logger = logging.getLogger(__name__)

# Bounded concurrency for yfinance calls
_max_workers = int(os.environ.get("YF_MAX_WORKERS", "4"))
_executor = ThreadPoolExecutor(max_workers=_max_workers)
_fetch_semaphore = asyncio.Semaphore(_max_workers)

# Retry configuration
_max_retries = int(os.environ.get("YF_MAX_RETRIES", "3"))
_base_delay = float(os.environ.get("YF_BASE_DELAY", "1.0"))  # seconds
_max_delay = float(os.environ.get("YF_MAX_DELAY", "30.0"))  # seconds

HISTORY_PERIOD = os.environ.get("YF_HISTORY_PERIOD", "2y")

# Shutdown coordination
shutdown_event = asyncio.Event()

T = TypeVar("T")


class ServerShuttingDownError(Exception):
    """Raised when server is shutting down."""

    pass


class ProviderRetryError(Exception):
    """Raised when the provider fails after all retries."""

    def __init__(self, message: str, last_error: Exception | None = None):
        super().__init__(message)
        self.last_error = last_error


@dataclass
class Statements:
    """Annual statements (columns = fiscal period ends) plus the dividend history."""

    income: pd.DataFrame = field(default_factory=pd.DataFrame)
    balance: pd.DataFrame = field(default_factory=pd.DataFrame)
    cashflow: pd.DataFrame = field(default_factory=pd.DataFrame)
    dividends: pd.Series = field(default_factory=lambda: pd.Series(dtype="float64"))


def _is_retryable_error(error: Exception) -> tuple[bool, int]:
    """
    Check if an error is retryable (transient).

    Returns:
        Tuple of (is_retryable, max_retries_for_this_error)
    """
    if isinstance(error, HTTPError) and error.response is not None:
        status_code = error.response.status_code
        if status_code == 401:
            # Invalid crumb rarely recovers with more retries
            return (True, 1)
        if status_code == 429 or 500 <= status_code < 600:
            return (True, _max_retries)

    error_str = str(error).lower()

    if "401" in error_str or "invalid crumb" in error_str:
        return (True, 1)

    retryable_patterns = [
        "rate limit",
        "too many requests",
        "connection",
        "timeout",
        "temporary",
    ]
    if any(pattern in error_str for pattern in retryable_patterns):
        return (True, _max_retries)

    return (False, 0)


def _calculate_backoff(attempt: int) -> float:
    """Exponential backoff with +/-25% jitter, capped at the max delay."""
    delay = _base_delay * (2**attempt)
    jitter = delay * 0.25 * (2 * random.random() - 1)
    return min(delay + jitter, _max_delay)


@dataclass
class RetryResult:
    """Result of a retry operation with provenance tracking."""

    result: Any
    attempts: int
    total_backoff_seconds: float
    source: str = "yfinance"
    errors: list[str] = field(default_factory=list)

    def to_provenance(self) -> dict[str, Any]:
        prov: dict[str, Any] = {
            "source": self.source,
            "attempts": self.attempts,
            "total_backoff_seconds": self.total_backoff_seconds,
        }
        if self.errors:
            # Last three failures are enough to debug a flaky upstream
            prov["retry_errors"] = self.errors[-3:]
        return prov


async def _retry_with_backoff(
    operation_name: str,
    sync_func: Callable[[], T],
    max_retries: int = _max_retries,
) -> RetryResult:
    """
    Execute a synchronous function on the executor with retry logic.

    Args:
        operation_name: Name for logging (e.g., "fetch_history(AAPL)")
        sync_func: Synchronous function to execute
        max_retries: Maximum number of retry attempts

    Returns:
        RetryResult with result and provenance info

    Raises:
        ProviderRetryError: If all retries exhausted
        ServerShuttingDownError: If server is shutting down
    """
    last_error: Exception | None = None
    total_backoff = 0.0
    errors: list[str] = []

    for attempt in range(max_retries + 1):
        if shutdown_event.is_set():
            raise ServerShuttingDownError("Server is shutting down")

        try:
            loop = asyncio.get_running_loop()
            result = await loop.run_in_executor(_executor, sync_func)
            return RetryResult(
                result=result,
                attempts=attempt + 1,
                total_backoff_seconds=round(total_backoff, 2),
                errors=errors,
            )
        except Exception as e:
            last_error = e
            errors.append(type(e).__name__)

            is_retryable, error_max_retries = _is_retryable_error(e)
            if not is_retryable:
                raise

            effective_max_retries = min(max_retries, error_max_retries)
            if attempt >= effective_max_retries:
                logger.warning(
                    f"{operation_name}: Failed after {attempt + 1} attempts "
                    f"(limit={effective_max_retries + 1}). Last error: {e}"
                )
                raise ProviderRetryError(
                    f"Failed after {attempt + 1} attempts: {e}",
                    last_error=last_error,
                ) from e

            delay = _calculate_backoff(attempt)
            total_backoff += delay
            logger.info(
                f"{operation_name}: Attempt {attempt + 1} failed ({e}). "
                f"Retrying in {delay:.1f}s..."
            )
            await asyncio.sleep(delay)

    raise ProviderRetryError(
        f"Failed after {max_retries + 1} attempts",
        last_error=last_error,
    )


async def fetch_info(symbol: str) -> tuple[dict[str, Any], dict[str, Any]]:
    """
    Fetch the yfinance info dict (quote, ratios, balance-sheet totals).

    Returns:
        Tuple of (info, provenance)

    Raises:
        ServerShuttingDownError: If server is shutting down
        ProviderRetryError: If all retries exhausted for retryable errors
        ValueError: If the symbol is unknown
    """
    normalized_symbol = symbol.upper().strip()

    def _fetch() -> dict[str, Any]:
        info = yf.Ticker(normalized_symbol).info
        # Unknown symbols come back as a stub with no quote type
        if not info or not info.get("quoteType"):
            raise ValueError(f"Invalid symbol: {symbol}")
        return info

    async with _fetch_semaphore:
        retry_result = await _retry_with_backoff(f"fetch_info({normalized_symbol})", _fetch)
    return retry_result.result, retry_result.to_provenance()


async def fetch_history(
    symbol: str,
    period: str = HISTORY_PERIOD,
) -> tuple[pd.DataFrame, dict[str, Any]]:
    """
    Fetch adjusted daily price history.

    Returns:
        Tuple of (OHLCV DataFrame indexed by date, provenance)

    Raises:
        ServerShuttingDownError: If server is shutting down
        ProviderRetryError: If all retries exhausted for retryable errors
        ValueError: If no data returned
    """
    normalized_symbol = symbol.upper().strip()

    def _fetch() -> pd.DataFrame:
        df = yf.Ticker(normalized_symbol).history(period=period, interval="1d", auto_adjust=True)
        if df is None or df.empty:
            raise ValueError(f"No data returned for {normalized_symbol}")
        return df

    async with _fetch_semaphore:
        retry_result = await _retry_with_backoff(f"fetch_history({normalized_symbol})", _fetch)
    prov = retry_result.to_provenance()
    prov["period"] = period
    return retry_result.result, prov


async def fetch_statements(symbol: str) -> tuple[Statements, dict[str, Any]]:
    """
    Fetch annual income statement, balance sheet, cash flow and dividends.

    Returns:
        Tuple of (Statements, provenance)

    Raises:
        ServerShuttingDownError: If server is shutting down
        ProviderRetryError: If all retries exhausted for retryable errors
    """
    normalized_symbol = symbol.upper().strip()

    def _fetch() -> Statements:
        ticker = yf.Ticker(normalized_symbol)
        statements = Statements(
            income=_frame_or_empty(ticker.income_stmt),
            balance=_frame_or_empty(ticker.balance_sheet),
            cashflow=_frame_or_empty(ticker.cashflow),
        )
        dividends = ticker.dividends
        if isinstance(dividends, pd.Series):
            statements.dividends = dividends
        return statements

    async with _fetch_semaphore:
        retry_result = await _retry_with_backoff(
            f"fetch_statements({normalized_symbol})", _fetch
        )
    return retry_result.result, retry_result.to_provenance()


def _frame_or_empty(df: pd.DataFrame | None) -> pd.DataFrame:
    return df if isinstance(df, pd.DataFrame) else pd.DataFrame()


async def shutdown_executor() -> None:
    """Cleanup on server shutdown."""
    shutdown_event.set()
    _executor.shutdown(wait=False, cancel_futures=True)

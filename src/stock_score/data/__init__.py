"""Data layer for fetching stock data and caching scores."""

from stock_score.data.cache import CacheBackend, ScoreCache
from stock_score.data.provider import fetch_bundle, raw_financials_from_yfinance
from stock_score.data.yfinance_client import (
    ProviderRetryError,
    ServerShuttingDownError,
    Statements,
    fetch_history,
    fetch_info,
    fetch_statements,
    shutdown_executor,
)

__all__ = [
    # Cache
    "CacheBackend",
    "ScoreCache",
    # Provider
    "fetch_bundle",
    "raw_financials_from_yfinance",
    # yfinance
    "ProviderRetryError",
    "ServerShuttingDownError",
    "Statements",
    "fetch_history",
    "fetch_info",
    "fetch_statements",
    "shutdown_executor",
]

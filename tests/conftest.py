"""Pytest configuration and fixtures."""

from collections.abc import Iterator

import pandas as pd
import pytest

from stock_score.core.models import (
    SOURCE_DERIVED,
    SOURCE_DIRECT,
    DataBundle,
    Fundamentals,
    MetricValue,
    Prices,
    PriceSeries,
)
from stock_score.data.cache import ScoreCache

DAY_MS = 24 * 60 * 60 * 1000
START_MS = 1_700_000_000_000


@pytest.fixture
def sample_ohlcv_df() -> pd.DataFrame:
    """Sample OHLCV DataFrame for testing."""
    return pd.DataFrame(
        {
            "Date": pd.date_range("2024-01-01", periods=10, freq="D"),
            "Open": [100.0, 101.0, 102.0, 101.5, 103.0, 104.0, 103.5, 105.0, 106.0, 105.5],
            "High": [101.0, 102.5, 103.0, 102.5, 104.5, 105.5, 105.0, 106.5, 107.0, 106.5],
            "Low": [99.5, 100.5, 101.0, 100.5, 102.0, 103.0, 102.5, 104.0, 105.0, 104.5],
            "Close": [100.5, 102.0, 101.5, 102.0, 104.0, 103.5, 104.5, 106.0, 105.5, 106.0],
            "Volume": [1000000] * 10,
        }
    ).set_index("Date")


@pytest.fixture
def sample_price_series() -> pd.Series:
    """Sample price series for indicator testing."""
    return pd.Series(
        [100.0, 101.0, 102.0, 101.5, 103.0, 104.0, 103.5, 105.0, 106.0, 105.5,
         107.0, 108.0, 107.5, 109.0, 110.0, 109.5, 111.0, 112.0, 111.5, 113.0,
         114.0, 113.5, 115.0, 116.0, 115.5, 117.0, 118.0, 117.5, 119.0, 120.0]
    )


def make_series(closes: list[float]) -> tuple[list[int], list[float]]:
    """Daily epoch-ms timestamps aligned with closes."""
    return [START_MS + i * DAY_MS for i in range(len(closes))], closes


@pytest.fixture
def rising_closes() -> list[float]:
    """300 steadily rising closes (100 -> 249.5)."""
    return [100.0 + 0.5 * i for i in range(300)]


@pytest.fixture
def empty_bundle() -> DataBundle:
    """Bundle with every field absent."""
    return DataBundle(ticker="EMPTY")


@pytest.fixture
def scenario_a_bundle() -> DataBundle:
    """Operating margin, current ratio, FCF yield and 200-day distance only."""
    return DataBundle(
        ticker="SCNA",
        fundamentals=Fundamentals(
            op_margin=MetricValue(0.30, 0.45, SOURCE_DIRECT),
            current_ratio=MetricValue(2.0, 0.4, SOURCE_DIRECT),
            # Normalization clamps 0.09 to 0.08
            fcf_yield=MetricValue(0.08, 0.4, SOURCE_DERIVED),
        ),
        prices=Prices(px_vs_200dma=MetricValue(0.06, 0.7, SOURCE_DERIVED)),
    )


@pytest.fixture
def scenario_b_bundle() -> DataBundle:
    """Only an RSI of 52.5."""
    return DataBundle(
        ticker="SCNB",
        prices=Prices(rsi=MetricValue(52.5, 0.7, SOURCE_DERIVED)),
    )


@pytest.fixture
def full_bundle(rising_closes: list[float]) -> DataBundle:
    """Bundle with strong fundamentals and a 300-point rising series."""
    timestamps, closes = make_series(rising_closes)
    return DataBundle(
        ticker="FULL",
        fundamentals=Fundamentals(
            op_margin=MetricValue(0.28, 0.45, SOURCE_DIRECT),
            current_ratio=MetricValue(2.2, 0.4, SOURCE_DIRECT),
            fcf_yield=MetricValue(0.06, 0.4, SOURCE_DERIVED),
            earnings_yield=MetricValue(0.07, 0.4, SOURCE_DERIVED),
            net_cash=MetricValue(1.0, 0.35, SOURCE_DERIVED),
            roe=MetricValue(0.30, 0.45, SOURCE_DIRECT),
            roa=MetricValue(0.12, 0.4, SOURCE_DIRECT),
            roic=MetricValue(0.22, 0.3, SOURCE_DERIVED),
            fcf_over_net_income=MetricValue(1.1, 0.35, SOURCE_DERIVED),
            rev_growth=MetricValue(0.12, 0.4, SOURCE_DIRECT),
            eps_growth=MetricValue(0.18, 0.4, SOURCE_DIRECT),
            rev_cagr_3y=MetricValue(0.10, 0.3, SOURCE_DERIVED),
            eps_cagr_3y=MetricValue(0.17, 0.3, SOURCE_DERIVED),
            debt_to_equity=MetricValue(0.3, 0.45, SOURCE_DIRECT),
            net_debt_to_ebitda=MetricValue(-0.5, 0.35, SOURCE_DERIVED),
            interest_coverage=MetricValue(25.0, 0.35, SOURCE_DERIVED),
            ev_to_ebitda=MetricValue(12.0, 0.4, SOURCE_DIRECT),
            gross_margin=MetricValue(0.55, 0.4, SOURCE_DIRECT),
            payout_ratio=MetricValue(0.40, 0.3, SOURCE_DIRECT),
            dividend_cagr_3y=MetricValue(0.06, 0.25, SOURCE_DERIVED),
            buyback_yield=MetricValue(0.035, 0.25, SOURCE_DERIVED),
            insider_ownership=MetricValue(0.05, 0.3, SOURCE_DIRECT),
        ),
        prices=Prices(
            px=MetricValue(closes[-1], 0.85, SOURCE_DIRECT),
            px_vs_200dma=MetricValue(0.25, 0.85, SOURCE_DERIVED),
            rsi=MetricValue(60.0, 0.85, SOURCE_DERIVED),
            series=PriceSeries(tuple(timestamps), tuple(closes)),
            points=len(closes),
            recency_days=1,
        ),
        sources_used=("yfinance:info", "yfinance:history"),
    )


@pytest.fixture
def score_cache(tmp_path) -> Iterator[ScoreCache]:
    """Disk cache isolated per test."""
    cache = ScoreCache(cache_dir=str(tmp_path / "scores"), default_ttl=60)
    yield cache
    cache.close()

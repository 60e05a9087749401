"""Pure scoring core: normalization, pillars, opportunity series and verdicts."""

from stock_score.core.models import (
    DataBundle,
    Fundamentals,
    InvalidBundleError,
    MetricValue,
    Prices,
    PriceSeries,
    ScorePayload,
)
from stock_score.core.normalization import RawFinancials, assemble_bundle
from stock_score.core.scoring import score_bundle

__all__ = [
    "DataBundle",
    "Fundamentals",
    "InvalidBundleError",
    "MetricValue",
    "Prices",
    "PriceSeries",
    "RawFinancials",
    "ScorePayload",
    "assemble_bundle",
    "score_bundle",
]

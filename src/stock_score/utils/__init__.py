"""Utility modules."""

from stock_score.utils.indicators import (
    calculate_max_drawdown,
    calculate_range_position,
    calculate_returns,
    calculate_rolling_range,
    calculate_rsi,
    calculate_sma,
)
from stock_score.utils.ohlcv import closes_from_history
from stock_score.utils.provenance import build_error_response, build_meta, build_provenance
from stock_score.utils.validators import ScoreParams, check_rule

__all__ = [
    "calculate_max_drawdown",
    "calculate_range_position",
    "calculate_returns",
    "calculate_rolling_range",
    "calculate_rsi",
    "calculate_sma",
    "closes_from_history",
    "build_error_response",
    "build_meta",
    "build_provenance",
    "ScoreParams",
    "check_rule",
]

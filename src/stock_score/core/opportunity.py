"""Opportunity series: a 0..100 "is now a good entry" indicator per close."""

from collections.abc import Iterator

import numpy as np
import pandas as pd

from stock_score.core.mapping import clamp01, linear_map, round_half_up
from stock_score.core.models import Fundamentals, OppPoint, PriceSeries
from stock_score.utils.indicators import calculate_rolling_range, calculate_sma

SMA_WINDOW = 200
RANGE_WINDOW = 252

OPPORTUNITY_WEIGHTS: dict[str, float] = {
    "price_percentile": 0.40,
    "valuation": 0.40,
    "momentum": 0.15,
    "fundamentals": 0.05,
}

# (percentile >= threshold, multiplier), first match wins
HOT_PENALTIES: tuple[tuple[float, float], ...] = ((0.95, 0.25), (0.90, 0.5), (0.85, 0.75))
# (percentile <= threshold, multiplier), first match wins
COLD_BOOSTS: tuple[tuple[float, float], ...] = ((0.05, 1.15), (0.10, 1.10), (0.20, 1.05))

# Piecewise-linear yield -> valuation schedule, clamped at both ends
VALUATION_SCHEDULE_X = (0.0, 0.02, 0.04, 0.06, 0.08)
VALUATION_SCHEDULE_Y = (0.0, 0.3, 0.6, 0.8, 1.0)

DAMPENING_EXPONENT = 0.95

# Momentum ramp on distance from the 200-point mean
DISTANCE_LOW = -0.20
DISTANCE_HIGH = 0.10


def valuation_from_yield(y: float | None) -> float:
    if y is None:
        return 0.0
    return float(np.interp(y, VALUATION_SCHEDULE_X, VALUATION_SCHEDULE_Y))


def hot_penalty(pct: float) -> float:
    for threshold, multiplier in HOT_PENALTIES:
        if pct >= threshold:
            return multiplier
    return 1.0


def cold_boost(pct: float) -> float:
    for threshold, multiplier in COLD_BOOSTS:
        if pct <= threshold:
            return multiplier
    return 1.0


def _quality_proxy(f: Fundamentals) -> float:
    parts = []
    if f.op_margin.present:
        parts.append(linear_map(f.op_margin.value, 0.05, 0.25))
    if f.fcf_over_net_income.present:
        parts.append(linear_map(f.fcf_over_net_income.value, 0.6, 1.2))
    return sum(parts) / len(parts) if parts else 0.5


def _safety_proxy(f: Fundamentals) -> float:
    cr = f.current_ratio.value
    if cr is None:
        cr_score = 0.5
    elif cr >= 1.5:
        cr_score = 1.0
    elif cr >= 1.0:
        cr_score = 0.6
    else:
        cr_score = 0.2

    nc = f.net_cash.value
    if nc is None:
        nc_score = 0.5
    else:
        nc_score = 1.0 if nc > 0 else 0.3
    return cr_score * 0.6 + nc_score * 0.4


def fundamentals_composite(f: Fundamentals) -> float:
    """Average of the quality and safety proxies, in [0, 1]."""
    return (_quality_proxy(f) + _safety_proxy(f)) / 2


class OpportunitySeries:
    """
    Finite, restartable sequence of OppPoints.

    Nothing is cached between iterations; each pass recomputes the rolling
    windows from the close series.
    """

    def __init__(self, series: PriceSeries | None, fundamentals: Fundamentals) -> None:
        self._series = series if series is not None else PriceSeries()
        self._fundamentals = fundamentals

    def __len__(self) -> int:
        return len(self._series)

    def __iter__(self) -> Iterator[OppPoint]:
        if len(self._series) == 0:
            return

        closes = pd.Series(self._series.closes, dtype="float64")
        sma = calculate_sma(closes, SMA_WINDOW)
        low, high = calculate_rolling_range(closes, RANGE_WINDOW)

        f = self._fundamentals
        yield_value = f.fcf_yield.value if f.fcf_yield.present else f.earnings_yield.value
        valuation = valuation_from_yield(yield_value)
        fundamentals = fundamentals_composite(f)
        w = OPPORTUNITY_WEIGHTS

        for i, (t, close) in enumerate(zip(self._series.timestamps, self._series.closes)):
            avg = sma.iloc[i]
            # No 200-point mean yet reads as zero distance
            distance = (close - avg) / avg if pd.notna(avg) and avg > 0 else 0.0
            momentum = 1 - linear_map(distance, DISTANCE_LOW, DISTANCE_HIGH)

            lo, hi = low.iloc[i], high.iloc[i]
            pct = (close - lo) / (hi - lo) if hi > lo else 0.5
            price_percentile = 1 - clamp01(pct)

            opp01 = (
                w["price_percentile"] * price_percentile
                + w["valuation"] * valuation
                + w["momentum"] * momentum
                + w["fundamentals"] * fundamentals
            )
            opp01 *= hot_penalty(pct)
            opp01 *= cold_boost(pct)
            opp01 = clamp01(opp01) ** DAMPENING_EXPONENT

            yield OppPoint(t=t, close=close, opp=round_half_up(opp01 * 100))


def build_opportunity_series(
    series: PriceSeries | None,
    fundamentals: Fundamentals,
) -> OpportunitySeries:
    """Wrap a close series and fundamentals into a lazily evaluated opportunity sequence."""
    return OpportunitySeries(series, fundamentals)

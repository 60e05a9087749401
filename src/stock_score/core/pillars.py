"""Eight-pillar scorer with coverage accounting."""

from collections.abc import Callable
from typing import Any, NamedTuple

from stock_score.core.mapping import (
    clamp,
    clamp01,
    finite_or_none,
    linear_map,
    round_half_up,
    sweet_spot,
)
from stock_score.core.metrics import Metrics, sanitize_metrics
from stock_score.core.models import PILLAR_MAX, ComputeResult, PillarScores
from stock_score.core.verdict import build_reasons

RSI_CENTER = 52.5
RSI_HALF_WIDTH = 22.5
ESG_CONTROVERSY_BONUS = 0.1


class SubMetric(NamedTuple):
    field: str
    weight: float
    score: Callable[[Any], float]


def _level(v: float | None) -> float:
    """Already-normalized proxy in [0, 1]; absent scores 0."""
    return 0.0 if v is None else clamp01(v)


def _above_200dma(v: bool | None) -> float:
    if v is None:
        return 0.5
    return 1.0 if v else 0.0


def _rsi_band(v: float | None) -> float:
    if v is None:
        return 0.5
    return clamp01(1 - abs(v - RSI_CENTER) / RSI_HALF_WIDTH)


PILLAR_RULES: dict[str, tuple[SubMetric, ...]] = {
    "quality": (
        SubMetric("roe", 0.28, lambda v: linear_map(v, 0.08, 0.25)),
        SubMetric("roic", 0.28, lambda v: linear_map(v, 0.07, 0.20)),
        SubMetric("net_margin", 0.18, lambda v: linear_map(v, 0.05, 0.25)),
        SubMetric("fcf_over_net_income", 0.16, lambda v: linear_map(v, 0.6, 1.2)),
        SubMetric("margin_stability", 0.10, _level),
    ),
    "safety": (
        SubMetric("debt_to_equity", 0.28, lambda v: linear_map(v, 2.0, 0.2, invert=True)),
        SubMetric("net_debt_to_ebitda", 0.32, lambda v: linear_map(v, 3.5, 0.0, invert=True)),
        SubMetric("interest_coverage", 0.24, lambda v: linear_map(v, 2, 15)),
        SubMetric("current_ratio", 0.16, lambda v: linear_map(v, 1.0, 2.0)),
    ),
    "valuation": (
        SubMetric("pe", 0.30, lambda v: linear_map(v, 30, 10, invert=True)),
        SubMetric("ev_to_ebitda", 0.20, lambda v: linear_map(v, 20, 6, invert=True)),
        SubMetric("fcf_yield", 0.35, lambda v: linear_map(v, 0.02, 0.08)),
        SubMetric("earnings_yield", 0.15, lambda v: linear_map(v, 0.03, 0.10)),
    ),
    "growth": (
        SubMetric("rev_cagr_3y", 0.35, lambda v: linear_map(v, 0.0, 0.20)),
        SubMetric("eps_cagr_3y", 0.45, lambda v: linear_map(v, 0.0, 0.20)),
        SubMetric("forward_rev_growth", 0.20, lambda v: linear_map(v, 0.0, 0.15)),
    ),
    "momentum": (
        SubMetric("perf_6m", 0.30, lambda v: linear_map(v, -0.10, 0.25)),
        SubMetric("perf_12m", 0.35, lambda v: linear_map(v, -0.10, 0.35)),
        SubMetric("above_200dma", 0.25, _above_200dma),
        SubMetric("rsi", 0.10, _rsi_band),
    ),
    "moat": (
        SubMetric("roic_persistence", 0.5, _level),
        SubMetric("gross_margin_level", 0.3, _level),
        SubMetric("market_share_trend", 0.2, _level),
    ),
    "governance": (
        SubMetric("dividend_cagr_3y", 0.30, lambda v: linear_map(v, 0.0, 0.08)),
        SubMetric("payout_ratio", 0.25, lambda v: sweet_spot(v, 0.30, 0.60, 0.0, 1.50)),
        SubMetric("buyback_yield", 0.25, lambda v: linear_map(v, 0.0, 0.04)),
        SubMetric("insider_ownership", 0.20, lambda v: linear_map(v, 0.0, 0.15)),
    ),
}

# ESG is scored as base + bonus rather than a weighted sum
ESG_FIELDS = ("esg_score", "controversies_low")


def is_present(value: Any) -> bool:
    """A value counts as present unless absent or non-finite; 0 and False are present."""
    if isinstance(value, bool):
        return True
    return finite_or_none(value) is not None


def _esg_unit(m: Metrics) -> float:
    base = 0.5 if m.esg_score is None else clamp01(m.esg_score / 100)
    if m.controversies_low is None:
        bonus = 0.0
    else:
        bonus = ESG_CONTROVERSY_BONUS if m.controversies_low else -ESG_CONTROVERSY_BONUS
    return clamp01(base + bonus)


def pillar_fields(pillar: str) -> tuple[str, ...]:
    """Sub-metric field names feeding a pillar."""
    if pillar == "esg":
        return ESG_FIELDS
    return tuple(sub.field for sub in PILLAR_RULES[pillar])


def compute_pillars(metrics: Metrics) -> ComputeResult:
    """
    Score the eight pillars of a Metrics view.

    Each pillar is a weighted sum of [0, 1] contributions times its max
    points, clamped to [0, max]. A pillar with no present sub-metric scores
    0, so an all-absent input scores 0 everywhere.

    Args:
        metrics: Scorer inputs (sanitized here before use)

    Returns:
        ComputeResult with subscores, coverage and reason/flag lists
    """
    m = sanitize_metrics(metrics)

    present_count = 0
    total_count = 0
    present_pillars: list[str] = []
    scores: dict[str, float] = {}

    for pillar, max_points in PILLAR_MAX.items():
        names = pillar_fields(pillar)
        present = [is_present(getattr(m, name)) for name in names]
        total_count += len(present)
        present_count += sum(present)

        if not any(present):
            scores[pillar] = 0.0
            continue
        present_pillars.append(pillar)

        if pillar == "esg":
            unit = _esg_unit(m)
        else:
            unit = sum(sub.weight * sub.score(getattr(m, sub.field)) for sub in PILLAR_RULES[pillar])
        scores[pillar] = clamp(unit * max_points, 0.0, float(max_points))

    subscores = PillarScores(**scores)
    coverage = round_half_up(100 * present_count / max(1, total_count))
    reasons, flags = build_reasons(subscores, m)

    return ComputeResult(
        subscores=subscores,
        coverage=coverage,
        reasons_positive=tuple(reasons),
        red_flags=tuple(flags),
        present_pillars=tuple(present_pillars),
    )

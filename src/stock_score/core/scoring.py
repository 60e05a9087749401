"""End-to-end scoring of one DataBundle into a ScorePayload."""

from typing import Any

from stock_score.core.mapping import round_half_up
from stock_score.core.metrics import Metrics, bundle_to_metrics
from stock_score.core.models import PILLAR_MAX, DataBundle, ScorePayload
from stock_score.core.opportunity import build_opportunity_series
from stock_score.core.pillars import compute_pillars
from stock_score.core.verdict import classify_verdict, color_for

MAX_REASONS = 3
MAX_FLAGS = 2


def compute_malus(bundle: DataBundle, metrics: Metrics) -> int:
    """Penalty points subtracted from the rounded pillar total. No penalties are defined yet."""
    return 0


def max_available(present_pillars: tuple[str, ...]) -> int:
    """Sum of maximum points over pillars that had at least one present input."""
    return sum(PILLAR_MAX[p] for p in present_pillars)


def _proof(bundle: DataBundle) -> dict[str, Any]:
    f = bundle.fundamentals
    p = bundle.prices
    if f.fcf_yield.present:
        valuation_metric = "FCFY"
    elif f.earnings_yield.present:
        valuation_metric = "EY"
    else:
        valuation_metric = None
    return {
        "price_points": p.points,
        "has_200dma": p.px_vs_200dma.present,
        "recency_days": p.recency_days,
        "valuation_metric": valuation_metric,
        "sources_used": list(bundle.sources_used),
    }


def _ratios(bundle: DataBundle) -> dict[str, float | None]:
    f = bundle.fundamentals
    return {
        "roe": f.roe.value,
        "roa": f.roa.value,
        "fcf_over_net_income": f.fcf_over_net_income.value,
        "roic": f.roic.value,
    }


def score_bundle(
    bundle: DataBundle,
    include_series: bool = True,
    max_reasons: int = MAX_REASONS,
    max_flags: int = MAX_FLAGS,
) -> ScorePayload:
    """
    Score a DataBundle.

    Pure and deterministic: identical bundles give identical payloads. Missing
    data lowers coverage and the verdict, it never raises.

    Args:
        bundle: Immutable input bundle
        include_series: Attach the opportunity series (when a price series exists)
        max_reasons: Cap on reasons_positive
        max_flags: Cap on red_flags

    Returns:
        ScorePayload

    Raises:
        InvalidBundleError: If the bundle is structurally broken
    """
    bundle.validate()

    metrics = bundle_to_metrics(bundle)
    result = compute_pillars(metrics)

    raw = round_half_up(result.subscores.total()) - compute_malus(bundle, metrics)
    raw = max(0, min(100, raw))

    available = max_available(result.present_pillars)
    score_adj = min(100, round_half_up(100 * raw / available)) if available > 0 else 0

    momentum_present = "momentum" in result.present_pillars
    verdict, verdict_reason = classify_verdict(result.coverage, score_adj, momentum_present)

    opportunity = None
    if include_series and bundle.prices.series is not None:
        opportunity = tuple(build_opportunity_series(bundle.prices.series, bundle.fundamentals))

    return ScorePayload(
        ticker=bundle.ticker,
        score=raw,
        score_adj=score_adj,
        color=color_for(raw),
        verdict=verdict,
        verdict_reason=verdict_reason,
        reasons_positive=result.reasons_positive[:max_reasons],
        red_flags=result.red_flags[:max_flags],
        subscores=result.subscores,
        coverage=result.coverage,
        opportunity_series=opportunity,
        proof=_proof(bundle),
        ratios=_ratios(bundle),
    )

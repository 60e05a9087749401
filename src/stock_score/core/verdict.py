"""Reason/red-flag rules, color bands and verdict classification."""

import operator

from stock_score.core.metrics import Metrics
from stock_score.core.models import PILLAR_MAX, PillarScores
from stock_score.utils.validators import check_rule

# 6/8 of the quality pillar
QUALITY_REASON_THRESHOLD = 0.75 * PILLAR_MAX["quality"]

INSUFFICIENT_DATA = "insufficient data"

# Verdict gates
HEALTHY_SCORE = 70
WATCH_SCORE = 50
MIN_COVERAGE = 40

# Color bands on the raw score
STRONG_SCORE = 70
MODERATE_SCORE = 50


def build_reasons(subscores: PillarScores, m: Metrics) -> tuple[list[str], list[str]]:
    """
    Evaluate every reason and flag rule in a fixed order.

    Absent inputs never trigger a rule. Lists are uncapped here; the caller
    trims them.

    Returns:
        Tuple of (reasons_positive, red_flags)
    """
    reasons: list[str] = []
    flags: list[str] = []

    # Quality
    if check_rule(subscores.quality, QUALITY_REASON_THRESHOLD, operator.ge):
        reasons.append("profitable and efficient operations")
    if check_rule(m.roic, 0.15) and check_rule(m.margin_stability, 0.6):
        reasons.append("high and durable ROIC")
    if check_rule(m.fcf_over_net_income, 0.5, operator.lt):
        flags.append("weak cash conversion")

    # Safety
    if check_rule(m.net_debt_to_ebitda, 3.5):
        flags.append("high leverage")
    if check_rule(m.interest_coverage, 2, operator.lt):
        flags.append("thin interest coverage")

    # Valuation
    if check_rule(m.fcf_yield, 0.08, operator.ge):
        reasons.append("attractive free-cash-flow yield")
    if check_rule(m.pe, 40):
        flags.append("rich valuation multiple")

    # Growth
    if check_rule(m.eps_cagr_3y, 0.15):
        reasons.append("sustained EPS growth")
    if check_rule(m.rev_cagr_3y, 0, operator.lt):
        flags.append("revenue decline")

    # Moat
    if check_rule(m.roic_persistence, 0.6):
        reasons.append("durable returns above cost of capital")
    if check_rule(m.market_share_trend, 0.3, operator.lt):
        flags.append("market share under pressure")

    # Governance
    if check_rule(m.buyback_yield, 0.03):
        reasons.append("meaningful buybacks")
    if check_rule(m.payout_ratio, 1.0):
        flags.append("payout above 100% (dividend risk)")

    if not reasons:
        reasons.append(INSUFFICIENT_DATA)

    return reasons, flags


def color_for(raw_score: int) -> str:
    if raw_score >= STRONG_SCORE:
        return "strong"
    if raw_score >= MODERATE_SCORE:
        return "moderate"
    return "weak"


def classify_verdict(coverage: int, score_adj: int, momentum_present: bool) -> tuple[str, str]:
    """
    Label a score as healthy / watch / fragile.

    Args:
        coverage: Field coverage 0..100
        score_adj: Coverage-adjusted score 0..100
        momentum_present: Whether any momentum input was present

    Returns:
        Tuple of (verdict, verdict_reason)
    """
    limited = coverage < MIN_COVERAGE
    if score_adj >= HEALTHY_SCORE and not limited and momentum_present:
        return "healthy", "strong score with sufficient coverage"
    if score_adj >= WATCH_SCORE or momentum_present:
        reason = "positive but incomplete signal"
        return "watch", f"{reason} (limited coverage)" if limited else reason
    reason = "weak signal"
    return "fragile", f"{reason} (partial data)" if limited else reason

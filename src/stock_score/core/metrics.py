"""Flatten a DataBundle into the scorer's Metrics view and sanitize it."""

from dataclasses import dataclass, fields, replace

from stock_score.core.mapping import clamp, finite_or_none
from stock_score.core.models import DataBundle, PriceSeries

# Trading-day windows for trailing performance
PERF_6M_DAYS = 126
PERF_12M_DAYS = 252


@dataclass(frozen=True)
class Metrics:
    """
    Flat, scorer-facing metrics. None means absent.

    Callers may build one directly; sanitize_metrics re-clamps every field
    so values that bypassed normalization still land in scoring domains.
    """

    # Quality
    roe: float | None = None
    roic: float | None = None
    net_margin: float | None = None
    fcf_over_net_income: float | None = None
    margin_stability: float | None = None

    # Safety
    debt_to_equity: float | None = None
    net_debt_to_ebitda: float | None = None
    interest_coverage: float | None = None
    current_ratio: float | None = None

    # Valuation
    pe: float | None = None
    ev_to_ebitda: float | None = None
    fcf_yield: float | None = None
    earnings_yield: float | None = None

    # Growth
    rev_cagr_3y: float | None = None
    eps_cagr_3y: float | None = None
    forward_rev_growth: float | None = None

    # Momentum
    perf_6m: float | None = None
    perf_12m: float | None = None
    above_200dma: bool | None = None
    rsi: float | None = None

    # Moat
    roic_persistence: float | None = None
    gross_margin_level: float | None = None
    market_share_trend: float | None = None

    # ESG
    esg_score: float | None = None
    controversies_low: bool | None = None

    # Governance
    dividend_cagr_3y: float | None = None
    payout_ratio: float | None = None
    buyback_yield: float | None = None
    insider_ownership: float | None = None


# Scorer-local domains, independent of the normalization clamps
SANITIZE_BOUNDS: dict[str, tuple[float, float]] = {
    "roe": (-1.0, 1.0),
    "roic": (-1.0, 1.0),
    "net_margin": (-1.0, 1.0),
    "fcf_over_net_income": (-5.0, 5.0),
    "margin_stability": (0.0, 1.0),
    "debt_to_equity": (0.0, 6.0),
    "net_debt_to_ebitda": (-2.0, 8.0),
    "interest_coverage": (0.0, 80.0),
    "current_ratio": (0.0, 4.0),
    "pe": (0.0, 80.0),
    "ev_to_ebitda": (0.0, 40.0),
    "fcf_yield": (-0.05, 0.15),
    "earnings_yield": (-0.05, 0.15),
    "rev_cagr_3y": (-0.2, 0.6),
    "eps_cagr_3y": (-0.2, 0.6),
    "forward_rev_growth": (-0.2, 0.6),
    "perf_6m": (-0.5, 1.0),
    "perf_12m": (-0.5, 1.0),
    "rsi": (0.0, 100.0),
    "roic_persistence": (0.0, 1.0),
    "gross_margin_level": (0.0, 1.0),
    "market_share_trend": (0.0, 1.0),
    "esg_score": (0.0, 100.0),
    "dividend_cagr_3y": (-0.2, 0.6),
    "payout_ratio": (0.0, 5.0),
    "buyback_yield": (-0.05, 0.15),
    "insider_ownership": (0.0, 1.0),
}

_BOOL_FIELDS = ("above_200dma", "controversies_low")


def trailing_return(series: PriceSeries | None, days: int) -> float | None:
    """Return over the last `days` points of a series, None if too short."""
    if series is None or len(series) <= days:
        return None
    last = series.closes[-1]
    past = series.closes[-1 - days]
    if past <= 0:
        return None
    return last / past - 1


def _flag(value: float | None) -> bool | None:
    return None if value is None else value > 0


def bundle_to_metrics(bundle: DataBundle) -> Metrics:
    """Map canonical fundamentals and prices onto the scorer's inputs."""
    f = bundle.fundamentals
    p = bundle.prices

    perf_6m = trailing_return(p.series, PERF_6M_DAYS)
    if perf_6m is None:
        perf_6m = p.ret_60d.value

    earnings_yield = f.earnings_yield.value
    pe = 1 / earnings_yield if earnings_yield is not None and earnings_yield > 0 else None

    eps_cagr = f.eps_cagr_3y.value
    if eps_cagr is None:
        eps_cagr = f.eps_growth.value

    px_vs_200dma = p.px_vs_200dma.value

    return Metrics(
        roe=f.roe.value,
        roic=f.roic.value,
        # Operating margin stands in for net margin
        net_margin=f.op_margin.value,
        fcf_over_net_income=f.fcf_over_net_income.value,
        margin_stability=None,
        debt_to_equity=f.debt_to_equity.value,
        net_debt_to_ebitda=f.net_debt_to_ebitda.value,
        interest_coverage=f.interest_coverage.value,
        current_ratio=f.current_ratio.value,
        pe=pe,
        ev_to_ebitda=f.ev_to_ebitda.value,
        fcf_yield=f.fcf_yield.value,
        earnings_yield=earnings_yield,
        rev_cagr_3y=f.rev_cagr_3y.value,
        eps_cagr_3y=eps_cagr,
        forward_rev_growth=f.rev_growth.value,
        perf_6m=perf_6m,
        perf_12m=trailing_return(p.series, PERF_12M_DAYS),
        above_200dma=None if px_vs_200dma is None else px_vs_200dma >= 0,
        rsi=p.rsi.value,
        roic_persistence=f.moat_proxy.value,
        gross_margin_level=f.gross_margin.value,
        market_share_trend=None,
        esg_score=f.esg_score.value,
        controversies_low=_flag(f.controversies_low.value),
        dividend_cagr_3y=f.dividend_cagr_3y.value,
        payout_ratio=f.payout_ratio.value,
        buyback_yield=f.buyback_yield.value,
        insider_ownership=f.insider_ownership.value,
    )


def sanitize_metrics(m: Metrics) -> Metrics:
    """Coerce every field to finite-or-None and clamp it into its scoring domain."""
    updates: dict[str, float | bool | None] = {}
    for f in fields(m):
        value = getattr(m, f.name)
        if f.name in _BOOL_FIELDS:
            updates[f.name] = value if isinstance(value, bool) else None
            continue
        number = finite_or_none(value)
        bounds = SANITIZE_BOUNDS.get(f.name)
        if number is not None and bounds is not None:
            number = clamp(number, *bounds)
        updates[f.name] = number
    return replace(m, **updates)

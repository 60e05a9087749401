"""Normalization layer: raw provider payloads -> canonical MetricValues.

Every canonical metric is resolved through an explicit fallback chain of
(extractor, tag) pairs. The first extractor yielding a finite number wins;
its tag records whether the value was provider-reported ("direct") or
computed from statement line items ("derived").

Contract:
1. Providers mix percentage and decimal encodings. A direct value of a
   percentage-type field with |v| > PERCENT_THRESHOLD is divided by 100.
2. Every resolved value is clamped to a metric-specific sane range.
3. Confidence is a static weight per field and tag, 0 when absent.
4. Missing or malformed inputs never raise; they resolve to absent.
"""

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, fields
from typing import Any, NamedTuple

import pandas as pd

from stock_score.core.mapping import clamp, finite_or_none, round_half_up, safe_ratio
from stock_score.core.models import (
    SOURCE_DERIVED,
    SOURCE_DIRECT,
    DataBundle,
    Fundamentals,
    MetricValue,
    Prices,
    PriceSeries,
)
from stock_score.utils.indicators import (
    calculate_max_drawdown,
    calculate_range_position,
    calculate_returns,
    calculate_rsi,
    calculate_sma,
)

# |v| above this is read as a percentage (15.4 -> 0.154)
PERCENT_THRESHOLD = 5.0

# Used when the effective tax rate cannot be determined
DEFAULT_TAX_RATE = 0.21
MAX_TAX_RATE = 0.5

# Interest expense below this (in currency units) is treated as zero
INTEREST_EPSILON = 1e-6

# Price-to-book below this marks a net-cash proxy when cash/debt are unknown
NET_CASH_PB_THRESHOLD = 1.2

MS_PER_DAY = 24 * 60 * 60 * 1000


@dataclass(frozen=True)
class RawFinancials:
    """
    Strict intermediate schema for provider payloads.

    All fields are optional floats. Provider adapters fill it once; nothing
    downstream of the normalization layer sees raw provider shapes.
    """

    # Market
    price: float | None = None
    shares_outstanding: float | None = None
    market_cap: float | None = None
    trailing_pe: float | None = None
    trailing_eps: float | None = None
    price_to_book: float | None = None
    enterprise_to_ebitda: float | None = None

    # Provider-reported ratios
    operating_margin: float | None = None
    gross_margin: float | None = None
    current_ratio: float | None = None
    debt_to_equity: float | None = None
    return_on_equity: float | None = None
    return_on_assets: float | None = None
    revenue_growth: float | None = None
    earnings_growth: float | None = None
    payout_ratio: float | None = None
    dividend_cagr_3y: float | None = None
    insider_ownership: float | None = None
    esg_score: float | None = None
    low_controversy: float | None = None
    moat_proxy: float | None = None

    # Income statement (latest annual unless suffixed)
    revenue: float | None = None
    revenue_prior: float | None = None
    revenue_3y_ago: float | None = None
    gross_profit: float | None = None
    operating_income: float | None = None
    ebit: float | None = None
    ebitda: float | None = None
    interest_expense: float | None = None
    pretax_income: float | None = None
    tax_expense: float | None = None
    net_income: float | None = None
    eps_annual: float | None = None
    eps_annual_prior: float | None = None
    eps_annual_3y_ago: float | None = None

    # Balance sheet
    total_cash: float | None = None
    total_debt: float | None = None
    total_liabilities: float | None = None
    total_assets: float | None = None
    current_assets: float | None = None
    current_liabilities: float | None = None
    equity: float | None = None
    equity_prior: float | None = None

    # Cash flow
    free_cash_flow: float | None = None
    share_repurchase: float | None = None
    dividends_paid: float | None = None
    dividends_ttm: float | None = None
    dividends_ttm_3y_ago: float | None = None

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any] | None) -> "RawFinancials":
        """Validate a loose mapping once. Unknown keys are ignored, bad values become None."""
        if not payload:
            return cls()
        return cls(**{f.name: finite_or_none(payload.get(f.name)) for f in fields(cls)})


Extractor = Callable[[RawFinancials], float | None]


class Source(NamedTuple):
    extract: Extractor
    tag: str


@dataclass(frozen=True)
class MetricRule:
    """Fallback chain, sane range and static confidence for one canonical metric."""

    name: str
    chain: tuple[Source, ...]
    bounds: tuple[float, float] | None = None
    confidence_direct: float = 0.4
    confidence_derived: float = 0.3
    percentish: bool = False


def disambiguate_unit(v: float) -> float:
    """Read |v| > 5 as a percentage, anything else as an already-decimal ratio."""
    return v / 100 if abs(v) > PERCENT_THRESHOLD else v


def resolve_metric(rule: MetricRule, raw: RawFinancials) -> MetricValue:
    """Walk a rule's fallback chain and wrap the first finite value."""
    for source in rule.chain:
        value = finite_or_none(source.extract(raw))
        if value is None:
            continue
        if rule.percentish and source.tag == SOURCE_DIRECT:
            value = disambiguate_unit(value)
        if rule.bounds is not None:
            value = clamp(value, *rule.bounds)
        confidence = (
            rule.confidence_direct if source.tag == SOURCE_DIRECT else rule.confidence_derived
        )
        return MetricValue(value, confidence, source.tag)
    return MetricValue.absent()


# ---------------- Derived quantities ----------------

def _positive(x: float | None) -> float | None:
    return x if x is not None and x > 0 else None


def _market_cap(r: RawFinancials) -> float | None:
    if _positive(r.market_cap) is not None:
        return r.market_cap
    if _positive(r.price) is not None and _positive(r.shares_outstanding) is not None:
        return r.price * r.shares_outstanding
    return None


def _debt_like(r: RawFinancials) -> float | None:
    """Reported debt, else total liabilities as a broader proxy."""
    return r.total_debt if r.total_debt is not None else r.total_liabilities


def _growth(latest: float | None, prior: float | None) -> float | None:
    if latest is None or _positive(prior) is None:
        return None
    return latest / prior - 1


def _cagr(latest: float | None, past: float | None, years: int = 3) -> float | None:
    if _positive(latest) is None or _positive(past) is None:
        return None
    return (latest / past) ** (1 / years) - 1


def _effective_tax_rate(r: RawFinancials) -> float:
    rate = safe_ratio(r.tax_expense, r.pretax_income)
    if rate is None:
        return DEFAULT_TAX_RATE
    return clamp(rate, 0.0, MAX_TAX_RATE)


def _roe_derived(r: RawFinancials) -> float | None:
    if r.equity is not None and r.equity_prior is not None:
        avg_equity = (r.equity + r.equity_prior) / 2
    else:
        avg_equity = r.equity
    return safe_ratio(r.net_income, avg_equity)


def _roic_derived(r: RawFinancials) -> float | None:
    if r.operating_income is not None:
        nopat = r.operating_income * (1 - _effective_tax_rate(r))
    else:
        nopat = r.net_income
    debt = _debt_like(r)
    if nopat is None or (debt is None and r.equity is None):
        return None
    invested = (debt or 0.0) + (r.equity or 0.0) - (r.total_cash or 0.0)
    # Huge net cash makes invested capital <= 0; report absent, not a misleading number
    if invested <= 0:
        return None
    return nopat / invested


def _debt_to_equity_derived(r: RawFinancials) -> float | None:
    return safe_ratio(_debt_like(r), r.equity)


def _net_debt_to_ebitda(r: RawFinancials) -> float | None:
    debt = _debt_like(r)
    if debt is None or r.total_cash is None:
        return None
    return safe_ratio(debt - r.total_cash, r.ebitda)


def _interest_coverage(r: RawFinancials) -> float | None:
    earnings = r.ebit if r.ebit is not None else r.operating_income
    if earnings is None or r.interest_expense is None:
        return None
    if abs(r.interest_expense) < INTEREST_EPSILON:
        return None
    return earnings / abs(r.interest_expense)


def _enterprise_value(r: RawFinancials) -> float | None:
    market_cap = _market_cap(r)
    if market_cap is None or r.total_debt is None or r.total_cash is None:
        return None
    return market_cap + r.total_debt - r.total_cash


def _buyback_yield(r: RawFinancials) -> float | None:
    # Only a negative repurchase figure is a cash outflow
    if r.share_repurchase is None or r.share_repurchase >= 0:
        return None
    return safe_ratio(abs(r.share_repurchase), _market_cap(r))


def _net_cash_from_balance(r: RawFinancials) -> float | None:
    debt = _debt_like(r)
    if r.total_cash is None or debt is None:
        return None
    return 1.0 if r.total_cash - debt > 0 else 0.0


def _net_cash_from_book(r: RawFinancials) -> float | None:
    if _positive(r.price_to_book) is None:
        return None
    return 1.0 if r.price_to_book < NET_CASH_PB_THRESHOLD else 0.0


def _payout_derived(r: RawFinancials) -> float | None:
    if r.dividends_paid is None or _positive(r.net_income) is None:
        return None
    return abs(r.dividends_paid) / r.net_income


def _flag(x: float | None) -> float | None:
    if x is None:
        return None
    return 1.0 if x > 0 else 0.0


def _direct(attr: str) -> Source:
    return Source(lambda r: getattr(r, attr), SOURCE_DIRECT)


def _derived(fn: Extractor) -> Source:
    return Source(fn, SOURCE_DERIVED)


FUNDAMENTAL_RULES: tuple[MetricRule, ...] = (
    MetricRule(
        "op_margin",
        (_direct("operating_margin"), _derived(lambda r: safe_ratio(r.operating_income, r.revenue))),
        bounds=(-1.0, 1.0), confidence_direct=0.45, confidence_derived=0.35, percentish=True,
    ),
    MetricRule(
        "current_ratio",
        (
            _direct("current_ratio"),
            _derived(lambda r: safe_ratio(r.current_assets, r.current_liabilities)),
        ),
        bounds=(0.0, 10.0), confidence_direct=0.4, confidence_derived=0.3,
    ),
    MetricRule(
        "fcf_yield",
        (_derived(lambda r: safe_ratio(r.free_cash_flow, _market_cap(r))),),
        bounds=(-0.05, 0.08), confidence_derived=0.4,
    ),
    MetricRule(
        "earnings_yield",
        (
            _derived(lambda r: safe_ratio(1.0, _positive(r.trailing_pe))),
            _derived(lambda r: safe_ratio(r.trailing_eps, _positive(r.price))),
        ),
        bounds=(-1.0, 1.0), confidence_derived=0.4,
    ),
    MetricRule(
        "net_cash",
        (_derived(_net_cash_from_balance), _derived(_net_cash_from_book)),
        confidence_derived=0.35,
    ),
    MetricRule(
        "roe",
        (_direct("return_on_equity"), _derived(_roe_derived)),
        bounds=(-2.0, 2.0), confidence_direct=0.45, confidence_derived=0.35, percentish=True,
    ),
    MetricRule(
        "roa",
        (_direct("return_on_assets"), _derived(lambda r: safe_ratio(r.net_income, r.total_assets))),
        bounds=(-1.0, 1.0), confidence_direct=0.4, confidence_derived=0.3, percentish=True,
    ),
    MetricRule("roic", (_derived(_roic_derived),), bounds=(-1.0, 1.0), confidence_derived=0.3),
    MetricRule(
        "fcf_over_net_income",
        (_derived(lambda r: safe_ratio(r.free_cash_flow, r.net_income)),),
        bounds=(-5.0, 5.0), confidence_derived=0.35,
    ),
    MetricRule(
        "rev_growth",
        (_direct("revenue_growth"), _derived(lambda r: _growth(r.revenue, r.revenue_prior))),
        bounds=(-1.0, 1.0), confidence_direct=0.4, confidence_derived=0.3, percentish=True,
    ),
    MetricRule(
        "eps_growth",
        (
            _direct("earnings_growth"),
            _derived(lambda r: _growth(r.eps_annual, r.eps_annual_prior)),
        ),
        bounds=(-1.0, 1.0), confidence_direct=0.4, confidence_derived=0.3, percentish=True,
    ),
    MetricRule(
        "rev_cagr_3y",
        (_derived(lambda r: _cagr(r.revenue, r.revenue_3y_ago)),),
        bounds=(-1.0, 1.0), confidence_derived=0.3,
    ),
    MetricRule(
        "eps_cagr_3y",
        (_derived(lambda r: _cagr(r.eps_annual, r.eps_annual_3y_ago)),),
        bounds=(-1.0, 1.0), confidence_derived=0.3,
    ),
    MetricRule(
        "debt_to_equity",
        (_direct("debt_to_equity"), _derived(_debt_to_equity_derived)),
        bounds=(-5.0, 5.0), confidence_direct=0.45, confidence_derived=0.35, percentish=True,
    ),
    MetricRule(
        "net_debt_to_ebitda",
        (_derived(_net_debt_to_ebitda),),
        bounds=(-5.0, 10.0), confidence_derived=0.35,
    ),
    MetricRule(
        "interest_coverage",
        (_derived(_interest_coverage),),
        bounds=(-50.0, 200.0), confidence_derived=0.35,
    ),
    MetricRule(
        "ev_to_ebitda",
        (
            _direct("enterprise_to_ebitda"),
            _derived(lambda r: safe_ratio(_enterprise_value(r), r.ebitda)),
        ),
        bounds=(-100.0, 200.0), confidence_direct=0.4, confidence_derived=0.35,
    ),
    MetricRule(
        "gross_margin",
        (_direct("gross_margin"), _derived(lambda r: safe_ratio(r.gross_profit, r.revenue))),
        bounds=(-1.0, 1.0), confidence_direct=0.4, confidence_derived=0.3, percentish=True,
    ),
    MetricRule(
        "payout_ratio",
        (_direct("payout_ratio"), _derived(_payout_derived)),
        bounds=(0.0, 5.0), confidence_direct=0.3, confidence_derived=0.25, percentish=True,
    ),
    MetricRule(
        "dividend_cagr_3y",
        (
            _direct("dividend_cagr_3y"),
            _derived(lambda r: _cagr(r.dividends_ttm, r.dividends_ttm_3y_ago)),
        ),
        bounds=(-1.0, 1.0), confidence_direct=0.3, confidence_derived=0.25, percentish=True,
    ),
    MetricRule(
        "buyback_yield",
        (_derived(_buyback_yield),),
        bounds=(-0.12, 0.10), confidence_derived=0.25,
    ),
    MetricRule(
        "insider_ownership",
        (_direct("insider_ownership"),),
        bounds=(0.0, 1.0), confidence_direct=0.3, percentish=True,
    ),
    MetricRule("esg_score", (_direct("esg_score"),), bounds=(0.0, 100.0), confidence_direct=0.3),
    MetricRule(
        "controversies_low",
        (Source(lambda r: _flag(r.low_controversy), SOURCE_DIRECT),),
        confidence_direct=0.3,
    ),
    MetricRule("moat_proxy", (_direct("moat_proxy"),), bounds=(0.0, 1.0), confidence_direct=0.25),
)


def normalize_fundamentals(raw: RawFinancials | Mapping[str, Any] | None) -> Fundamentals:
    """
    Resolve every canonical fundamental from a raw payload.

    Args:
        raw: RawFinancials, or a loose mapping validated via RawFinancials.from_mapping

    Returns:
        Fundamentals with one MetricValue per field (absent where unresolvable)
    """
    if not isinstance(raw, RawFinancials):
        raw = RawFinancials.from_mapping(raw)
    return Fundamentals(**{rule.name: resolve_metric(rule, raw) for rule in FUNDAMENTAL_RULES})


# ---------------- Prices ----------------

def _confidence_from_points(points: int) -> float:
    if points >= 400:
        return 0.95
    if points >= 250:
        return 0.85
    if points >= 120:
        return 0.7
    return 0.4


def build_prices(
    timestamps: Iterable[int],
    closes: Iterable[float],
    as_of_ms: int | None = None,
) -> Prices:
    """
    Enrich a close series into price metrics.

    Args:
        timestamps: Epoch milliseconds, aligned with closes
        closes: Close prices (non-finite entries are dropped with their timestamp)
        as_of_ms: Reference time for recency_days (None = not computed)

    Returns:
        Prices with metrics and the cleaned series attached
    """
    series = PriceSeries(tuple(timestamps), tuple(closes))
    points = len(series)
    if points == 0:
        return Prices()

    s = pd.Series(series.closes, dtype="float64")
    conf = _confidence_from_points(points)
    last = float(s.iloc[-1])

    def metric(value: float | None, source: str = SOURCE_DERIVED) -> MetricValue:
        if finite_or_none(value) is None:
            return MetricValue.absent()
        return MetricValue(value, conf, source)

    px_vs_200dma: float | None = None
    if points >= 200:
        avg200 = calculate_sma(s, 200).iloc[-1]
        if avg200 > 0:
            px_vs_200dma = last / avg200 - 1

    pct_52w: float | None = None
    max_dd_1y: float | None = None
    last252 = s.iloc[-252:]
    if len(last252) >= 30:
        pct_52w = calculate_range_position(last252)
        max_dd_1y = calculate_max_drawdown(last252)

    rsi: float | None = None
    if points > 14:
        rsi = finite_or_none(calculate_rsi(s, 14).iloc[-1])

    recency_days: int | None = None
    if as_of_ms is not None:
        recency_days = round_half_up((as_of_ms - series.timestamps[-1]) / MS_PER_DAY)

    return Prices(
        px=metric(last, SOURCE_DIRECT),
        px_vs_200dma=metric(px_vs_200dma),
        pct_52w=metric(pct_52w),
        max_dd_1y=metric(max_dd_1y),
        ret_20d=metric(calculate_returns(s, 20)),
        ret_60d=metric(calculate_returns(s, 60)),
        rsi=metric(rsi),
        series=series,
        points=points,
        recency_days=recency_days,
    )


def assemble_bundle(
    ticker: str,
    raw: RawFinancials | Mapping[str, Any] | None = None,
    timestamps: Iterable[int] = (),
    closes: Iterable[float] = (),
    sources_used: Iterable[str] = (),
    as_of_ms: int | None = None,
) -> DataBundle:
    """Build the immutable DataBundle the core consumes."""
    return DataBundle(
        ticker=ticker.upper().strip(),
        fundamentals=normalize_fundamentals(raw),
        prices=build_prices(timestamps, closes, as_of_ms=as_of_ms),
        sources_used=tuple(sources_used),
    )

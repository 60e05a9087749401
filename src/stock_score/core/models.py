"""Immutable data model for one scoring call."""

from dataclasses import asdict, dataclass, field, fields
from typing import Any

from stock_score.core.mapping import clamp01, finite_or_none

# Provenance tags
SOURCE_DIRECT = "direct"
SOURCE_DERIVED = "derived"
SOURCE_NONE = "none"


class InvalidBundleError(TypeError):
    """Raised when a DataBundle is missing its required top-level shape."""

    pass


@dataclass(frozen=True)
class MetricValue:
    """A value-or-absence with a static confidence weight and a provenance tag."""

    value: float | None = None
    confidence: float = 0.0
    source: str = SOURCE_NONE

    def __post_init__(self) -> None:
        # Never NaN/inf; absent values always carry zero confidence
        value = finite_or_none(self.value)
        confidence = finite_or_none(self.confidence)
        object.__setattr__(self, "value", value)
        object.__setattr__(
            self,
            "confidence",
            0.0 if value is None or confidence is None else clamp01(confidence),
        )

    @property
    def present(self) -> bool:
        return self.value is not None

    @classmethod
    def absent(cls, source: str = SOURCE_NONE) -> "MetricValue":
        return cls(None, 0.0, source)


def _metric() -> MetricValue:
    return MetricValue()


@dataclass(frozen=True)
class Fundamentals:
    """Canonical fundamentals. Every field is independently optional."""

    op_margin: MetricValue = field(default_factory=_metric)
    current_ratio: MetricValue = field(default_factory=_metric)
    fcf_yield: MetricValue = field(default_factory=_metric)
    earnings_yield: MetricValue = field(default_factory=_metric)
    net_cash: MetricValue = field(default_factory=_metric)  # 1.0 / 0.0 flag
    roe: MetricValue = field(default_factory=_metric)
    roa: MetricValue = field(default_factory=_metric)
    roic: MetricValue = field(default_factory=_metric)
    fcf_over_net_income: MetricValue = field(default_factory=_metric)
    rev_growth: MetricValue = field(default_factory=_metric)
    eps_growth: MetricValue = field(default_factory=_metric)
    rev_cagr_3y: MetricValue = field(default_factory=_metric)
    eps_cagr_3y: MetricValue = field(default_factory=_metric)
    debt_to_equity: MetricValue = field(default_factory=_metric)
    net_debt_to_ebitda: MetricValue = field(default_factory=_metric)
    interest_coverage: MetricValue = field(default_factory=_metric)
    ev_to_ebitda: MetricValue = field(default_factory=_metric)
    gross_margin: MetricValue = field(default_factory=_metric)
    payout_ratio: MetricValue = field(default_factory=_metric)
    dividend_cagr_3y: MetricValue = field(default_factory=_metric)
    buyback_yield: MetricValue = field(default_factory=_metric)
    insider_ownership: MetricValue = field(default_factory=_metric)
    esg_score: MetricValue = field(default_factory=_metric)
    controversies_low: MetricValue = field(default_factory=_metric)  # 1.0 / 0.0 flag
    moat_proxy: MetricValue = field(default_factory=_metric)

    def to_dict(self) -> dict[str, Any]:
        return {f.name: asdict(getattr(self, f.name)) for f in fields(self)}


@dataclass(frozen=True)
class PriceSeries:
    """Aligned (timestamps, closes). Pairs with a non-finite close are dropped."""

    timestamps: tuple[int, ...] = ()
    closes: tuple[float, ...] = ()

    def __post_init__(self) -> None:
        ts_out: list[int] = []
        closes_out: list[float] = []
        for ts, close in zip(self.timestamps, self.closes):
            value = finite_or_none(close)
            if value is None:
                continue
            ts_out.append(int(ts))
            closes_out.append(value)
        object.__setattr__(self, "timestamps", tuple(ts_out))
        object.__setattr__(self, "closes", tuple(closes_out))

    def __len__(self) -> int:
        return len(self.closes)


@dataclass(frozen=True)
class Prices:
    """Price-derived metrics plus the optional raw series."""

    px: MetricValue = field(default_factory=_metric)
    px_vs_200dma: MetricValue = field(default_factory=_metric)
    pct_52w: MetricValue = field(default_factory=_metric)
    max_dd_1y: MetricValue = field(default_factory=_metric)
    ret_20d: MetricValue = field(default_factory=_metric)
    ret_60d: MetricValue = field(default_factory=_metric)
    rsi: MetricValue = field(default_factory=_metric)
    series: PriceSeries | None = None
    points: int = 0
    recency_days: int | None = None

    def to_dict(self, include_series: bool = False) -> dict[str, Any]:
        out: dict[str, Any] = {
            name: asdict(getattr(self, name))
            for name in ("px", "px_vs_200dma", "pct_52w", "max_dd_1y", "ret_20d", "ret_60d", "rsi")
        }
        out["points"] = self.points
        out["recency_days"] = self.recency_days
        if include_series and self.series is not None:
            out["series"] = {
                "timestamps": list(self.series.timestamps),
                "closes": list(self.series.closes),
            }
        return out


@dataclass(frozen=True)
class DataBundle:
    """The sole input to the core. Immutable for the duration of one scoring call."""

    ticker: str
    fundamentals: Fundamentals = field(default_factory=Fundamentals)
    prices: Prices = field(default_factory=Prices)
    sources_used: tuple[str, ...] = ()

    def validate(self) -> None:
        """Fail fast on a structurally broken bundle (programming error, not missing data)."""
        if not isinstance(self.ticker, str):
            raise InvalidBundleError(f"ticker must be a string, got {type(self.ticker).__name__}")
        if not isinstance(self.fundamentals, Fundamentals):
            raise InvalidBundleError(
                f"fundamentals must be Fundamentals, got {type(self.fundamentals).__name__}"
            )
        if not isinstance(self.prices, Prices):
            raise InvalidBundleError(f"prices must be Prices, got {type(self.prices).__name__}")


# Maximum points per pillar (sum is 135; the raw total is clamped to 100)
PILLAR_MAX: dict[str, int] = {
    "quality": 35,
    "safety": 25,
    "valuation": 25,
    "growth": 15,
    "momentum": 15,
    "moat": 10,
    "esg": 5,
    "governance": 5,
}


@dataclass(frozen=True)
class PillarScores:
    quality: float = 0.0
    safety: float = 0.0
    valuation: float = 0.0
    growth: float = 0.0
    momentum: float = 0.0
    moat: float = 0.0
    esg: float = 0.0
    governance: float = 0.0

    def as_dict(self) -> dict[str, float]:
        return {name: getattr(self, name) for name in PILLAR_MAX}

    def total(self) -> float:
        return sum(self.as_dict().values())


@dataclass(frozen=True)
class ComputeResult:
    subscores: PillarScores
    coverage: int
    reasons_positive: tuple[str, ...] = ()
    red_flags: tuple[str, ...] = ()
    # Pillars with at least one present sub-metric
    present_pillars: tuple[str, ...] = ()


@dataclass(frozen=True)
class OppPoint:
    t: int
    close: float
    opp: int

    def to_dict(self) -> dict[str, Any]:
        return {"t": self.t, "close": self.close, "opp": self.opp}


@dataclass(frozen=True)
class ScorePayload:
    """Primary output of the core."""

    ticker: str
    score: int
    score_adj: int
    color: str
    verdict: str
    verdict_reason: str
    reasons_positive: tuple[str, ...]
    red_flags: tuple[str, ...]
    subscores: PillarScores
    coverage: int
    opportunity_series: tuple[OppPoint, ...] | None = None
    proof: dict[str, Any] = field(default_factory=dict)
    ratios: dict[str, float | None] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "ticker": self.ticker,
            "score": self.score,
            "score_adj": self.score_adj,
            "color": self.color,
            "verdict": self.verdict,
            "verdict_reason": self.verdict_reason,
            "reasons_positive": list(self.reasons_positive),
            "red_flags": list(self.red_flags),
            "subscores": {k: round(v, 2) for k, v in self.subscores.as_dict().items()},
            "coverage": self.coverage,
            "proof": dict(self.proof),
            "ratios": dict(self.ratios),
        }
        if self.opportunity_series is not None:
            out["opportunity_series"] = [p.to_dict() for p in self.opportunity_series]
        return out

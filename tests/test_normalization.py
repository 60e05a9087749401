"""Tests for the normalization layer."""

import math

import pytest

from stock_score.core.models import SOURCE_DERIVED, SOURCE_DIRECT, SOURCE_NONE, MetricValue
from stock_score.core.normalization import (
    FUNDAMENTAL_RULES,
    MetricRule,
    RawFinancials,
    Source,
    assemble_bundle,
    build_prices,
    disambiguate_unit,
    normalize_fundamentals,
    resolve_metric,
)

DAY_MS = 24 * 60 * 60 * 1000


class TestMetricValue:
    """Tests for MetricValue invariants."""

    def test_nan_becomes_absent(self) -> None:
        mv = MetricValue(float("nan"), 0.4, SOURCE_DIRECT)
        assert mv.value is None
        assert mv.confidence == 0.0
        assert not mv.present

    def test_infinity_becomes_absent(self) -> None:
        assert MetricValue(math.inf, 0.4).value is None

    def test_zero_is_present(self) -> None:
        mv = MetricValue(0.0, 0.4, SOURCE_DIRECT)
        assert mv.present
        assert mv.confidence == 0.4

    def test_confidence_clamped(self) -> None:
        assert MetricValue(1.0, 3.0).confidence == 1.0


class TestUnitDisambiguation:
    """Percentage vs decimal handling."""

    def test_threshold(self) -> None:
        assert disambiguate_unit(15.4) == pytest.approx(0.154)
        assert disambiguate_unit(-12.0) == pytest.approx(-0.12)
        assert disambiguate_unit(0.154) == 0.154
        assert disambiguate_unit(5.0) == 5.0

    def test_percent_and_decimal_normalize_identically(self) -> None:
        """A reported 15.4 and a reported 0.154 are the same operating margin."""
        as_decimal = normalize_fundamentals({"operating_margin": 0.154}).op_margin
        as_percent = normalize_fundamentals({"operating_margin": 15.4}).op_margin
        assert as_decimal.value == pytest.approx(0.154)
        assert as_percent.value == pytest.approx(as_decimal.value)
        assert as_percent.confidence == as_decimal.confidence
        assert as_percent.source == as_decimal.source == SOURCE_DIRECT

    def test_yfinance_debt_to_equity_percent(self) -> None:
        f = normalize_fundamentals({"debt_to_equity": 150.3})
        assert f.debt_to_equity.value == pytest.approx(1.503)

    def test_derived_values_not_rescaled(self) -> None:
        """Only provider-reported values are disambiguated."""
        f = normalize_fundamentals({"equity": 10.0, "total_debt": 60.0})
        assert f.debt_to_equity.source == SOURCE_DERIVED
        # 6.0 is clamped to the D/E range, not divided by 100
        assert f.debt_to_equity.value == 5.0


class TestFallbackChains:
    """Ordered (extractor, tag) evaluation."""

    def test_first_finite_source_wins(self) -> None:
        rule = MetricRule(
            "x",
            (
                Source(lambda r: None, SOURCE_DIRECT),
                Source(lambda r: float("nan"), SOURCE_DIRECT),
                Source(lambda r: 0.2, SOURCE_DERIVED),
                Source(lambda r: 0.9, SOURCE_DERIVED),
            ),
            confidence_derived=0.3,
        )
        mv = resolve_metric(rule, RawFinancials())
        assert mv.value == 0.2
        assert mv.source == SOURCE_DERIVED
        assert mv.confidence == 0.3

    def test_exhausted_chain_is_absent(self) -> None:
        rule = MetricRule("x", (Source(lambda r: None, SOURCE_DIRECT),))
        mv = resolve_metric(rule, RawFinancials())
        assert mv == MetricValue(None, 0.0, SOURCE_NONE)

    def test_direct_preferred_over_derived(self) -> None:
        f = normalize_fundamentals(
            {"operating_margin": 0.2, "operating_income": 30.0, "revenue": 100.0}
        )
        assert f.op_margin.value == 0.2
        assert f.op_margin.source == SOURCE_DIRECT

    def test_derived_used_when_direct_missing(self) -> None:
        f = normalize_fundamentals({"operating_income": 30.0, "revenue": 200.0})
        assert f.op_margin.value == pytest.approx(0.15)
        assert f.op_margin.source == SOURCE_DERIVED
        assert f.op_margin.confidence < 0.45

    def test_every_fundamental_has_a_rule(self) -> None:
        names = {rule.name for rule in FUNDAMENTAL_RULES}
        assert names == set(normalize_fundamentals(None).to_dict())


class TestDerivedFormulas:
    """Statement-derived metrics."""

    def test_roe_uses_average_equity(self) -> None:
        f = normalize_fundamentals({"net_income": 20.0, "equity": 100.0, "equity_prior": 60.0})
        assert f.roe.value == pytest.approx(0.25)

    def test_roe_single_equity(self) -> None:
        f = normalize_fundamentals({"net_income": 20.0, "equity": 100.0})
        assert f.roe.value == pytest.approx(0.2)

    def test_roa(self) -> None:
        f = normalize_fundamentals({"net_income": 10.0, "total_assets": 200.0})
        assert f.roa.value == pytest.approx(0.05)

    def test_fcf_over_net_income_zero_denominator(self) -> None:
        f = normalize_fundamentals({"free_cash_flow": 10.0, "net_income": 0.0})
        assert f.fcf_over_net_income.value is None

    def test_roic_with_effective_tax_rate(self) -> None:
        f = normalize_fundamentals(
            {
                "operating_income": 100.0,
                "pretax_income": 80.0,
                "tax_expense": 16.0,
                "total_debt": 200.0,
                "equity": 600.0,
                "total_cash": 0.0,
            }
        )
        # NOPAT 80 over invested capital 800
        assert f.roic.value == pytest.approx(0.1)
        assert f.roic.source == SOURCE_DERIVED

    def test_roic_default_tax_rate(self) -> None:
        f = normalize_fundamentals(
            {"operating_income": 100.0, "total_debt": 0.0, "equity": 790.0}
        )
        assert f.roic.value == pytest.approx(0.1)

    def test_roic_absent_when_invested_capital_not_positive(self) -> None:
        f = normalize_fundamentals(
            {
                "operating_income": 100.0,
                "total_debt": 10.0,
                "equity": 50.0,
                "total_cash": 500.0,
            }
        )
        assert f.roic.value is None
        assert f.roic.confidence == 0.0

    def test_interest_coverage(self) -> None:
        f = normalize_fundamentals({"ebit": 50.0, "interest_expense": -5.0})
        assert f.interest_coverage.value == pytest.approx(10.0)

    def test_interest_coverage_absent_without_interest(self) -> None:
        f = normalize_fundamentals({"ebit": 50.0, "interest_expense": 0.0})
        assert f.interest_coverage.value is None

    def test_net_debt_to_ebitda(self) -> None:
        f = normalize_fundamentals({"total_debt": 300.0, "total_cash": 100.0, "ebitda": 100.0})
        assert f.net_debt_to_ebitda.value == pytest.approx(2.0)

    def test_enterprise_value_to_ebitda(self) -> None:
        f = normalize_fundamentals(
            {"market_cap": 1000.0, "total_debt": 200.0, "total_cash": 100.0, "ebitda": 100.0}
        )
        assert f.ev_to_ebitda.value == pytest.approx(11.0)
        assert f.ev_to_ebitda.source == SOURCE_DERIVED

    def test_fcf_yield_clamped(self) -> None:
        f = normalize_fundamentals({"free_cash_flow": 9.0, "market_cap": 100.0})
        assert f.fcf_yield.value == pytest.approx(0.08)

    def test_market_cap_from_price_and_shares(self) -> None:
        f = normalize_fundamentals({"free_cash_flow": 5.0, "price": 10.0, "shares_outstanding": 10.0})
        assert f.fcf_yield.value == pytest.approx(0.05)

    def test_buyback_yield_only_for_outflows(self) -> None:
        outflow = normalize_fundamentals({"share_repurchase": -3.0, "market_cap": 100.0})
        inflow = normalize_fundamentals({"share_repurchase": 3.0, "market_cap": 100.0})
        assert outflow.buyback_yield.value == pytest.approx(0.03)
        assert inflow.buyback_yield.value is None

    def test_earnings_yield_from_pe_then_eps(self) -> None:
        from_pe = normalize_fundamentals({"trailing_pe": 20.0})
        from_eps = normalize_fundamentals({"trailing_pe": -5.0, "trailing_eps": 2.0, "price": 40.0})
        assert from_pe.earnings_yield.value == pytest.approx(0.05)
        assert from_eps.earnings_yield.value == pytest.approx(0.05)

    def test_net_cash_flag(self) -> None:
        rich = normalize_fundamentals({"total_cash": 500.0, "total_debt": 100.0})
        indebted = normalize_fundamentals({"total_cash": 50.0, "total_debt": 100.0})
        by_book = normalize_fundamentals({"price_to_book": 1.0})
        assert rich.net_cash.value == 1.0
        assert indebted.net_cash.value == 0.0
        assert by_book.net_cash.value == 1.0

    def test_three_year_cagr(self) -> None:
        f = normalize_fundamentals({"revenue": 133.1, "revenue_3y_ago": 100.0})
        assert f.rev_cagr_3y.value == pytest.approx(0.1)

    def test_cagr_absent_for_negative_base(self) -> None:
        f = normalize_fundamentals({"eps_annual": 2.0, "eps_annual_3y_ago": -1.0})
        assert f.eps_cagr_3y.value is None

    def test_growth_clamped(self) -> None:
        f = normalize_fundamentals({"revenue": 500.0, "revenue_prior": 100.0})
        assert f.rev_growth.value == 1.0


class TestRawFinancials:
    """Strict boundary schema."""

    def test_from_mapping_validates_values(self) -> None:
        raw = RawFinancials.from_mapping(
            {"price": "abc", "market_cap": float("nan"), "esg_score": True, "unknown": 1.0}
        )
        assert raw.price is None
        assert raw.market_cap is None
        assert raw.esg_score is None

    def test_empty_payload_is_all_absent(self) -> None:
        f = normalize_fundamentals(None)
        assert all(entry["value"] is None for entry in f.to_dict().values())
        assert all(entry["confidence"] == 0.0 for entry in f.to_dict().values())


class TestBuildPrices:
    """Price enrichment from a close series."""

    def test_empty_series(self) -> None:
        prices = build_prices([], [])
        assert prices.points == 0
        assert prices.px.value is None
        assert prices.series is None

    def test_long_series(self, rising_closes: list[float]) -> None:
        timestamps = [i * DAY_MS for i in range(len(rising_closes))]
        prices = build_prices(timestamps, rising_closes, as_of_ms=timestamps[-1] + 2 * DAY_MS)
        assert prices.points == 300
        assert prices.px.value == 249.5
        assert prices.px_vs_200dma.value == pytest.approx(249.5 / 199.75 - 1)
        assert prices.pct_52w.value == 1.0
        assert prices.max_dd_1y.value == 0.0
        assert prices.ret_20d.value == pytest.approx(249.5 / 239.5 - 1)
        assert prices.recency_days == 2
        assert prices.px.confidence == 0.85

    def test_short_series_thresholds(self) -> None:
        closes = [100.0 + i for i in range(25)]
        prices = build_prices(range(25), closes)
        assert prices.px_vs_200dma.value is None
        assert prices.pct_52w.value is None
        assert prices.max_dd_1y.value is None
        assert prices.ret_20d.value is not None
        assert prices.ret_60d.value is None
        assert prices.px.confidence == 0.4

    def test_uncomputable_metrics_tagged_absent(self) -> None:
        prices = build_prices(range(300), [100.0] * 300)
        # No gains and no losses leaves RSI undefined; a flat range has no position
        assert prices.rsi == MetricValue(None, 0.0, SOURCE_NONE)
        assert prices.pct_52w.source == SOURCE_NONE
        assert prices.px_vs_200dma.source == SOURCE_DERIVED

    def test_short_series_absent_tags(self) -> None:
        prices = build_prices(range(10), [100.0 + i for i in range(10)])
        assert prices.px_vs_200dma.source == SOURCE_NONE
        assert prices.rsi.source == SOURCE_NONE
        assert prices.px.source == SOURCE_DIRECT

    def test_recency_rounds_half_up(self) -> None:
        last = 10 * DAY_MS
        half = build_prices([0, last], [1.0, 2.0], as_of_ms=last + DAY_MS * 5 // 2)
        assert half.recency_days == 3
        just_under = build_prices([0, last], [1.0, 2.0], as_of_ms=last + DAY_MS * 5 // 2 - 1)
        assert just_under.recency_days == 2

    def test_non_finite_closes_dropped(self) -> None:
        prices = build_prices([1, 2, 3], [10.0, float("nan"), 11.0])
        assert prices.points == 2
        assert prices.series.timestamps == (1, 3)


class TestAssembleBundle:
    """Bundle assembly."""

    def test_ticker_normalized(self) -> None:
        bundle = assemble_bundle(" aapl ", {"operating_margin": 0.3}, sources_used=["test"])
        assert bundle.ticker == "AAPL"
        assert bundle.fundamentals.op_margin.value == 0.3
        assert bundle.sources_used == ("test",)
        assert bundle.prices.points == 0

"""yfinance payloads -> RawFinancials -> DataBundle."""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any

import pandas as pd

from stock_score.core.mapping import finite_or_none
from stock_score.core.models import DataBundle
from stock_score.core.normalization import RawFinancials, assemble_bundle
from stock_score.data.yfinance_client import (
    HISTORY_PERIOD,
    ServerShuttingDownError,
    Statements,
    fetch_history,
    fetch_info,
    fetch_statements,
)
from stock_score.utils.ohlcv import closes_from_history
from stock_score.utils.provenance import build_provenance

logger = logging.getLogger(__name__)

# Statement row labels, most specific first
INCOME_ROWS: dict[str, tuple[str, ...]] = {
    "revenue": ("Total Revenue", "Operating Revenue"),
    "gross_profit": ("Gross Profit",),
    "operating_income": ("Operating Income",),
    "ebit": ("EBIT",),
    "ebitda": ("EBITDA", "Normalized EBITDA"),
    "interest_expense": ("Interest Expense", "Interest Expense Non Operating"),
    "pretax_income": ("Pretax Income",),
    "tax_expense": ("Tax Provision",),
    "net_income": ("Net Income", "Net Income Common Stockholders"),
    "eps": ("Diluted EPS", "Basic EPS"),
}
BALANCE_ROWS: dict[str, tuple[str, ...]] = {
    "total_debt": ("Total Debt",),
    "total_liabilities": ("Total Liabilities Net Minority Interest", "Total Liabilities"),
    "total_assets": ("Total Assets",),
    "current_assets": ("Current Assets",),
    "current_liabilities": ("Current Liabilities",),
    "equity": ("Stockholders Equity", "Common Stock Equity"),
    "cash": (
        "Cash Cash Equivalents And Short Term Investments",
        "Cash And Cash Equivalents",
    ),
}
CASHFLOW_ROWS: dict[str, tuple[str, ...]] = {
    "free_cash_flow": ("Free Cash Flow",),
    "share_repurchase": ("Repurchase Of Capital Stock", "Common Stock Payments"),
    "dividends_paid": ("Cash Dividends Paid", "Common Stock Dividend Paid"),
}


def statement_row(df: pd.DataFrame | None, labels: tuple[str, ...]) -> list[float | None]:
    """
    Values of the first matching row, newest period first.

    Returns:
        List of finite-or-None values, empty if no label matches
    """
    if df is None or df.empty:
        return []
    for label in labels:
        if label in df.index:
            ordered = df[sorted(df.columns, reverse=True)]
            return [finite_or_none(v) for v in ordered.loc[label].tolist()]
    return []


def _at(values: list[float | None], i: int) -> float | None:
    return values[i] if i < len(values) else None


def _first(info: dict[str, Any], *keys: str) -> float | None:
    for key in keys:
        value = finite_or_none(info.get(key))
        if value is not None:
            return value
    return None


def _pick(*values: float | None) -> float | None:
    for value in values:
        if value is not None:
            return value
    return None


def _align_tz(ts: pd.Timestamp, index: pd.DatetimeIndex) -> pd.Timestamp:
    """Express ts in the index timezone (naive timestamps are read as UTC)."""
    if ts.tzinfo is None:
        ts = ts.tz_localize("UTC")
    if index.tz is None:
        return ts.tz_convert("UTC").tz_localize(None)
    return ts.tz_convert(index.tz)


def dividend_sums(
    dividends: pd.Series | None,
    as_of: datetime | pd.Timestamp | None = None,
) -> tuple[float | None, float | None]:
    """
    Trailing-year dividend sum and the same window three years earlier.

    Windows end at as_of (default: now), so a payer that stopped paying
    gets no trailing-year sum.
    """
    if dividends is None or dividends.empty:
        return None, None
    index = pd.DatetimeIndex(dividends.index)
    end = _align_tz(pd.Timestamp(as_of if as_of is not None else datetime.now(timezone.utc)), index)
    ttm = dividends[(index > end - pd.DateOffset(years=1)) & (index <= end)].sum()
    past_mask = (index > end - pd.DateOffset(years=4)) & (index <= end - pd.DateOffset(years=3))
    past = dividends[past_mask].sum()
    return finite_or_none(ttm) or None, finite_or_none(past) or None


def raw_financials_from_yfinance(
    info: dict[str, Any] | None,
    statements: Statements | None = None,
    as_of: datetime | None = None,
) -> RawFinancials:
    """
    Flatten a yfinance info dict and annual statements into RawFinancials.

    Provider-reported ratios are passed through untouched; unit handling and
    derivations belong to the normalization layer.
    """
    info = info or {}
    statements = statements or Statements()

    income = {k: statement_row(statements.income, v) for k, v in INCOME_ROWS.items()}
    balance = {k: statement_row(statements.balance, v) for k, v in BALANCE_ROWS.items()}
    cashflow = {k: statement_row(statements.cashflow, v) for k, v in CASHFLOW_ROWS.items()}
    dividends_ttm, dividends_3y_ago = dividend_sums(statements.dividends, as_of)

    payload: dict[str, float | None] = {
        "price": _first(info, "currentPrice", "regularMarketPrice", "previousClose"),
        "shares_outstanding": _first(info, "sharesOutstanding"),
        "market_cap": _first(info, "marketCap"),
        "trailing_pe": _first(info, "trailingPE"),
        "trailing_eps": _first(info, "trailingEps"),
        "price_to_book": _first(info, "priceToBook"),
        "enterprise_to_ebitda": _first(info, "enterpriseToEbitda"),
        "operating_margin": _first(info, "operatingMargins"),
        "gross_margin": _first(info, "grossMargins"),
        "current_ratio": _first(info, "currentRatio"),
        # yfinance reports this one in percent (e.g. 150.3)
        "debt_to_equity": _first(info, "debtToEquity"),
        "return_on_equity": _first(info, "returnOnEquity"),
        "return_on_assets": _first(info, "returnOnAssets"),
        "revenue_growth": _first(info, "revenueGrowth"),
        "earnings_growth": _first(info, "earningsGrowth"),
        "payout_ratio": _first(info, "payoutRatio"),
        "insider_ownership": _first(info, "heldPercentInsiders"),
        "revenue": _pick(_at(income["revenue"], 0), _first(info, "totalRevenue")),
        "revenue_prior": _at(income["revenue"], 1),
        "revenue_3y_ago": _at(income["revenue"], 3),
        "gross_profit": _pick(_at(income["gross_profit"], 0), _first(info, "grossProfits")),
        "operating_income": _at(income["operating_income"], 0),
        "ebit": _at(income["ebit"], 0),
        "ebitda": _pick(_first(info, "ebitda"), _at(income["ebitda"], 0)),
        "interest_expense": _at(income["interest_expense"], 0),
        "pretax_income": _at(income["pretax_income"], 0),
        "tax_expense": _at(income["tax_expense"], 0),
        "net_income": _pick(_at(income["net_income"], 0), _first(info, "netIncomeToCommon")),
        "eps_annual": _at(income["eps"], 0),
        "eps_annual_prior": _at(income["eps"], 1),
        "eps_annual_3y_ago": _at(income["eps"], 3),
        "total_cash": _pick(_first(info, "totalCash"), _at(balance["cash"], 0)),
        "total_debt": _pick(_first(info, "totalDebt"), _at(balance["total_debt"], 0)),
        "total_liabilities": _at(balance["total_liabilities"], 0),
        "total_assets": _at(balance["total_assets"], 0),
        "current_assets": _at(balance["current_assets"], 0),
        "current_liabilities": _at(balance["current_liabilities"], 0),
        "equity": _at(balance["equity"], 0),
        "equity_prior": _at(balance["equity"], 1),
        "free_cash_flow": _pick(_first(info, "freeCashflow"), _at(cashflow["free_cash_flow"], 0)),
        "share_repurchase": _at(cashflow["share_repurchase"], 0),
        "dividends_paid": _at(cashflow["dividends_paid"], 0),
        "dividends_ttm": dividends_ttm,
        "dividends_ttm_3y_ago": dividends_3y_ago,
    }
    return RawFinancials.from_mapping(payload)


async def fetch_bundle(
    symbol: str,
    period: str = HISTORY_PERIOD,
) -> tuple[DataBundle, dict[str, Any]]:
    """
    Fetch info, history and statements concurrently and assemble a DataBundle.

    A failed part degrades the bundle (and is reported as a warning); only
    losing both info and history is fatal.

    Returns:
        Tuple of (DataBundle, data_provenance dict)

    Raises:
        ServerShuttingDownError: If server is shutting down
        ValueError: If the symbol is unknown
        ProviderRetryError: If retries were exhausted for both info and history
    """
    normalized_symbol = symbol.upper().strip()
    info_res, hist_res, stmt_res = await asyncio.gather(
        fetch_info(normalized_symbol),
        fetch_history(normalized_symbol, period),
        fetch_statements(normalized_symbol),
        return_exceptions=True,
    )

    for res in (info_res, hist_res, stmt_res):
        if isinstance(res, ServerShuttingDownError):
            raise res
        if isinstance(res, BaseException) and not isinstance(res, Exception):
            raise res

    if isinstance(info_res, Exception) and isinstance(hist_res, Exception):
        raise info_res

    as_of = datetime.now(timezone.utc)
    provenance: dict[str, Any] = {}
    sources_used: list[str] = []

    info: dict[str, Any] = {}
    if isinstance(info_res, Exception):
        logger.warning(f"fetch_bundle({normalized_symbol}): info unavailable ({info_res})")
        provenance["info"] = build_provenance(
            "yfinance", as_of, warnings=[f"info_unavailable: {info_res}"]
        )
    else:
        info, info_prov = info_res
        sources_used.append("yfinance:info")
        provenance["info"] = build_provenance(as_of=as_of, **info_prov)

    timestamps: list[int] = []
    closes: list[float] = []
    if isinstance(hist_res, Exception):
        logger.warning(f"fetch_bundle({normalized_symbol}): history unavailable ({hist_res})")
        provenance["history"] = build_provenance(
            "yfinance", as_of, warnings=[f"history_unavailable: {hist_res}"]
        )
    else:
        history, hist_prov = hist_res
        timestamps, closes = closes_from_history(history)
        sources_used.append("yfinance:history")
        provenance["history"] = build_provenance(as_of=as_of, points=len(closes), **hist_prov)

    statements: Statements | None = None
    if isinstance(stmt_res, Exception):
        logger.warning(f"fetch_bundle({normalized_symbol}): statements unavailable ({stmt_res})")
        provenance["statements"] = build_provenance(
            "yfinance", as_of, warnings=[f"statements_unavailable: {stmt_res}"]
        )
    else:
        statements, stmt_prov = stmt_res
        sources_used.append("yfinance:statements")
        provenance["statements"] = build_provenance(as_of=as_of, **stmt_prov)

    bundle = assemble_bundle(
        normalized_symbol,
        raw_financials_from_yfinance(info, statements, as_of),
        timestamps,
        closes,
        sources_used,
        as_of_ms=int(time.time() * 1000),
    )
    logger.debug(
        f"fetch_bundle({normalized_symbol}): {len(closes)} closes, sources={sources_used}"
    )
    return bundle, provenance

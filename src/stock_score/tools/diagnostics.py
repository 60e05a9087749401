"""Diagnostic bundle view: normalized inputs with provenance tags."""

from dataclasses import asdict
from time import perf_counter
from typing import Any

from stock_score.core.metrics import bundle_to_metrics, sanitize_metrics
from stock_score.core.models import SOURCE_DERIVED, SOURCE_DIRECT
from stock_score.data.provider import fetch_bundle
from stock_score.utils.provenance import build_error_response, build_meta
from stock_score.utils.validators import ScoreParams


async def diagnose_stock(symbol: str, include_series: bool = False) -> dict[str, Any]:
    """
    Expose the Fundamentals/Prices bundle behind a score, for debugging.

    Args:
        symbol: Stock ticker symbol
        include_series: Include the raw close series (default: False)

    Returns:
        Dict with fundamentals (value/confidence/source per field), prices,
        the sanitized scorer metrics and a direct/derived/absent tally
    """
    start_time = perf_counter()

    try:
        params = ScoreParams(symbol=symbol)
    except ValueError as e:
        return build_error_response(
            error_type="invalid_symbol",
            message=str(e),
            symbol=symbol,
        )

    try:
        bundle, provenance = await fetch_bundle(params.symbol)
    except ValueError as e:
        return build_error_response(
            error_type="invalid_symbol",
            message=str(e),
            symbol=params.symbol,
        )
    except Exception as e:
        return build_error_response(
            error_type="data_unavailable",
            message=f"Failed to fetch data: {e}",
            symbol=params.symbol,
        )

    fundamentals = bundle.fundamentals.to_dict()
    sources = [entry["source"] for entry in fundamentals.values()]
    source_counts = {
        "direct": sources.count(SOURCE_DIRECT),
        "derived": sources.count(SOURCE_DERIVED),
        "absent": len(sources) - sources.count(SOURCE_DIRECT) - sources.count(SOURCE_DERIVED),
    }

    duration_ms = (perf_counter() - start_time) * 1000
    return {
        "meta": build_meta("diagnose", duration_ms),
        "data_provenance": provenance,
        "symbol": bundle.ticker,
        "sources_used": list(bundle.sources_used),
        "fundamentals": fundamentals,
        "source_counts": source_counts,
        "prices": bundle.prices.to_dict(include_series=include_series),
        "metrics": asdict(sanitize_metrics(bundle_to_metrics(bundle))),
    }

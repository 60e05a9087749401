"""Score tool."""

import logging
from time import perf_counter
from typing import Any

from stock_score.core.models import InvalidBundleError
from stock_score.core.scoring import score_bundle
from stock_score.data.cache import CacheBackend
from stock_score.data.provider import fetch_bundle
from stock_score.utils.provenance import build_error_response, build_meta
from stock_score.utils.validators import ScoreParams

logger = logging.getLogger(__name__)


async def score_stock(
    symbol: str,
    include_series: bool = True,
    cache: CacheBackend | None = None,
    refresh: bool = False,
) -> dict[str, Any]:
    """
    Score a symbol on eight pillars and return the payload + Resource URI.

    The full payload (series included) is cached under score://SYMBOL; the
    series is dropped from the response when include_series is False.

    Args:
        symbol: Stock ticker symbol
        include_series: Include the opportunity series (default: True)
        cache: Cache backend (None = no caching)
        refresh: Ignore a cached payload and recompute

    Returns:
        Dict with the score payload, meta, data_provenance and resource_uri
    """
    start_time = perf_counter()

    try:
        params = ScoreParams(symbol=symbol, include_series=include_series)
    except ValueError as e:
        return build_error_response(
            error_type="invalid_symbol",
            message=str(e),
            symbol=symbol,
        )

    uri = params.to_uri()

    cached = cache.get(uri) if cache is not None and not refresh else None
    if cached is not None:
        payload = _trim_series(dict(cached), params.include_series)
        duration_ms = (perf_counter() - start_time) * 1000
        return {
            "meta": build_meta("score", duration_ms),
            **payload,
            "resource_uri": uri,
            "cached": True,
        }

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

    try:
        result = score_bundle(bundle, include_series=True)
    except InvalidBundleError as e:
        logger.error(f"score({params.symbol}): invalid bundle: {e}")
        return build_error_response(
            error_type="invalid_bundle",
            message=str(e),
            symbol=params.symbol,
        )

    payload = result.to_dict()
    payload["data_provenance"] = provenance
    if cache is not None:
        cache.set(uri, payload)

    duration_ms = (perf_counter() - start_time) * 1000
    return {
        "meta": build_meta("score", duration_ms),
        **_trim_series(payload, params.include_series),
        "resource_uri": uri,
        "cached": False,
    }


def _trim_series(payload: dict[str, Any], include_series: bool) -> dict[str, Any]:
    if not include_series:
        payload = {k: v for k, v in payload.items() if k != "opportunity_series"}
    return payload

"""Stock Score MCP Server using FastMCP."""

import asyncio
import json
import logging
import os

from fastmcp import FastMCP

from stock_score import SCHEMA_VERSION, SERVER_VERSION
from stock_score.data.cache import ScoreCache
from stock_score.data.yfinance_client import shutdown_executor
from stock_score.resources.score_resource import ResourceNotFoundError, read_score_resource
from stock_score.tools import diagnose_stock, score_stock
from stock_score.utils.validators import ScoreParams

# Configure logging
log_level = os.environ.get("LOG_LEVEL", "INFO").upper()
logging.basicConfig(level=getattr(logging, log_level, logging.INFO))
logger = logging.getLogger(__name__)

# Create FastMCP server instance
mcp = FastMCP(
    name="stock-score",
)

score_cache = ScoreCache()


# ============================================================================
# TOOLS
# ============================================================================


@mcp.tool
async def score(symbol: str, include_series: bool = True, refresh: bool = False) -> str:
    """
    Score a stock 0-100 across eight pillars with coverage and verdict.

    Pillars: quality, safety, valuation, growth, momentum, moat, esg, governance.
    The adjusted score rescales the raw score to the pillars that had data.

    Args:
        symbol: Stock ticker symbol (e.g., AAPL, MC.PA)
        include_series: Include the per-day opportunity series (default: true)
        refresh: Recompute even if a cached score exists (default: false)

    Returns:
        JSON with score, score_adj, color, verdict, reasons, red flags,
        subscores, coverage, proof, ratios and resource URI
    """
    result = await score_stock(
        symbol=symbol,
        include_series=include_series,
        cache=score_cache,
        refresh=refresh,
    )
    return json.dumps(result, indent=2, default=str)


@mcp.tool
async def diagnose(symbol: str, include_series: bool = False) -> str:
    """
    Show the normalized inputs behind a score.

    Every fundamental is reported with its value, confidence and whether it
    was provider-reported (direct) or computed (derived).

    Args:
        symbol: Stock ticker symbol
        include_series: Include the raw close series (default: false)

    Returns:
        JSON with fundamentals, prices, scorer metrics and source counts
    """
    result = await diagnose_stock(symbol=symbol, include_series=include_series)
    return json.dumps(result, indent=2, default=str)


# ============================================================================
# RESOURCES
# ============================================================================


@mcp.resource("score://{symbol}")
def get_cached_score(symbol: str) -> str:
    """
    Get a cached score payload as JSON.

    Must call score first to populate the cache.

    Args:
        symbol: Stock ticker symbol

    Returns:
        JSON score payload
    """
    try:
        uri = ScoreParams(symbol=symbol).to_uri()
    except ValueError as e:
        return f"Error: {e}"

    try:
        text, _ = read_score_resource(uri, score_cache)
    except ResourceNotFoundError:
        return f"Resource not cached. Call score('{symbol}') first."
    return text


# ============================================================================
# ENTRY POINT
# ============================================================================


def main() -> None:
    """Run the MCP server."""
    logger.info(f"Starting Stock Score MCP Server v{SERVER_VERSION} (schema v{SCHEMA_VERSION})")
    try:
        mcp.run()
    finally:
        asyncio.run(shutdown_executor())
        score_cache.close()


if __name__ == "__main__":
    main()

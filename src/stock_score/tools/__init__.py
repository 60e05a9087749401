"""Stock scoring tools."""

from stock_score.tools.diagnostics import diagnose_stock
from stock_score.tools.score import score_stock

__all__ = [
    "diagnose_stock",
    "score_stock",
]

"""Request validation and nullable rule checks."""

import operator
import re
from collections.abc import Callable
from dataclasses import dataclass

# Letters, digits and the separators used by exchange suffixes and FX pairs; a leading ^ marks an index
SYMBOL_PATTERN = re.compile(r"^\^?[A-Z0-9][A-Z0-9.\-=]{0,14}$")


@dataclass(frozen=True)
class ScoreParams:
    """Immutable score request. Used for cache key + fetch."""

    symbol: str
    include_series: bool = True

    def __post_init__(self) -> None:
        symbol = self.symbol.upper().strip() if isinstance(self.symbol, str) else ""
        if not SYMBOL_PATTERN.match(symbol):
            raise ValueError(f"Invalid symbol '{self.symbol}'")
        object.__setattr__(self, "symbol", symbol)

    def to_uri(self) -> str:
        """Canonical URI for caching."""
        return f"score://{self.symbol}"


def check_rule(
    value: float | None,
    threshold: float,
    comparator: Callable[[float, float], bool] = operator.gt,
) -> bool | None:
    """
    Check a rule with nullable boolean semantics.

    If value is None, returns None (not False).

    Args:
        value: The value to check (may be None)
        threshold: The threshold to compare against
        comparator: Comparison function (default: operator.gt)

    Returns:
        True/False if value is not None, None otherwise
    """
    if value is None:
        return None
    return comparator(value, threshold)

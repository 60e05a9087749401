"""Numeric shaping primitives shared by the pillar scorer and the opportunity series."""

import math
from typing import Any


def finite_or_none(x: Any) -> float | None:
    """
    Coerce to a finite float, or None.

    Booleans, strings, NaN and +/-inf are all treated as absent.
    """
    if x is None or isinstance(x, bool):
        return None
    try:
        value = float(x)
    except (TypeError, ValueError):
        return None
    if math.isnan(value) or math.isinf(value):
        return None
    return value


def clamp(x: float, lo: float, hi: float) -> float:
    """Clamp x into [lo, hi]."""
    return max(lo, min(hi, x))


def clamp01(x: float) -> float:
    """Clamp x into [0, 1]."""
    return clamp(x, 0.0, 1.0)


def safe_ratio(numerator: float | None, denominator: float | None) -> float | None:
    """Divide two optional numbers. None on absent operands, zero denominator or non-finite result."""
    if numerator is None or denominator is None or denominator == 0:
        return None
    return finite_or_none(numerator / denominator)


def linear_map(
    v: float | None,
    v0: float,
    v1: float,
    invert: bool = False,
) -> float:
    """
    Map v linearly onto [0, 1] between v0 and v1.

    Bounds may be given in either order. An absent value scores 0 and a
    degenerate range (v0 == v1) scores 0. With invert=True the result is
    flipped for "lower is better" metrics.

    Args:
        v: Value to map (None = absent)
        v0: One end of the range
        v1: Other end of the range
        invert: Return 1 - t instead of t, t measured from the lower end

    Returns:
        Contribution in [0, 1]
    """
    value = finite_or_none(v)
    if value is None or v0 == v1:
        return 0.0
    lo, hi = min(v0, v1), max(v0, v1)
    t = clamp01((value - lo) / (hi - lo))
    return 1.0 - t if invert else t


def sweet_spot(
    v: float | None,
    a: float,
    b: float,
    lo: float,
    hi: float,
) -> float:
    """
    Triangular membership with a plateau.

    0 at or beyond lo/hi, ramps up on [lo, a], 1 on [a, b], ramps down on [b, hi].
    An absent value returns a neutral 0.5, unlike linear_map.
    """
    value = finite_or_none(v)
    if value is None:
        return 0.5
    if a > b:
        a, b = b, a
    if lo > hi:
        lo, hi = hi, lo
    if value <= lo or value >= hi:
        return 0.0
    if value <= a:
        return (value - lo) / (a - lo)
    if value <= b:
        return 1.0
    return 1.0 - (value - b) / (hi - b)


def round_half_up(x: float) -> int:
    """Round to nearest integer, halves away from zero for positives (0.5 -> 1)."""
    return int(math.floor(x + 0.5))

"""Close-series extraction from provider OHLCV frames."""

import pandas as pd


def closes_from_history(df: pd.DataFrame | None) -> tuple[list[int], list[float]]:
    """
    Extract (timestamps, closes) from an OHLCV DataFrame.

    Handles the multi-index columns yf.download returns and any column
    casing. Rows with a missing close are dropped.

    Args:
        df: DataFrame indexed by date with a Close column

    Returns:
        Tuple of (epoch-millisecond timestamps, closes), both empty if unusable
    """
    if df is None or df.empty:
        return [], []

    df = df.copy()
    if isinstance(df.columns, pd.MultiIndex):
        df.columns = df.columns.get_level_values(0)
    df.columns = [str(c).lower() for c in df.columns]

    if "close" not in df.columns:
        return [], []

    close = pd.to_numeric(df["close"], errors="coerce")
    close = close[close.notna()]
    if close.empty:
        return [], []

    # tz-aware indexes are converted to UTC nanoseconds by asi8
    index = pd.DatetimeIndex(close.index).as_unit("ns")
    timestamps = (index.asi8 // 1_000_000).tolist()
    return [int(t) for t in timestamps], [float(c) for c in close.tolist()]

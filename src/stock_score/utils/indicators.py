"""Price-series indicator calculations."""

import numpy as np
import pandas as pd


def calculate_sma(prices: pd.Series, period: int) -> pd.Series:
    """
    Calculate Simple Moving Average.

    Args:
        prices: Price series (typically close prices)
        period: Number of periods for the average

    Returns:
        SMA series, NaN until a full window is available
    """
    return prices.rolling(window=period, min_periods=period).mean()


def calculate_rolling_range(prices: pd.Series, window: int) -> tuple[pd.Series, pd.Series]:
    """
    Rolling low/high over a trailing window.

    The window starts at max(0, i - window + 1), so early points use
    whatever history exists instead of returning NaN.

    Returns:
        Tuple of (rolling_low, rolling_high)
    """
    rolling = prices.rolling(window=window, min_periods=1)
    return rolling.min(), rolling.max()


def calculate_rsi(prices: pd.Series, period: int = 14) -> pd.Series:
    """
    Calculate Relative Strength Index.

    Uses Wilder's smoothing method (exponential moving average).

    Args:
        prices: Price series (typically close prices)
        period: RSI period (default: 14)

    Returns:
        RSI series (0-100 scale)
    """
    delta = prices.diff()

    gain = delta.where(delta > 0, 0.0)
    loss = (-delta).where(delta < 0, 0.0)

    # Wilder's smoothing: alpha = 1/period
    avg_gain = gain.ewm(alpha=1 / period, min_periods=period, adjust=False).mean()
    avg_loss = loss.ewm(alpha=1 / period, min_periods=period, adjust=False).mean()

    rs = avg_gain / avg_loss
    rsi = 100 - (100 / (1 + rs))

    # avg_loss == 0 -> rs is inf
    rsi = rsi.replace([np.inf, -np.inf], 100)

    return rsi


def calculate_returns(prices: pd.Series, periods: int) -> float | None:
    """
    Calculate return over a specific number of periods.

    Args:
        prices: Price series
        periods: Number of periods to look back

    Returns:
        Return as decimal (0.15 = 15%), or None if insufficient data
    """
    if len(prices) < periods + 1:
        return None

    current = prices.iloc[-1]
    past = prices.iloc[-periods - 1]

    if pd.isna(current) or pd.isna(past) or past <= 0:
        return None

    return float(current / past - 1)


def calculate_max_drawdown(prices: pd.Series) -> float | None:
    """
    Calculate maximum drawdown.

    Args:
        prices: Price series

    Returns:
        Max drawdown as negative decimal (-0.20 = 20% drawdown), or None
    """
    if len(prices) < 2:
        return None

    cummax = prices.cummax()
    drawdown = (prices - cummax) / cummax

    min_dd = drawdown.min()
    if pd.isna(min_dd):
        return None

    return float(min(min_dd, 0.0))


def calculate_range_position(prices: pd.Series) -> float | None:
    """
    Position of the last price inside the series' low/high range.

    Returns:
        0.0 at the low, 1.0 at the high, None if the range is degenerate
    """
    if len(prices) == 0:
        return None
    low = prices.min()
    high = prices.max()
    last = prices.iloc[-1]
    if pd.isna(low) or pd.isna(high) or high <= low:
        return None
    return float((last - low) / (high - low))

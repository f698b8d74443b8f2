# forecast_lab/indicators.py
from __future__ import annotations

import pandas as pd


# ---------------------------------------------------------------------- #
# Native indicator implementations (pandas-backed, MyPy-safe)            #
# ---------------------------------------------------------------------- #
def ema(series: pd.Series, length: int) -> pd.Series:  # noqa: D401
    """Exponential moving average (span = length)."""
    return series.ewm(span=length, adjust=False).mean()


def macd(
    close: pd.Series,
    fast: int,
    slow: int,
    signal_len: int,
) -> tuple[pd.Series, pd.Series, pd.Series]:
    fast_ema = ema(close, fast)
    slow_ema = ema(close, slow)
    macd_line = fast_ema - slow_ema
    signal_line = macd_line.ewm(span=signal_len, adjust=False).mean()
    histogram = macd_line - signal_line
    return macd_line, signal_line, histogram


def bollinger_bands(
    close: pd.Series,
    length: int,
    stddev: float,
) -> tuple[pd.Series, pd.Series, pd.Series]:
    basis = close.rolling(length).mean()
    std = close.rolling(length).std()
    upper = basis + stddev * std
    lower = basis - stddev * std
    return upper, basis, lower

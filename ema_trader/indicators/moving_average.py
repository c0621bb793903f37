"""
Exponential moving average seeded with the simple average of the first window.
"""

from __future__ import annotations
from typing import Sequence, Union

import pandas as pd

from ema_trader.core.types import Candle

CandleInput = Union[Sequence[Candle], pd.DataFrame]


def closes(candles: CandleInput) -> pd.Series:
    """Close prices as a float Series with a 0..n-1 index."""
    if isinstance(candles, pd.DataFrame):
        return candles["close"].astype(float).reset_index(drop=True)
    return pd.Series([c.close for c in candles], dtype=float)


def seeded_ewm(values: pd.Series, period: int, alpha: float) -> pd.Series:
    """
    Recursive smoothing seeded with the mean of the first `period` values.
    Result index 0 is the seed; index k is the value after values[period - 1 + k].
    """
    seed = values.iloc[:period].mean()
    chained = pd.concat([pd.Series([seed]), values.iloc[period:]], ignore_index=True)
    return chained.ewm(alpha=alpha, adjust=False).mean()


def ema(candles: CandleInput, period: int) -> list[float]:
    """
    EMA over closes. Empty if fewer than `period` candles.
    The first period-1 entries are 0.0 placeholders; entry period-1 is the SMA seed.
    """
    if period <= 0:
        raise ValueError(f"period must be positive, got {period}")
    close = closes(candles)
    if len(close) < period:
        return []
    smoothed = seeded_ewm(close, period, alpha=2.0 / (period + 1))
    return [0.0] * (period - 1) + smoothed.tolist()

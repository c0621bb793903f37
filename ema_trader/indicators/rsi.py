"""
Relative Strength Index with Wilder smoothing, aligned to candle indices.
"""

from __future__ import annotations

import numpy as np

from ema_trader.indicators.moving_average import CandleInput, closes, seeded_ewm

NEUTRAL_RSI = 50.0


def rsi(candles: CandleInput, period: int = 14) -> list[float]:
    """
    RSI per candle, NEUTRAL_RSI where undefined (all neutral when n < period + 1).
    Delta j = close[j+1] - close[j]; the value smoothed through delta j lands at index j+1.
    """
    if period <= 0:
        raise ValueError(f"period must be positive, got {period}")
    close = closes(candles)
    n = len(close)
    out = [NEUTRAL_RSI] * n
    if n < period + 1:
        return out

    delta = close.diff().iloc[1:].reset_index(drop=True)
    if len(delta) <= period:
        return out
    gains = delta.clip(lower=0)
    losses = (-delta).clip(lower=0)
    avg_gain = seeded_ewm(gains, period, alpha=1.0 / period).iloc[1:].to_numpy()
    avg_loss = seeded_ewm(losses, period, alpha=1.0 / period).iloc[1:].to_numpy()

    with np.errstate(divide="ignore", invalid="ignore"):
        values = np.where(avg_loss == 0, 100.0, 100.0 - 100.0 / (1.0 + avg_gain / avg_loss))
    out[period + 1:] = values.tolist()
    return out

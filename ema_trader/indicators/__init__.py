"""Indicators: EMA and RSI aligned 1:1 with the candle sequence."""

from ema_trader.indicators.moving_average import ema, closes
from ema_trader.indicators.rsi import rsi, NEUTRAL_RSI

__all__ = ["ema", "rsi", "closes", "NEUTRAL_RSI"]

"""
EMA crossover signal engine with optional RSI confirmation.

Buy on fast EMA crossing above slow EMA, sell on crossing below. The strategy
variant decides whether RSI must confirm the crossover.
"""

from __future__ import annotations
import logging
from enum import Enum
from typing import Optional, Sequence

import pandas as pd

from ema_trader.core.errors import InsufficientData, UnsupportedStrategy
from ema_trader.core.types import Candle, Side, Signal, SignalKind
from ema_trader.indicators import NEUTRAL_RSI, closes, ema, rsi
from ema_trader.strategies.base import BaseStrategy

logger = logging.getLogger("ema_trader.strategy")


class StrategyType(str, Enum):
    EMA_ONLY = "ema-only"
    EMA_RSI = "ema-rsi"
    EMA_RSI_TREND = "ema-rsi-trend"
    # Declared in configuration, no implementation.
    MEAN_REVERSION = "mean-reversion"
    MOMENTUM = "momentum"
    MULTI_TIMEFRAME_TREND = "multi-timeframe-trend"

    @classmethod
    def parse(cls, value: "str | StrategyType") -> "StrategyType":
        try:
            return cls(value)
        except ValueError:
            raise UnsupportedStrategy(f"Unknown strategy: {value!r}") from None


def crossed_up(prev_fast: float, prev_slow: float, curr_fast: float, curr_slow: float) -> bool:
    return prev_fast <= prev_slow and curr_fast > curr_slow


def crossed_down(prev_fast: float, prev_slow: float, curr_fast: float, curr_slow: float) -> bool:
    return prev_fast >= prev_slow and curr_fast < curr_slow


class CrossoverStrategy(BaseStrategy):
    """
    ema-only:      every crossover passes.
    ema-rsi:       buy needs RSI < overbought, sell needs RSI > oversold.
    ema-rsi-trend: ema-rsi plus momentum; buy needs RSI rising or below 50,
                   sell needs RSI falling or above 50.
    """

    def __init__(
        self,
        fast_period: int = 9,
        slow_period: int = 21,
        strategy: "str | StrategyType" = StrategyType.EMA_RSI,
        rsi_period: int = 14,
        rsi_overbought: float = 70.0,
        rsi_oversold: float = 30.0,
        allow_buy: bool = True,
        allow_sell: bool = True,
    ):
        if fast_period <= 0 or slow_period <= 0:
            raise ValueError("EMA periods must be positive")
        self.strategy = StrategyType.parse(strategy)
        self._filters = {
            StrategyType.EMA_ONLY: self._no_filter,
            StrategyType.EMA_RSI: self._rsi_filter,
            StrategyType.EMA_RSI_TREND: self._rsi_trend_filter,
        }
        if self.strategy not in self._filters:
            raise UnsupportedStrategy(f"Strategy {self.strategy.value!r} is not implemented")
        self.fast_period = fast_period
        self.slow_period = slow_period
        self.rsi_period = rsi_period
        self.rsi_overbought = rsi_overbought
        self.rsi_oversold = rsi_oversold
        self.allow_buy = allow_buy
        self.allow_sell = allow_sell
        self.signals_filtered = 0

    @classmethod
    def from_config(cls, config) -> "CrossoverStrategy":
        return cls(
            fast_period=config.fast_period,
            slow_period=config.slow_period,
            strategy=config.strategy,
            rsi_period=config.rsi_period,
            rsi_overbought=config.rsi_overbought,
            rsi_oversold=config.rsi_oversold,
            allow_buy=config.allow_buy,
            allow_sell=config.allow_sell,
        )

    @property
    def min_candles(self) -> int:
        return self.slow_period + 2

    @property
    def uses_rsi(self) -> bool:
        return self.strategy is not StrategyType.EMA_ONLY

    def compute_indicators(self, candles: Sequence[Candle] | pd.DataFrame) -> pd.DataFrame:
        if len(candles) < self.min_candles:
            raise InsufficientData(len(candles), self.min_candles)
        frame = pd.DataFrame({"close": closes(candles)})
        frame["ema_fast"] = ema(candles, self.fast_period)
        frame["ema_slow"] = ema(candles, self.slow_period)
        if self.uses_rsi:
            frame["rsi"] = rsi(candles, self.rsi_period)
        return frame

    def crossover_at(self, frame: pd.DataFrame, index: int) -> Optional[Side]:
        """Raw crossover direction at `index`, before any filter."""
        if index < 1:
            return None
        fast, slow = frame["ema_fast"], frame["ema_slow"]
        prev_fast, prev_slow = fast.iat[index - 1], slow.iat[index - 1]
        curr_fast, curr_slow = fast.iat[index], slow.iat[index]
        if crossed_up(prev_fast, prev_slow, curr_fast, curr_slow):
            return Side.BUY
        if crossed_down(prev_fast, prev_slow, curr_fast, curr_slow):
            return Side.SELL
        return None

    def evaluate(self, frame: pd.DataFrame, index: int) -> Signal:
        price = float(frame["close"].iat[index])
        fast = float(frame["ema_fast"].iat[index])
        slow = float(frame["ema_slow"].iat[index])
        side = self.crossover_at(frame, index)
        if side is None:
            return Signal(SignalKind.NONE, fast, slow, price)

        if not self._passes_filter(side, frame, index):
            self.signals_filtered += 1
            logger.debug("%s crossover at index %d filtered by %s", side.value, index, self.strategy.value)
            return Signal(SignalKind.NONE, fast, slow, price)

        if not self.direction_allowed(side):
            logger.debug("%s crossover at index %d ignored: direction disabled", side.value, index)
            return Signal(SignalKind.NONE, fast, slow, price)

        return Signal(SignalKind(side.value), fast, slow, price)

    def direction_allowed(self, side: Side) -> bool:
        return self.allow_buy if side is Side.BUY else self.allow_sell

    def _passes_filter(self, side: Side, frame: pd.DataFrame, index: int) -> bool:
        if not self.uses_rsi:
            return True
        if "rsi" not in frame:
            return False
        values = frame["rsi"]
        current = float(values.iat[index])
        previous = float(values.iat[index - 1]) if index > 0 else NEUTRAL_RSI
        return self._filters[self.strategy](side, current, previous)

    def _no_filter(self, side: Side, current: float, previous: float) -> bool:
        return True

    def _rsi_filter(self, side: Side, current: float, previous: float) -> bool:
        if side is Side.BUY:
            return current < self.rsi_overbought
        return current > self.rsi_oversold

    def _rsi_trend_filter(self, side: Side, current: float, previous: float) -> bool:
        if not self._rsi_filter(side, current, previous):
            return False
        if side is Side.BUY:
            return current > previous or current < NEUTRAL_RSI
        return current < previous or current > NEUTRAL_RSI

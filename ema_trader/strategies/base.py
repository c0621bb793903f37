"""Abstract strategy: indicators + signal generation."""

from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Sequence

import pandas as pd

from ema_trader.core.types import Candle, Signal


class BaseStrategy(ABC):
    """Strategy computes indicators once, then evaluates signals index by index."""

    @property
    @abstractmethod
    def min_candles(self) -> int:
        """Fewest candles for which signals are meaningful."""

    @abstractmethod
    def compute_indicators(self, candles: Sequence[Candle] | pd.DataFrame) -> pd.DataFrame:
        """Indicator frame aligned 1:1 with candles. No lookahead."""

    @abstractmethod
    def evaluate(self, frame: pd.DataFrame, index: int) -> Signal:
        """Signal at `index` using only rows `index - 1` and `index`."""

    def latest_signal(self, candles: Sequence[Candle] | pd.DataFrame) -> Signal:
        """Signal for the most recent candle."""
        frame = self.compute_indicators(candles)
        return self.evaluate(frame, len(frame) - 1)

"""Strategies: base interface and the EMA crossover signal engine."""

from ema_trader.strategies.base import BaseStrategy
from ema_trader.strategies.crossover import (
    CrossoverStrategy,
    StrategyType,
    crossed_down,
    crossed_up,
)

__all__ = ["BaseStrategy", "CrossoverStrategy", "StrategyType", "crossed_up", "crossed_down"]

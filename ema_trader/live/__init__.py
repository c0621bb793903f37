"""Live trading: tick loop and scheduler."""

from ema_trader.live.scheduler import BotStatus, TradingScheduler
from ema_trader.live.trader import LiveTrader, TickResult, TraderState

__all__ = ["BotStatus", "LiveTrader", "TickResult", "TraderState", "TradingScheduler"]

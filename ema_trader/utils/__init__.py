"""Utils: Telegram, timeframes, exchange filters."""

from ema_trader.utils.telegram import TelegramNotifier, send_telegram
from ema_trader.utils.timeframes import poll_interval_minutes, timeframe_minutes, to_binance_interval

__all__ = [
    "TelegramNotifier",
    "send_telegram",
    "poll_interval_minutes",
    "timeframe_minutes",
    "to_binance_interval",
]

"""Execution: broker abstraction and Binance spot implementation."""

from ema_trader.execution.base import Broker, format_amount, quote_currency

__all__ = ["Broker", "format_amount", "quote_currency"]

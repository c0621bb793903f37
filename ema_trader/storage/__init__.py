"""Storage: trade repositories standing in for the external trade store."""

from ema_trader.storage.trades import (
    InMemoryTradeRepository,
    JsonTradeRepository,
    TradeRepository,
    trade_from_dict,
    trade_to_dict,
)

__all__ = [
    "InMemoryTradeRepository",
    "JsonTradeRepository",
    "TradeRepository",
    "trade_from_dict",
    "trade_to_dict",
]

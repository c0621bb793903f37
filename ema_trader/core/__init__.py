"""Core: config, types, errors, logging."""

from ema_trader.core.config import load_config, Config
from ema_trader.core.errors import (
    TradingBotError,
    ConfigError,
    InsufficientData,
    InvalidSizing,
    BrokerError,
    ProtectionFailure,
    UnsupportedStrategy,
    TradeStateError,
)
from ema_trader.core.types import (
    Side,
    SignalKind,
    TradeStatus,
    Candle,
    Signal,
    Ticker,
    Account,
    Order,
    Position,
    BacktestTrade,
    Trade,
)
from ema_trader.core.logger import setup_logging

__all__ = [
    "load_config",
    "Config",
    "TradingBotError",
    "ConfigError",
    "InsufficientData",
    "InvalidSizing",
    "BrokerError",
    "ProtectionFailure",
    "UnsupportedStrategy",
    "TradeStateError",
    "Side",
    "SignalKind",
    "TradeStatus",
    "Candle",
    "Signal",
    "Ticker",
    "Account",
    "Order",
    "Position",
    "BacktestTrade",
    "Trade",
    "setup_logging",
]

"""Exception taxonomy shared by the backtest and the live loop."""


class TradingBotError(Exception):
    """Base exception for trading bot errors."""


class ConfigError(TradingBotError):
    """Configuration missing or invalid."""


class InsufficientData(TradingBotError):
    """Not enough candles for the requested indicator periods."""

    def __init__(self, available: int, required: int, symbol: str = "") -> None:
        where = f" for {symbol}" if symbol else ""
        super().__init__(
            f"Not enough historical data{where}: {available} candles found, {required} required"
        )
        self.available = available
        self.required = required


class InvalidSizing(TradingBotError):
    """Degenerate stop distance, zero size, or cost above balance."""


class BrokerError(TradingBotError):
    """Network or API failure reported by the broker adapter."""

    def __init__(self, message: str, code: object = None) -> None:
        super().__init__(message)
        self.code = code


class ProtectionFailure(TradingBotError):
    """Stop-loss or take-profit order could not be placed."""

    def __init__(self, kind: str, message: str) -> None:
        super().__init__(f"{kind} placement failed: {message}")
        self.kind = kind


class UnsupportedStrategy(TradingBotError):
    """Strategy name is declared but has no implementation."""


class TradeStateError(TradingBotError):
    """Operation not valid for the trade's current status."""

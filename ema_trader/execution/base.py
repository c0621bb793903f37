"""Abstract broker interface: balances, market data, and order lifecycle."""

from __future__ import annotations
from abc import ABC, abstractmethod
from typing import List, Optional

from ema_trader.core.types import Account, Candle, Order, Side, Ticker


class Broker(ABC):
    """
    Capability set consumed by the backtest and the live loop.
    Failures are raised as BrokerError with a readable message. Amounts are decimal strings.
    """

    @abstractmethod
    def get_accounts(self, currency: Optional[str] = None) -> List[Account]:
        """Account balances, optionally filtered by currency."""

    @abstractmethod
    def get_balance(self, currency: str) -> float:
        """Available (tradable) balance of `currency`."""

    @abstractmethod
    def get_klines(
        self,
        symbol: str,
        timeframe: str,
        start_at: Optional[int] = None,
        end_at: Optional[int] = None,
    ) -> List[Candle]:
        """Candles ascending by time. start_at/end_at are epoch seconds."""

    @abstractmethod
    def get_ticker(self, symbol: str) -> Ticker:
        """Last price and best bid/ask."""

    @abstractmethod
    def place_market_order(
        self,
        symbol: str,
        side: Side,
        size: Optional[str] = None,
        funds: Optional[str] = None,
    ) -> Order:
        """Market order sized in base (`size`) or quote (`funds`) currency."""

    @abstractmethod
    def place_limit_order(self, symbol: str, side: Side, price: str, size: str) -> Order:
        """Resting limit order."""

    @abstractmethod
    def cancel_order(self, order_id: str) -> None:
        """Cancel a resting order."""

    @abstractmethod
    def get_order(self, order_id: str) -> Order:
        """Latest known state of an order."""

    @abstractmethod
    def get_open_orders(self, symbol: Optional[str] = None) -> List[Order]:
        """Resting orders, optionally for one symbol."""

    @abstractmethod
    def place_stop_loss_order(self, symbol: str, side: Side, stop_price: str, size: str) -> Order:
        """Protective stop for a position opened on `side`; the order itself is on the opposite side."""

    @abstractmethod
    def place_take_profit_order(self, symbol: str, side: Side, take_profit_price: str, size: str) -> Order:
        """Protective target for a position opened on `side`; the order itself is on the opposite side."""

    @abstractmethod
    def is_symbol_supported(self, symbol: str) -> bool:
        """Whether this broker trades `symbol`."""

    @abstractmethod
    def get_name(self) -> str:
        """Human-readable broker name."""


def quote_currency(symbol: str, default: str = "USDT") -> str:
    """Quote side of a 'BASE-QUOTE' or 'BASE_QUOTE' symbol."""
    for sep in ("-", "_", "/"):
        if sep in symbol:
            return symbol.split(sep)[1].upper()
    return default.upper()


def format_amount(value: float, decimals: int = 8) -> str:
    """Decimal string without trailing zeros."""
    text = f"{value:.{decimals}f}".rstrip("0").rstrip(".")
    return text or "0"

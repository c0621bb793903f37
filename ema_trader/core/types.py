"""
Core data types for candles, signals, orders, positions, and trades.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class Side(str, Enum):
    BUY = "buy"
    SELL = "sell"

    @property
    def opposite(self) -> "Side":
        return Side.SELL if self is Side.BUY else Side.BUY


class SignalKind(str, Enum):
    BUY = "buy"
    SELL = "sell"
    NONE = "none"


class TradeStatus(str, Enum):
    PENDING = "pending"
    FILLED = "filled"
    CLOSED = "closed"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"

    @property
    def is_terminal(self) -> bool:
        return self in (TradeStatus.CLOSED, TradeStatus.CANCELLED)


@dataclass(frozen=True)
class Candle:
    """OHLCV candle. time is the open time in epoch seconds."""
    time: int
    open: float
    high: float
    low: float
    close: float
    volume: float

    @property
    def timestamp(self) -> datetime:
        return datetime.fromtimestamp(self.time, tz=timezone.utc)


@dataclass
class Signal:
    """Crossover signal derived from two adjacent indicator points."""
    kind: SignalKind
    fast_value: float = 0.0
    slow_value: float = 0.0
    price: float = 0.0

    @property
    def side(self) -> Optional[Side]:
        if self.kind is SignalKind.NONE:
            return None
        return Side(self.kind.value)


@dataclass
class Ticker:
    """Last trade price and top of book, as decimal strings."""
    price: str
    best_ask: str
    best_bid: str


@dataclass
class Account:
    """Broker account balance entry, amounts as decimal strings."""
    id: str
    currency: str
    type: str
    balance: str
    available: str
    holds: str = "0"


@dataclass
class Order:
    """Broker order. `id` is the only identifier the core relies on."""
    id: str
    symbol: str
    side: Side
    type: str
    status: str = TradeStatus.UNKNOWN.value
    size: Optional[str] = None
    price: Optional[str] = None
    funds: Optional[str] = None
    filled_size: Optional[str] = None
    filled_value: Optional[str] = None
    created_at: Optional[int] = None

    @property
    def filled_quantity(self) -> float:
        return float(self.filled_size or 0)

    @property
    def filled_notional(self) -> float:
        return float(self.filled_value or 0)

    @property
    def has_fill(self) -> bool:
        return self.filled_quantity > 0 or self.filled_notional > 0


@dataclass
class Position:
    """Open backtest position."""
    side: Side
    entry_price: float
    entry_index: int
    size: float
    stop_loss: float
    take_profit: float

    @property
    def cost(self) -> float:
        return self.entry_price * self.size

    def profit_at(self, exit_price: float) -> float:
        if self.side is Side.BUY:
            return (exit_price - self.entry_price) * self.size
        return (self.entry_price - exit_price) * self.size


@dataclass
class BacktestTrade:
    """Closed backtest trade for the ledger."""
    entry_date: datetime
    exit_date: datetime
    symbol: str
    side: Side
    entry_price: float
    exit_price: float
    size: float
    profit: float
    profit_percent: float
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    exit_reason: str = ""  # "stop_loss" | "take_profit" | "signal_reversal" | "end_of_data"


@dataclass
class Trade:
    """Live trade as persisted by a TradeRepository."""
    symbol: str
    side: Side
    price: float
    size: float
    order_id: Optional[str] = None
    type: str = "market"
    status: TradeStatus = TradeStatus.PENDING
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    stop_loss_order_id: Optional[str] = None
    take_profit_order_id: Optional[str] = None
    exit_price: Optional[float] = None
    profit: Optional[float] = None
    profit_percent: Optional[float] = None
    notes: str = ""
    opened_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    closed_at: Optional[datetime] = None
    id: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return not self.status.is_terminal

    def add_note(self, note: str) -> None:
        self.notes = f"{self.notes}; {note}" if self.notes else note

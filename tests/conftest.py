"""Shared fixtures: in-memory broker, candle series, live trader wiring."""

from __future__ import annotations
from typing import Callable, Dict, List, Optional

import pytest

from ema_trader.core.config import Config
from ema_trader.core.errors import BrokerError
from ema_trader.core.types import Account, Candle, Order, Side, Ticker
from ema_trader.execution.base import Broker
from ema_trader.live.trader import LiveTrader
from ema_trader.storage.trades import InMemoryTradeRepository
from ema_trader.strategies.crossover import CrossoverStrategy

START_TIME = 1_700_000_000
STEP = 900


def build_candles(closes: List[float], start: int = START_TIME, step: int = STEP) -> List[Candle]:
    return [
        Candle(time=start + i * step, open=c, high=c * 1.001, low=c * 0.999, close=c, volume=1.0)
        for i, c in enumerate(closes)
    ]


def dip_then_rally(decline: int = 40, rally: int = 30, top: float = 130.0) -> List[float]:
    """Steady decline (fast EMA under slow) followed by a rally that crosses it back up."""
    down = [top - 0.75 * i for i in range(decline)]
    bottom = down[-1]
    up = [bottom + 0.6 * (i + 1) for i in range(rally)]
    return down + up


def first_crossover(closes: List[float], side: Side, fast: int = 9, slow: int = 21) -> int:
    strategy = CrossoverStrategy(fast, slow, strategy="ema-only")
    frame = strategy.compute_indicators(build_candles(closes))
    for i in range(slow, len(closes)):
        if strategy.crossover_at(frame, i) is side:
            return i
    raise AssertionError(f"no {side.value} crossover in series")


class FakeBroker(Broker):
    """Fills market orders at the ticker price; protective orders rest until filled or cancelled."""

    def __init__(self, candles: Optional[List[Candle]] = None, balance: float = 10000.0, price: float = 100.0):
        self.candles = candles or []
        self.balances: Dict[str, float] = {"USDT": balance}
        self.set_price(price)
        self.orders: Dict[str, Order] = {}
        self.open_ids: List[str] = []
        self.placed: List[Order] = []
        self.cancelled: List[str] = []
        self.fill_market = True
        self.market_fill_ratio = 1.0
        self.fail_stop_loss = False
        self.fail_take_profit = False
        self.fail_market_sides: set = set()
        self.fail_klines = False
        self.on_klines: Optional[Callable[[], None]] = None
        self._seq = 0

    def set_price(self, price: float, spread: float = 0.0001) -> None:
        self.ticker = Ticker(
            price=str(price),
            best_ask=str(price * (1 + spread)),
            best_bid=str(price * (1 - spread)),
        )

    def _new_order(self, symbol: str, side: Side, type_: str, status: str, **kwargs) -> Order:
        self._seq += 1
        order = Order(id=f"ord-{self._seq}", symbol=symbol, side=side, type=type_, status=status, **kwargs)
        self.orders[order.id] = order
        self.placed.append(order)
        if status == "pending":
            self.open_ids.append(order.id)
        return order

    def fill(self, order_id: str) -> None:
        """Simulate the exchange executing a resting order."""
        order = self.orders[order_id]
        order.status = "filled"
        order.filled_size = order.size
        price = float(order.price) if order.price else float(self.ticker.price)
        order.filled_value = str(float(order.size) * price)
        self.open_ids.remove(order_id)

    def drop(self, order_id: str) -> None:
        """Simulate a resting order disappearing (e.g. expired)."""
        self.orders[order_id].status = "cancelled"
        self.open_ids.remove(order_id)

    def market_orders(self, side: Optional[Side] = None) -> List[Order]:
        return [o for o in self.placed if o.type == "market" and (side is None or o.side is side)]

    def get_accounts(self, currency: Optional[str] = None) -> List[Account]:
        return [
            Account(id=cur, currency=cur, type="spot", balance=str(bal), available=str(bal))
            for cur, bal in self.balances.items()
            if currency is None or cur == currency
        ]

    def get_balance(self, currency: str) -> float:
        return self.balances.get(currency, 0.0)

    def get_klines(self, symbol, timeframe, start_at=None, end_at=None) -> List[Candle]:
        if self.on_klines is not None:
            self.on_klines()
        if self.fail_klines:
            raise BrokerError("klines unavailable")
        return list(self.candles)

    def get_ticker(self, symbol: str) -> Ticker:
        return self.ticker

    def place_market_order(self, symbol, side, size=None, funds=None) -> Order:
        if side in self.fail_market_sides:
            raise BrokerError(f"market {side.value} rejected")
        price = float(self.ticker.price)
        if not self.fill_market:
            return self._new_order(symbol, side, "market", "pending", size=size)
        if self.market_fill_ratio < 1.0:
            filled = float(size) * self.market_fill_ratio
            return self._new_order(
                symbol, side, "market", "pending",
                size=size, filled_size=str(filled), filled_value=str(filled * price),
            )
        return self._new_order(
            symbol, side, "market", "filled",
            size=size, filled_size=size, filled_value=str(float(size) * price),
        )

    def place_limit_order(self, symbol, side, price, size) -> Order:
        return self._new_order(symbol, side, "limit", "pending", size=size, price=price)

    def cancel_order(self, order_id: str) -> None:
        if order_id not in self.open_ids:
            raise BrokerError(f"order {order_id} not open")
        self.open_ids.remove(order_id)
        self.orders[order_id].status = "cancelled"
        self.cancelled.append(order_id)

    def get_order(self, order_id: str) -> Order:
        if order_id not in self.orders:
            raise BrokerError(f"unknown order {order_id}")
        return self.orders[order_id]

    def get_open_orders(self, symbol: Optional[str] = None) -> List[Order]:
        return [self.orders[i] for i in self.open_ids if symbol is None or self.orders[i].symbol == symbol]

    def place_stop_loss_order(self, symbol, side, stop_price, size) -> Order:
        if self.fail_stop_loss:
            raise BrokerError("stop-loss rejected")
        return self._new_order(symbol, side.opposite, "stop_loss", "pending", size=size, price=stop_price)

    def place_take_profit_order(self, symbol, side, take_profit_price, size) -> Order:
        if self.fail_take_profit:
            raise BrokerError("take-profit rejected")
        return self._new_order(symbol, side.opposite, "take_profit", "pending", size=size, price=take_profit_price)

    def is_symbol_supported(self, symbol: str) -> bool:
        return True

    def get_name(self) -> str:
        return "Fake"


@pytest.fixture
def buy_signal_closes() -> List[float]:
    """Closes whose last candle is a bullish crossover."""
    closes = dip_then_rally()
    k = first_crossover(closes, Side.BUY)
    return closes[:k + 1]


@pytest.fixture
def live_config() -> Config:
    return Config(
        symbol="BTC-USDT",
        timeframe="15min",
        strategy="ema-only",
        risk_percent=0.15,
        stop_loss_pips=30.0,
        take_profit_pips=75.0,
        max_spread_pips=20.0,
    )


@pytest.fixture
def broker(buy_signal_closes) -> FakeBroker:
    return FakeBroker(build_candles(buy_signal_closes), balance=10000.0, price=buy_signal_closes[-1])


@pytest.fixture
def sleeps() -> List[float]:
    return []


@pytest.fixture
def trader(broker, live_config, sleeps) -> LiveTrader:
    holder = {"config": live_config}
    t = LiveTrader(
        broker,
        InMemoryTradeRepository(),
        lambda: holder["config"],
        sleep=sleeps.append,
    )
    t.config_holder = holder
    return t

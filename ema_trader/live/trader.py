"""
Live trading loop: one tick evaluates the latest crossover and, on a signal,
enters at market and places protective stop-loss and take-profit orders.

A position without a stop-loss is never left open: if the stop cannot be
placed the position is closed at market right away (safety close).
"""

from __future__ import annotations
import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List, Optional

from ema_trader.core.config import Config
from ema_trader.core.errors import BrokerError, InvalidSizing, ProtectionFailure, TradeStateError
from ema_trader.core.types import Order, Side, Trade, TradeStatus
from ema_trader.execution.base import Broker, format_amount, quote_currency
from ema_trader.risk.manager import RiskManager, spread_pips
from ema_trader.storage.trades import TradeRepository
from ema_trader.strategies.crossover import CrossoverStrategy

logger = logging.getLogger("ema_trader.live")

ConfigLoader = Callable[[], Optional[Config]]
Notifier = Callable[[str], object]


class TraderState(str, Enum):
    IDLE = "idle"
    CHECKING_SIGNAL = "checking_signal"
    NO_ACTION = "no_action"
    ENTERING = "entering"
    PROTECTING_POSITION = "protecting_position"
    PROTECTED = "protected"
    SAFETY_CLOSING = "safety_closing"
    SAFETY_CLOSED = "safety_closed"
    SKIPPED = "skipped"


@dataclass
class TickResult:
    """Outcome of one tick. `trade` is set once an entry order was placed."""
    state: TraderState
    reason: str = ""
    trade: Optional[Trade] = None


def _order_status(order: Order) -> TradeStatus:
    """Any executed quantity means a position exists, whatever the reported status."""
    if order.has_fill:
        return TradeStatus.FILLED
    try:
        return TradeStatus(order.status)
    except ValueError:
        return TradeStatus.UNKNOWN


def _fill_price(order: Order, fallback: float) -> float:
    if order.filled_quantity > 0 and order.filled_notional > 0:
        return order.filled_notional / order.filled_quantity
    if order.price and float(order.price) > 0:
        return float(order.price)
    return fallback


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LiveTrader:
    """
    Runs ticks against a broker and a trade repository.

    Configuration is re-read through `config_loader` on every tick so that
    changes (or deactivation) take effect without a restart. Ticks never
    overlap: a tick requested while another is running returns `skipped`.
    """

    def __init__(
        self,
        broker: Broker,
        trades: TradeRepository,
        config_loader: ConfigLoader,
        notifier: Optional[Notifier] = None,
        fill_poll_delay: float = 0.5,
        balance_release_delay: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.broker = broker
        self.trades = trades
        self.config_loader = config_loader
        self.notifier = notifier
        self.fill_poll_delay = fill_poll_delay
        self.balance_release_delay = balance_release_delay
        self._sleep = sleep
        self._lock = threading.Lock()
        self.state = TraderState.IDLE

    def run_tick(self) -> TickResult:
        """One pass of the loop. Errors are logged and reported as no_action."""
        if not self._lock.acquire(blocking=False):
            logger.info("Tick skipped: previous tick still running")
            return TickResult(TraderState.SKIPPED, "tick already running")
        try:
            result = self._tick()
        except Exception as e:
            logger.exception("Live tick failed: %s", e)
            result = TickResult(TraderState.NO_ACTION, f"error: {e}")
        finally:
            self.state = TraderState.IDLE
            self._lock.release()
        logger.debug("Tick finished: %s %s", result.state.value, result.reason)
        return result

    def _tick(self) -> TickResult:
        config = self.config_loader()
        if config is None or not config.active:
            logger.warning("No active trading configuration, skipping tick")
            return TickResult(TraderState.NO_ACTION, "no active configuration")

        symbol = config.symbol
        open_trades = self.trades.open_trades(symbol)
        for trade in open_trades:
            if trade.status is TradeStatus.PENDING and trade.order_id:
                order = self.broker.get_order(trade.order_id)
                if order.has_fill:
                    return self._adopt_fill(trade, order)
        if open_trades:
            logger.info("Open trade exists for %s, waiting", symbol)
            return TickResult(TraderState.NO_ACTION, "open trade exists")

        self.state = TraderState.CHECKING_SIGNAL
        strategy = CrossoverStrategy.from_config(config)
        candles = self.broker.get_klines(symbol, config.timeframe)
        signal = strategy.latest_signal(candles)
        side = signal.side
        if side is None:
            return TickResult(TraderState.NO_ACTION, "no signal")
        logger.info(
            "%s signal on %s at %.8f (fast=%.8f slow=%.8f)",
            side.value, symbol, signal.price, signal.fast_value, signal.slow_value,
        )

        currency = quote_currency(symbol, config.quote_currency)
        balance = self.broker.get_balance(currency)
        if balance <= 0:
            logger.error("No %s balance available for %s", currency, symbol)
            return TickResult(TraderState.NO_ACTION, f"no {currency} balance")

        ticker = self.broker.get_ticker(symbol)
        spread = spread_pips(float(ticker.best_ask), float(ticker.best_bid))
        if spread > config.max_spread_pips:
            logger.warning(
                "Spread %.1f pips on %s exceeds max %.1f, not entering",
                spread, symbol, config.max_spread_pips,
            )
            return TickResult(TraderState.NO_ACTION, f"spread {spread:.1f} pips too wide")

        risk = RiskManager(config.risk_percent, config.stop_loss_pips, config.take_profit_pips)
        try:
            size = risk.size_entry(side, signal.price, balance).require()
        except InvalidSizing as e:
            logger.warning("Entry on %s rejected: %s", symbol, e)
            return TickResult(TraderState.NO_ACTION, f"invalid sizing: {e}")

        balance = self.broker.get_balance(currency)
        if not risk.can_afford(balance, signal.price, size):
            logger.warning(
                "Balance %.8f %s no longer covers %.8f @ %.8f", balance, currency, size, signal.price
            )
            return TickResult(TraderState.NO_ACTION, "insufficient balance")

        return self._enter(symbol, side, size, float(ticker.price), risk)

    def _enter(self, symbol: str, side: Side, size: float, last_price: float, risk: RiskManager) -> TickResult:
        self.state = TraderState.ENTERING
        order = self.broker.place_market_order(symbol, side, size=format_amount(size))
        order = self._settle_partial(self._poll_fill(order))

        price = _fill_price(order, last_price)
        filled_size = order.filled_quantity or size
        stop_loss, take_profit = risk.protective_prices(side, price)
        trade = self.trades.create(Trade(
            symbol=symbol,
            side=side,
            price=price,
            size=filled_size,
            order_id=order.id,
            status=_order_status(order),
            stop_loss=stop_loss,
            take_profit=take_profit,
        ))
        logger.info(
            "Entered %s %s size=%.8f @ %.8f (trade %s, status %s)",
            side.value, symbol, filled_size, price, trade.id, trade.status.value,
        )

        if trade.status is TradeStatus.CANCELLED:
            logger.warning("Entry order %s for %s was not executed", order.id, symbol)
            return TickResult(TraderState.NO_ACTION, "entry order cancelled", trade)
        if trade.status is not TradeStatus.FILLED:
            logger.warning("Entry order %s has no fill yet, protection deferred", order.id)
            return TickResult(TraderState.ENTERING, "entry order pending", trade)

        self._notify(
            f"Entry {side.value.upper()} {symbol} size={filled_size:.8f} @ {price:.8f} "
            f"SL={stop_loss:.8f} TP={take_profit:.8f}"
        )
        return self._protect(trade)

    def _settle_partial(self, order: Order) -> Order:
        """Cancel the unfilled remainder of a partially filled order so the protected size is final."""
        if not order.has_fill or order.status != TradeStatus.PENDING.value:
            return order
        try:
            self.broker.cancel_order(order.id)
        except BrokerError as e:
            logger.warning("Could not cancel remainder of order %s: %s", order.id, e)
        try:
            return self.broker.get_order(order.id)
        except BrokerError as e:
            logger.warning("Could not refresh order %s: %s", order.id, e)
            return order

    def _poll_fill(self, order: Order) -> Order:
        self._sleep(self.fill_poll_delay)
        try:
            return self.broker.get_order(order.id)
        except BrokerError as e:
            logger.warning("Could not refresh order %s: %s", order.id, e)
            return order

    def _protect(self, trade: Trade, need_stop: bool = True, need_target: bool = True) -> TickResult:
        """Place the missing protective orders; a stop-loss failure triggers a safety close."""
        self.state = TraderState.PROTECTING_POSITION
        size = format_amount(trade.size)
        failure: Optional[ProtectionFailure] = None

        if need_stop:
            try:
                order = self.broker.place_stop_loss_order(
                    trade.symbol, trade.side, format_amount(trade.stop_loss), size
                )
                trade.stop_loss_order_id = order.id
                logger.info("Stop-loss %s placed at %.8f for trade %s", order.id, trade.stop_loss, trade.id)
            except Exception as e:
                failure = ProtectionFailure("stop-loss", str(e))
                logger.error("Trade %s: %s", trade.id, failure)

        if need_target:
            try:
                order = self.broker.place_take_profit_order(
                    trade.symbol, trade.side, format_amount(trade.take_profit), size
                )
                trade.take_profit_order_id = order.id
                logger.info("Take-profit %s placed at %.8f for trade %s", order.id, trade.take_profit, trade.id)
            except Exception as e:
                logger.warning("Trade %s: take-profit placement failed: %s", trade.id, e)
                trade.add_note(f"take-profit not placed: {e}")

        self.trades.save(trade)
        if failure is not None:
            return self._safety_close(trade, failure)
        return TickResult(TraderState.PROTECTED, "position protected", trade)

    def _safety_close(self, trade: Trade, failure: ProtectionFailure) -> TickResult:
        self.state = TraderState.SAFETY_CLOSING
        if trade.take_profit_order_id:
            try:
                self.broker.cancel_order(trade.take_profit_order_id)
            except BrokerError as e:
                logger.warning("Could not cancel take-profit %s: %s", trade.take_profit_order_id, e)

        try:
            order = self.broker.place_market_order(
                trade.symbol, trade.side.opposite, size=format_amount(trade.size)
            )
            order = self._poll_fill(order)
            self._mark_closed(trade, _fill_price(order, trade.price), f"safety close: {failure}")
            logger.warning("Trade %s closed at market after %s", trade.id, failure)
        except Exception as e:
            logger.error("Safety close of trade %s failed, position may still be open: %s", trade.id, e)
            trade.status = TradeStatus.CLOSED
            trade.closed_at = _utcnow()
            trade.add_note(f"safety close failed: {e} ({failure})")
        self.trades.save(trade)
        self._notify(f"SAFETY CLOSE {trade.symbol} trade {trade.id}: {trade.notes}")
        return TickResult(TraderState.SAFETY_CLOSED, str(failure), trade)

    @staticmethod
    def _mark_closed(trade: Trade, exit_price: float, note: str = "") -> None:
        if trade.side is Side.BUY:
            profit = (exit_price - trade.price) * trade.size
        else:
            profit = (trade.price - exit_price) * trade.size
        cost = trade.price * trade.size
        trade.exit_price = exit_price
        trade.profit = profit
        trade.profit_percent = profit / cost * 100.0 if cost else 0.0
        trade.status = TradeStatus.CLOSED
        trade.closed_at = _utcnow()
        if note:
            trade.add_note(note)

    def close_trade(self, trade_id: str, reason: str = "manual close") -> Trade:
        """
        Close one trade. A pending entry is cancelled; a filled position has its
        resting orders cancelled and is closed at market.
        """
        trade = self.trades.get(trade_id)
        if trade is None:
            raise TradeStateError(f"Trade {trade_id} not found")
        if not trade.is_open:
            raise TradeStateError(f"Trade {trade_id} is already {trade.status.value}")

        with self._lock:
            has_position = trade.status is TradeStatus.FILLED or (
                trade.status is TradeStatus.UNKNOWN and trade.size > 0
            )
            if not has_position:
                if trade.order_id:
                    try:
                        self.broker.cancel_order(trade.order_id)
                    except BrokerError as e:
                        logger.warning("Could not cancel entry order %s: %s", trade.order_id, e)
                trade.status = TradeStatus.CANCELLED
                trade.closed_at = _utcnow()
                trade.add_note(reason)
                self.trades.save(trade)
                logger.info("Trade %s cancelled: %s", trade.id, reason)
                return trade

            cancelled = False
            for order in self.broker.get_open_orders(trade.symbol):
                try:
                    self.broker.cancel_order(order.id)
                    cancelled = True
                except BrokerError as e:
                    logger.warning("Could not cancel order %s: %s", order.id, e)
            # Exchange needs a moment to release funds held by cancelled orders.
            self._sleep(self.balance_release_delay if cancelled else self.fill_poll_delay)

            try:
                order = self.broker.place_market_order(
                    trade.symbol, trade.side.opposite, size=format_amount(trade.size)
                )
            except BrokerError as e:
                logger.error("Close of trade %s failed, restoring protection: %s", trade.id, e)
                trade.add_note(f"close failed: {e}")
                self._protect(trade)
                raise
            order = self._poll_fill(order)
            exit_price = _fill_price(order, float(self.broker.get_ticker(trade.symbol).price))
            self._mark_closed(trade, exit_price, reason)
            self.trades.save(trade)

        logger.info(
            "Trade %s closed @ %.8f, profit %.8f (%.2f%%)",
            trade.id, exit_price, trade.profit, trade.profit_percent,
        )
        self._notify(
            f"Closed {trade.side.value.upper()} {trade.symbol} @ {exit_price:.8f} "
            f"profit={trade.profit:.8f} ({trade.profit_percent:.2f}%) - {reason}"
        )
        return trade

    def reconcile(self) -> List[Trade]:
        """
        Align persisted trades with the exchange: cancel stale pending entries,
        close trades whose protective order filled, re-place missing protection.
        Returns the trades that changed.
        """
        config = self.config_loader()
        symbol = config.symbol if config is not None else None
        changed: List[Trade] = []
        with self._lock:
            for trade in self.trades.open_trades(symbol):
                try:
                    if self._reconcile_trade(trade):
                        changed.append(trade)
                except BrokerError as e:
                    logger.error("Reconcile of trade %s failed: %s", trade.id, e)
            self.state = TraderState.IDLE
        if changed:
            logger.info("Reconciled %d trade(s)", len(changed))
        return changed

    def _reconcile_trade(self, trade: Trade) -> bool:
        if trade.status is TradeStatus.PENDING:
            return self._reconcile_pending(trade)

        if trade.status is not TradeStatus.FILLED or trade.stop_loss is None or trade.take_profit is None:
            return False

        open_ids = {o.id for o in self.broker.get_open_orders(trade.symbol)}
        exits = (
            (trade.stop_loss_order_id, trade.stop_loss, "stop-loss", trade.take_profit_order_id),
            (trade.take_profit_order_id, trade.take_profit, "take-profit", trade.stop_loss_order_id),
        )
        for order_id, level, kind, sibling_id in exits:
            if not order_id or order_id in open_ids:
                continue
            if _order_status(self.broker.get_order(order_id)) is TradeStatus.FILLED:
                if sibling_id and sibling_id in open_ids:
                    try:
                        self.broker.cancel_order(sibling_id)
                    except BrokerError as e:
                        logger.warning("Could not cancel order %s: %s", sibling_id, e)
                self._mark_closed(trade, level, f"{kind} filled")
                self.trades.save(trade)
                logger.info("Trade %s closed by %s at %.8f", trade.id, kind, level)
                self._notify(f"{kind.capitalize()} hit {trade.symbol} trade {trade.id} @ {level:.8f}")
                return True

        need_stop = trade.stop_loss_order_id not in open_ids
        need_target = trade.take_profit_order_id not in open_ids
        if not (need_stop or need_target):
            return False
        logger.warning(
            "Trade %s missing protection (stop-loss=%s, take-profit=%s), re-placing",
            trade.id, need_stop, need_target,
        )
        self._protect(trade, need_stop=need_stop, need_target=need_target)
        return True

    def _reconcile_pending(self, trade: Trade) -> bool:
        """
        A pending entry that executed in the meantime becomes a protected filled
        trade; one without any fill is cancelled.
        """
        order = self.broker.get_order(trade.order_id) if trade.order_id else None
        if order is not None and not order.has_fill:
            try:
                self.broker.cancel_order(order.id)
            except BrokerError as e:
                logger.warning("Could not cancel pending order %s: %s", order.id, e)
                order = self.broker.get_order(order.id)

        if order is not None and order.has_fill:
            self._adopt_fill(trade, order)
            return True

        trade.status = TradeStatus.CANCELLED
        trade.closed_at = _utcnow()
        trade.add_note("pending entry cancelled on reconcile")
        self.trades.save(trade)
        return True

    def _adopt_fill(self, trade: Trade, order: Order) -> TickResult:
        """Turn a pending trade whose entry order executed into a protected filled trade."""
        order = self._settle_partial(order)
        price = _fill_price(order, trade.price)
        # Stop and target are fixed fractions of the entry price.
        scale = price / trade.price if trade.price else 1.0
        trade.price = price
        trade.size = order.filled_quantity
        if trade.stop_loss is not None:
            trade.stop_loss *= scale
        if trade.take_profit is not None:
            trade.take_profit *= scale
        trade.status = TradeStatus.FILLED
        trade.add_note("entry fill confirmed late")
        logger.warning(
            "Pending trade %s was filled (%.8f @ %.8f), protecting", trade.id, trade.size, price
        )
        return self._protect(trade)

    def _notify(self, text: str) -> None:
        if self.notifier is not None:
            self.notifier(text)

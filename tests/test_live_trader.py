"""Unit tests for live.trader against an in-memory broker."""

import pytest

from ema_trader.core.errors import BrokerError, TradeStateError
from ema_trader.core.types import Side, TradeStatus
from ema_trader.live.trader import TraderState


def test_tick_enters_and_protects(trader, broker, buy_signal_closes):
    result = trader.run_tick()
    price = buy_signal_closes[-1]

    assert result.state is TraderState.PROTECTED
    trade = result.trade
    assert trade.side is Side.BUY
    assert trade.status is TradeStatus.FILLED
    assert trade.price == pytest.approx(price)
    # 0.15% of 10000 over a 30 pip stop distance
    assert trade.size == pytest.approx(5000 / price, rel=1e-6)
    assert trade.stop_loss == pytest.approx(price * 0.997)
    assert trade.take_profit == pytest.approx(price * 1.0075)
    assert trade.stop_loss_order_id in broker.open_ids
    assert trade.take_profit_order_id in broker.open_ids
    assert trader.trades.get(trade.id).stop_loss_order_id == trade.stop_loss_order_id
    assert trader.state is TraderState.IDLE


def test_open_trade_blocks_second_entry(trader, broker):
    trader.run_tick()
    result = trader.run_tick()
    assert result.state is TraderState.NO_ACTION
    assert result.reason == "open trade exists"
    assert len(broker.market_orders()) == 1


def test_inactive_or_missing_config_does_nothing(trader, broker, live_config):
    trader.config_holder["config"] = live_config.replace(active=False)
    assert trader.run_tick().state is TraderState.NO_ACTION
    trader.config_holder["config"] = None
    assert trader.run_tick().state is TraderState.NO_ACTION
    assert broker.placed == []


def test_wide_spread_aborts_before_any_order(trader, broker):
    broker.ticker.best_ask = "101"
    broker.ticker.best_bid = "99"
    result = trader.run_tick()
    assert result.state is TraderState.NO_ACTION
    assert "spread" in result.reason
    assert broker.placed == []


def test_zero_balance_no_entry(trader, broker):
    broker.balances["USDT"] = 0.0
    result = trader.run_tick()
    assert result.state is TraderState.NO_ACTION
    assert broker.placed == []


def test_direction_disabled(trader, broker, live_config):
    trader.config_holder["config"] = live_config.replace(allow_buy=False)
    result = trader.run_tick()
    assert result.state is TraderState.NO_ACTION
    assert result.reason == "no signal"
    assert broker.placed == []


def test_stop_loss_failure_safety_closes_and_cancels_take_profit(trader, broker):
    broker.fail_stop_loss = True
    result = trader.run_tick()

    assert result.state is TraderState.SAFETY_CLOSED
    trade = trader.trades.get(result.trade.id)
    assert trade.status is TradeStatus.CLOSED
    assert trade.take_profit_order_id in broker.cancelled
    assert broker.open_ids == []
    assert len(broker.market_orders(Side.SELL)) == 1
    assert "safety close" in trade.notes
    assert trade.profit == pytest.approx(0.0, abs=1e-6)


def test_safety_close_failure_still_marks_closed(trader, broker):
    broker.fail_stop_loss = True
    broker.fail_market_sides = {Side.SELL}
    result = trader.run_tick()

    assert result.state is TraderState.SAFETY_CLOSED
    trade = trader.trades.get(result.trade.id)
    assert trade.status is TradeStatus.CLOSED
    assert "safety close failed" in trade.notes
    assert trade.exit_price is None


def test_take_profit_failure_keeps_position(trader, broker):
    broker.fail_take_profit = True
    result = trader.run_tick()

    assert result.state is TraderState.PROTECTED
    trade = trader.trades.get(result.trade.id)
    assert trade.status is TradeStatus.FILLED
    assert trade.stop_loss_order_id is not None
    assert trade.take_profit_order_id is None
    assert "take-profit not placed" in trade.notes


def test_unfilled_entry_stays_pending(trader, broker):
    broker.fill_market = False
    result = trader.run_tick()

    assert result.state is TraderState.ENTERING
    assert result.trade.status is TradeStatus.PENDING
    assert [o.type for o in broker.placed] == ["market"]


def test_partial_entry_fill_is_protected(trader, broker):
    broker.market_fill_ratio = 0.5
    result = trader.run_tick()

    assert result.state is TraderState.PROTECTED
    trade = trader.trades.get(result.trade.id)
    entry = broker.orders[trade.order_id]
    assert trade.status is TradeStatus.FILLED
    assert trade.size == pytest.approx(float(entry.size) / 2)
    assert trade.order_id in broker.cancelled
    assert trade.stop_loss_order_id in broker.open_ids
    assert float(broker.orders[trade.stop_loss_order_id].size) == pytest.approx(entry.filled_quantity)


def test_pending_entry_filled_later_is_protected_on_next_tick(trader, broker):
    broker.fill_market = False
    trade = trader.run_tick().trade
    broker.fill(trade.order_id)

    result = trader.run_tick()

    assert result.state is TraderState.PROTECTED
    stored = trader.trades.get(trade.id)
    assert stored.status is TradeStatus.FILLED
    assert stored.stop_loss_order_id in broker.open_ids
    assert "entry fill confirmed late" in stored.notes
    assert len(broker.market_orders()) == 1


def test_reentrant_tick_is_skipped(trader, broker):
    nested = []
    broker.on_klines = lambda: nested.append(trader.run_tick())
    trader.run_tick()
    assert nested[0].state is TraderState.SKIPPED


def test_broker_error_caught_at_tick_boundary(trader, broker):
    broker.fail_klines = True
    result = trader.run_tick()
    assert result.state is TraderState.NO_ACTION
    assert result.reason.startswith("error:")
    # lock released
    broker.fail_klines = False
    assert trader.run_tick().state is TraderState.PROTECTED


def test_close_filled_trade(trader, broker, sleeps, buy_signal_closes):
    trade = trader.run_tick().trade
    exit_price = buy_signal_closes[-1] * 1.005
    broker.set_price(exit_price)

    closed = trader.close_trade(trade.id, "manual")

    assert closed.status is TradeStatus.CLOSED
    assert closed.exit_price == pytest.approx(exit_price)
    assert closed.profit == pytest.approx((exit_price - trade.price) * trade.size)
    assert closed.profit_percent == pytest.approx(0.5, rel=1e-6)
    assert set(broker.cancelled) == {trade.stop_loss_order_id, trade.take_profit_order_id}
    assert trader.balance_release_delay in sleeps
    assert trader.trades.get(trade.id).status is TradeStatus.CLOSED


def test_failed_close_restores_protection(trader, broker):
    trade = trader.run_tick().trade
    broker.fail_market_sides = {Side.SELL}

    with pytest.raises(BrokerError):
        trader.close_trade(trade.id)

    stored = trader.trades.get(trade.id)
    assert stored.status is TradeStatus.FILLED
    assert trade.stop_loss_order_id in broker.cancelled
    assert stored.stop_loss_order_id != trade.stop_loss_order_id
    assert stored.stop_loss_order_id in broker.open_ids
    assert stored.take_profit_order_id in broker.open_ids
    assert "close failed" in stored.notes


def test_close_pending_trade_cancels_entry(trader, broker):
    broker.fill_market = False
    trade = trader.run_tick().trade
    closed = trader.close_trade(trade.id)
    assert closed.status is TradeStatus.CANCELLED
    assert trade.order_id in broker.cancelled
    assert broker.market_orders(Side.SELL) == []


def test_close_terminal_or_unknown_trade_raises(trader, broker):
    trade = trader.run_tick().trade
    trader.close_trade(trade.id)
    with pytest.raises(TradeStateError):
        trader.close_trade(trade.id)
    with pytest.raises(TradeStateError):
        trader.close_trade("missing")


def test_reconcile_cancels_pending(trader, broker):
    broker.fill_market = False
    trade = trader.run_tick().trade
    changed = trader.reconcile()
    assert [t.id for t in changed] == [trade.id]
    assert trader.trades.get(trade.id).status is TradeStatus.CANCELLED
    assert trade.order_id in broker.cancelled


def test_reconcile_protects_pending_entry_that_filled(trader, broker, buy_signal_closes):
    broker.fill_market = False
    trade = trader.run_tick().trade
    broker.fill(trade.order_id)

    changed = trader.reconcile()

    assert [t.id for t in changed] == [trade.id]
    stored = trader.trades.get(trade.id)
    assert stored.status is TradeStatus.FILLED
    assert stored.price == pytest.approx(buy_signal_closes[-1])
    assert stored.stop_loss_order_id in broker.open_ids
    assert stored.take_profit_order_id in broker.open_ids
    assert trade.order_id not in broker.cancelled


def test_reconcile_keeps_partially_filled_pending_entry(trader, broker):
    broker.fill_market = False
    trade = trader.run_tick().trade
    entry = broker.orders[trade.order_id]
    entry.filled_size = str(float(entry.size) / 4)
    entry.filled_value = str(float(entry.filled_size) * float(broker.ticker.price))

    trader.reconcile()

    stored = trader.trades.get(trade.id)
    assert stored.status is TradeStatus.FILLED
    assert stored.size == pytest.approx(float(entry.size) / 4)
    assert trade.order_id in broker.cancelled
    assert stored.stop_loss_order_id in broker.open_ids


def test_reconcile_replaces_missing_stop_loss(trader, broker):
    trade = trader.run_tick().trade
    broker.drop(trade.stop_loss_order_id)

    trader.reconcile()

    stored = trader.trades.get(trade.id)
    assert stored.status is TradeStatus.FILLED
    assert stored.stop_loss_order_id != trade.stop_loss_order_id
    assert stored.stop_loss_order_id in broker.open_ids
    assert stored.take_profit_order_id == trade.take_profit_order_id


def test_reconcile_closes_trade_when_stop_filled(trader, broker):
    trade = trader.run_tick().trade
    broker.fill(trade.stop_loss_order_id)

    trader.reconcile()

    stored = trader.trades.get(trade.id)
    assert stored.status is TradeStatus.CLOSED
    assert stored.exit_price == pytest.approx(trade.stop_loss)
    assert stored.profit < 0
    assert trade.take_profit_order_id in broker.cancelled


def test_reconcile_noop_when_protected(trader, broker):
    trader.run_tick()
    assert trader.reconcile() == []

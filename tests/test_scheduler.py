"""Unit tests for live.scheduler."""

import threading

import pytest

from ema_trader.core.types import TradeStatus
from ema_trader.live.scheduler import TradingScheduler
from ema_trader.live.trader import TraderState


def _scheduler_threads():
    return [t for t in threading.enumerate() if t.name == "ema-trader-scheduler" and t.is_alive()]


@pytest.fixture
def scheduler(trader):
    s = TradingScheduler(trader, trader.config_loader)
    yield s
    s.stop()


def test_start_ticks_immediately(scheduler, trader):
    interval = scheduler.start(60)
    assert interval == 60
    status = scheduler.status()
    assert status.running is True
    assert status.last_result.state is TraderState.PROTECTED
    assert status.open_trades == 1
    assert status.last_tick_at is not None


def test_interval_from_timeframe(scheduler, trader, live_config):
    trader.config_holder["config"] = live_config.replace(timeframe="4h", active=False)
    assert scheduler.start() == 30
    trader.config_holder["config"] = live_config.replace(timeframe="1m", active=False)
    assert scheduler.start() == 1
    trader.config_holder["config"] = live_config.replace(poll_interval_minutes=7, active=False)
    assert scheduler.start() == 7


def test_start_twice_keeps_one_thread(scheduler, trader, live_config):
    trader.config_holder["config"] = live_config.replace(active=False)
    scheduler.start(60)
    scheduler.start(60)
    assert len(_scheduler_threads()) == 1


def test_stop(scheduler, trader):
    scheduler.start(60)
    scheduler.stop()
    assert scheduler.running is False
    assert _scheduler_threads() == []
    # open trades untouched unless asked
    assert len(trader.trades.open_trades()) == 1


def test_stop_closes_open_trades(scheduler, trader, broker):
    scheduler.start(60)
    scheduler.stop(close_open_trades=True)
    trades = trader.trades.list()
    assert [t.status for t in trades] == [TradeStatus.CLOSED]
    assert broker.open_ids == []


def test_restart_keeps_interval(scheduler, trader, live_config):
    trader.config_holder["config"] = live_config.replace(active=False)
    scheduler.start(12)
    assert scheduler.restart() == 12
    assert scheduler.running is True


def test_status_stats(scheduler, trader, broker, buy_signal_closes):
    scheduler.start(60)
    trade = trader.trades.open_trades()[0]
    broker.set_price(buy_signal_closes[-1] * 1.01)
    trader.close_trade(trade.id)
    status = scheduler.status()
    assert status.symbol == "BTC-USDT"
    assert status.open_trades == 0
    assert status.stats.total_trades == 1
    assert status.stats.winning_trades == 1
    assert status.stats.total_profit > 0
    assert status.stats.daily_profit == pytest.approx(status.stats.total_profit)

"""Unit tests for analytics.metrics."""

from datetime import date, datetime, timezone

import pytest

from ema_trader.analytics.metrics import max_drawdown, sharpe_ratio, summarize_trades, win_rate
from ema_trader.core.types import Side, Trade, TradeStatus


def test_sharpe_ratio_empty():
    assert sharpe_ratio([]) == 0.0


def test_sharpe_ratio_constant():
    assert sharpe_ratio([0.01] * 10) == 0.0  # zero std


def test_sharpe_ratio_identical_take_profit_returns():
    # repeated take-profit exits: equal up to float rounding
    returns = [0.75, 0.7500000000000001, 0.7499999999999999, 0.75, 0.75]
    assert sharpe_ratio(returns) == 0.0


def test_sharpe_ratio_per_trade():
    # mean 3, population std 1
    assert sharpe_ratio([2.0, 4.0]) == pytest.approx(3.0)


def test_win_rate():
    assert win_rate([1, -1, 1, 1]) == 75.0
    assert win_rate([]) == 0.0


def test_max_drawdown():
    # equity 100 -> 120 -> 100 -> 110  =>  20 below the 120 peak
    amount, pct = max_drawdown([100.0, 120.0, 100.0, 110.0])
    assert amount == pytest.approx(20.0)
    assert pct == pytest.approx(16.666, rel=0.01)


def test_max_drawdown_monotonic():
    assert max_drawdown([1.0, 2.0, 3.0]) == (0.0, 0.0)
    assert max_drawdown([]) == (0.0, 0.0)


def test_summarize_trades():
    today = date(2024, 5, 2)
    trades = [
        Trade("BTC-USDT", Side.BUY, 100.0, 1.0, status=TradeStatus.CLOSED, profit=10.0,
              opened_at=datetime(2024, 5, 2, 9, tzinfo=timezone.utc)),
        Trade("BTC-USDT", Side.BUY, 100.0, 1.0, status=TradeStatus.CLOSED, profit=-4.0,
              opened_at=datetime(2024, 5, 1, 9, tzinfo=timezone.utc)),
        Trade("BTC-USDT", Side.BUY, 100.0, 1.0, status=TradeStatus.FILLED,
              opened_at=datetime(2024, 5, 2, 10, tzinfo=timezone.utc)),
    ]
    stats = summarize_trades(trades, today=today)
    assert stats.total_trades == 3
    assert stats.winning_trades == 1
    assert stats.losing_trades == 1
    assert stats.total_profit == pytest.approx(6.0)
    assert stats.daily_profit == pytest.approx(10.0)
    assert stats.win_rate == 50.0

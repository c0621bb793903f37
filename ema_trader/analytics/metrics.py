"""
Performance metrics: per-trade Sharpe, max drawdown, win rate, trade summaries.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import date
from typing import Iterable, List, Optional

import numpy as np

from ema_trader.core.types import Trade


def sharpe_ratio(returns_pct: List[float]) -> float:
    """
    mean / stddev of per-trade percent returns (population stddev, not annualized).
    0 when there are no returns or the stddev is 0.
    """
    if not returns_pct:
        return 0.0
    arr = np.asarray(returns_pct, dtype=float)
    mean, std = arr.mean(), arr.std()
    # Identical returns leave float noise (~1e-18) in the stddev.
    if np.isclose(std, 0.0, atol=1e-12 * max(1.0, abs(mean))):
        return 0.0
    return float(mean / std)


def win_rate(pnls: List[float]) -> float:
    """Percent of trades with positive PnL (0-100)."""
    if not pnls:
        return 0.0
    return sum(1 for p in pnls if p > 0) / len(pnls) * 100.0


def max_drawdown(equity_curve: List[float]) -> tuple[float, float]:
    """
    Largest peak-to-trough decline as (amount, percent of the peak it fell from).
    The first occurrence wins on ties.
    """
    if not equity_curve:
        return 0.0, 0.0
    arr = np.asarray(equity_curve, dtype=float)
    peak = np.maximum.accumulate(arr)
    dd = peak - arr
    idx = int(np.argmax(dd))
    if dd[idx] <= 0:
        return 0.0, 0.0
    pct = dd[idx] / peak[idx] * 100.0 if peak[idx] != 0 else 0.0
    return float(dd[idx]), float(pct)


@dataclass
class TradeStats:
    """Aggregate over persisted live trades."""
    total_trades: int
    winning_trades: int
    losing_trades: int
    total_profit: float
    daily_profit: float
    win_rate: float


def summarize_trades(trades: Iterable[Trade], today: Optional[date] = None) -> TradeStats:
    """Counts and profit totals; daily profit covers trades opened on `today`."""
    trades = list(trades)
    pnls = [t.profit for t in trades if t.profit is not None]
    daily = sum(
        t.profit for t in trades
        if t.profit is not None and today is not None and t.opened_at.date() == today
    )
    return TradeStats(
        total_trades=len(trades),
        winning_trades=sum(1 for p in pnls if p > 0),
        losing_trades=sum(1 for p in pnls if p < 0),
        total_profit=float(sum(pnls)),
        daily_profit=float(daily),
        win_rate=win_rate(pnls),
    )

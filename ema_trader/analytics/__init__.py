"""Analytics: per-trade Sharpe, drawdown, win rate, live trade summaries."""

from ema_trader.analytics.metrics import (
    TradeStats,
    max_drawdown,
    sharpe_ratio,
    summarize_trades,
    win_rate,
)

__all__ = ["TradeStats", "max_drawdown", "sharpe_ratio", "summarize_trades", "win_rate"]

"""Backtesting engine: candle-by-candle simulation with reserved capital."""

from ema_trader.backtesting.engine import BacktestEngine, BacktestResult, run_backtest

__all__ = ["BacktestEngine", "BacktestResult", "run_backtest"]

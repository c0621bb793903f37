#!/usr/bin/env python3
"""
EMA Trader CLI: backtest | live | close
Usage:
  python main.py backtest [--config config.yaml] [--start 2024-01-01] [--end 2024-03-01]
  python main.py live [--config config.yaml] [--interval 5]
  python main.py close <trade_id> [--config config.yaml]
"""

from __future__ import annotations
import argparse
import logging
import sys
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

# Project root
ROOT = Path(__file__).resolve().parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from ema_trader.backtesting.engine import BacktestResult, run_backtest
from ema_trader.core.config import Config, load_config
from ema_trader.core.errors import TradingBotError
from ema_trader.core.logger import LOGGER_NAME, setup_logging
from ema_trader.execution.binance_spot import BinanceSpotBroker
from ema_trader.live.scheduler import TradingScheduler
from ema_trader.live.trader import LiveTrader
from ema_trader.storage.trades import JsonTradeRepository
from ema_trader.utils.telegram import TelegramNotifier

logger = logging.getLogger(LOGGER_NAME)


def _parse_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(str(value)).replace(tzinfo=timezone.utc)


def _make_broker(config: Config) -> Optional[BinanceSpotBroker]:
    if not config.binance_api_key or not config.binance_api_secret:
        logger.error("Missing BINANCE_API_KEY or BINANCE_API_SECRET in .env")
        return None
    return BinanceSpotBroker(config.binance_api_key, config.binance_api_secret, testnet=config.use_testnet)


def _trades_path(config: Config) -> Path:
    path = Path(config.trades_file)
    return path if path.is_absolute() else ROOT / path


def print_backtest(result: BacktestResult) -> None:
    print("\n--- Backtest Results ---")
    print(f"Symbol: {result.symbol} ({result.timeframe}, {result.strategy})")
    print(f"Initial balance: {result.initial_balance:.2f}  Final balance: {result.final_balance:.2f}")
    print(f"Total profit: {result.total_profit:.2f} ({result.total_profit_percent:.2f}%)")
    print(f"Total trades: {result.total_trades} (wins: {result.winning_trades}, losses: {result.losing_trades})")
    print(f"Win rate: {result.win_rate:.1f}%")
    print(f"Max drawdown: {result.max_drawdown:.2f} ({result.max_drawdown_percent:.2f}%)")
    print(f"Sharpe ratio: {result.sharpe_ratio:.2f}")
    print(f"Signals filtered: {result.signals_filtered}")
    for t in result.trades:
        print(
            f"  {t.entry_date:%Y-%m-%d %H:%M} -> {t.exit_date:%Y-%m-%d %H:%M} {t.side.value:<4} "
            f"{t.entry_price:.4f} -> {t.exit_price:.4f} {t.profit:+.2f} ({t.exit_reason})"
        )


def cmd_backtest(config_path: Path | None, start: Optional[str], end: Optional[str]) -> int:
    """Run a backtest over the configured (or given) date range."""
    config = load_config(config_path, ROOT)
    setup_logging(config.log_level, config.log_dir, config.log_file)
    broker = _make_broker(config)
    if broker is None:
        return 1
    end_dt = _parse_date(end or config.backtest_end) or datetime.now(timezone.utc)
    start_dt = _parse_date(start or config.backtest_start) or end_dt - timedelta(days=30)
    try:
        result = run_backtest(
            broker,
            config.symbol,
            config.timeframe,
            start_dt,
            end_dt,
            fast_period=config.fast_period,
            slow_period=config.slow_period,
            risk_percent=config.risk_percent,
            stop_loss_pips=config.stop_loss_pips,
            take_profit_pips=config.take_profit_pips,
            initial_balance=config.backtest_initial_balance,
            allow_buy=config.allow_buy,
            allow_sell=config.allow_sell,
            strategy=config.strategy,
            rsi_period=config.rsi_period,
            rsi_overbought=config.rsi_overbought,
            rsi_oversold=config.rsi_oversold,
        )
    except TradingBotError as e:
        logger.error("Backtest failed: %s", e)
        return 1
    print_backtest(result)
    return 0


def cmd_live(config_path: Path | None, interval: Optional[float]) -> int:
    """Run the live loop until interrupted."""
    config = load_config(config_path, ROOT)
    setup_logging(config.log_level, config.log_dir, config.log_file)
    broker = _make_broker(config)
    if broker is None:
        return 1
    notifier = TelegramNotifier(config.telegram_bot_token, config.telegram_chat_id)
    if not notifier.enabled:
        logger.info("Telegram not configured, trade notifications go to the log only")

    def config_loader() -> Config:
        # Re-read each tick so edits to config.yaml (e.g. active: false) apply live.
        return load_config(config_path, ROOT)

    trader = LiveTrader(broker, JsonTradeRepository(_trades_path(config)), config_loader, notifier=notifier)
    scheduler = TradingScheduler(trader, config_loader)
    notifier(f"EMA trader starting | {config.symbol} {config.timeframe} | testnet={config.use_testnet}")
    scheduler.start(interval)
    try:
        while scheduler.running:
            time.sleep(1)
    except KeyboardInterrupt:
        logger.info("Shutdown by user")
    finally:
        scheduler.stop()
        notifier("EMA trader stopped.")
    return 0


def cmd_close(config_path: Path | None, trade_id: str) -> int:
    """Close one open trade at market."""
    config = load_config(config_path, ROOT)
    setup_logging(config.log_level, config.log_dir, config.log_file)
    broker = _make_broker(config)
    if broker is None:
        return 1
    notifier = TelegramNotifier(config.telegram_bot_token, config.telegram_chat_id)
    trader = LiveTrader(broker, JsonTradeRepository(_trades_path(config)), lambda: config, notifier=notifier)
    try:
        trade = trader.close_trade(trade_id, "closed from CLI")
    except TradingBotError as e:
        logger.error("Close failed: %s", e)
        return 1
    print(f"Trade {trade.id}: {trade.status.value} profit={trade.profit}")
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="EMA Trader CLI")
    parser.add_argument("--config", type=Path, default=None, help="Path to config.yaml")
    sub = parser.add_subparsers(dest="mode", required=True)
    bt = sub.add_parser("backtest", help="Run a backtest")
    bt.add_argument("--start", default=None, help="Start date (ISO, UTC)")
    bt.add_argument("--end", default=None, help="End date (ISO, UTC)")
    live = sub.add_parser("live", help="Run the live loop")
    live.add_argument("--interval", type=float, default=None, help="Tick interval in minutes")
    close = sub.add_parser("close", help="Close an open trade")
    close.add_argument("trade_id")
    args = parser.parse_args()
    if args.mode == "backtest":
        return cmd_backtest(args.config, args.start, args.end)
    if args.mode == "close":
        return cmd_close(args.config, args.trade_id)
    return cmd_live(args.config, args.interval)


if __name__ == "__main__":
    sys.exit(main())

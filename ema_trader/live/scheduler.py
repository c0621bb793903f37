"""
Periodic driver for LiveTrader: a daemon thread that ticks every interval.
"""

from __future__ import annotations
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from ema_trader.analytics.metrics import TradeStats, summarize_trades
from ema_trader.core.errors import ConfigError, TradingBotError
from ema_trader.live.trader import ConfigLoader, LiveTrader, TickResult
from ema_trader.utils.timeframes import poll_interval_minutes

logger = logging.getLogger("ema_trader.live.scheduler")


@dataclass
class BotStatus:
    running: bool
    symbol: Optional[str]
    interval_minutes: Optional[float]
    last_tick_at: Optional[datetime]
    last_result: Optional[TickResult]
    open_trades: int
    stats: TradeStats


class TradingScheduler:
    """
    Owns the tick timer. start() always stops the previous timer first, so at
    most one ticking thread exists per scheduler.
    """

    def __init__(self, trader: LiveTrader, config_loader: ConfigLoader, join_timeout: float = 5.0):
        self.trader = trader
        self.config_loader = config_loader
        self.join_timeout = join_timeout
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._stop_event: Optional[threading.Event] = None
        self._interval: Optional[float] = None
        self._last_tick_at: Optional[datetime] = None
        self._last_result: Optional[TickResult] = None

    @property
    def running(self) -> bool:
        with self._lock:
            return self._thread is not None and self._thread.is_alive()

    def _resolve_interval(self, interval_minutes: Optional[float]) -> float:
        if interval_minutes:
            return float(interval_minutes)
        config = self.config_loader()
        if config is None:
            raise ConfigError("No trading configuration loaded")
        if config.poll_interval_minutes:
            return float(config.poll_interval_minutes)
        return poll_interval_minutes(config.timeframe)

    def start(self, interval_minutes: Optional[float] = None) -> float:
        """Reconcile, tick once now, then tick every interval. Returns the interval in minutes."""
        self._stop_timer()
        interval = self._resolve_interval(interval_minutes)
        self.trader.reconcile()
        self.tick()

        stop_event = threading.Event()
        thread = threading.Thread(
            target=self._run,
            args=(stop_event, interval * 60.0),
            name="ema-trader-scheduler",
            daemon=True,
        )
        with self._lock:
            self._thread = thread
            self._stop_event = stop_event
            self._interval = interval
        thread.start()
        logger.info("Scheduler started, ticking every %.2f minutes", interval)
        return interval

    def _run(self, stop_event: threading.Event, period_seconds: float) -> None:
        while not stop_event.wait(period_seconds):
            self.tick()

    def tick(self) -> TickResult:
        result = self.trader.run_tick()
        self._last_tick_at = datetime.now(timezone.utc)
        self._last_result = result
        return result

    def _stop_timer(self) -> bool:
        with self._lock:
            thread, event = self._thread, self._stop_event
            self._thread = None
            self._stop_event = None
        if event is None:
            return False
        event.set()
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self.join_timeout)
        return True

    def stop(self, close_open_trades: bool = False) -> None:
        """Stop ticking, reconcile, and optionally close every open trade of the symbol."""
        if self._stop_timer():
            logger.info("Scheduler stopped")
        self.trader.reconcile()
        if not close_open_trades:
            return
        config = self.config_loader()
        symbol = config.symbol if config is not None else None
        for trade in self.trader.trades.open_trades(symbol):
            try:
                self.trader.close_trade(trade.id, "bot stopped")
            except TradingBotError as e:
                logger.error("Could not close trade %s on stop: %s", trade.id, e)

    def restart(self) -> float:
        """Stop, then start again with the previous interval."""
        interval = self._interval
        self.stop()
        return self.start(interval)

    def status(self) -> BotStatus:
        config = self.config_loader()
        symbol = config.symbol if config is not None else None
        trades = self.trader.trades.list(symbol)
        return BotStatus(
            running=self.running,
            symbol=symbol,
            interval_minutes=self._interval,
            last_tick_at=self._last_tick_at,
            last_result=self._last_result,
            open_trades=sum(1 for t in trades if t.is_open),
            stats=summarize_trades(trades, today=datetime.now(timezone.utc).date()),
        )

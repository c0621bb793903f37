"""
Backtest engine: replays candles through the crossover strategy, one position at a time.
Entry cost is reserved from the balance while the position is open and returned on exit.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, List, Optional, Sequence

from ema_trader.analytics.metrics import max_drawdown, sharpe_ratio, win_rate
from ema_trader.core.errors import BrokerError, InsufficientData
from ema_trader.core.types import BacktestTrade, Candle, Position, Side, SignalKind
from ema_trader.risk.manager import RiskManager
from ema_trader.strategies.crossover import CrossoverStrategy, StrategyType

if TYPE_CHECKING:
    from ema_trader.execution.base import Broker

logger = logging.getLogger("ema_trader.backtest")


@dataclass
class BacktestResult:
    """Backtest output: ledger and aggregate statistics."""
    symbol: str
    strategy: str
    initial_balance: float
    final_balance: float
    total_profit: float
    total_profit_percent: float
    total_trades: int
    winning_trades: int
    losing_trades: int
    win_rate: float
    max_drawdown: float
    max_drawdown_percent: float
    sharpe_ratio: float
    signals_filtered: int = 0
    trades: List[BacktestTrade] = field(default_factory=list)
    equity_curve: List[float] = field(default_factory=list)
    timeframe: str = ""
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class BacktestEngine:
    """
    Walks candles from index slow_period to the end.
    Open position: exit on stop-loss, then take-profit, then opposite crossover.
    Flat: enter on an accepted signal if the sized position is affordable.
    """

    def __init__(
        self,
        strategy: CrossoverStrategy,
        risk_manager: RiskManager,
        initial_balance: float = 10000.0,
    ):
        self.strategy = strategy
        self.risk_manager = risk_manager
        self.initial_balance = initial_balance

    def run(self, candles: Sequence[Candle], symbol: str = "BTC-USDT") -> BacktestResult:
        """Run the simulation. Raises InsufficientData below slow_period + 2 candles."""
        if len(candles) < self.strategy.min_candles:
            raise InsufficientData(len(candles), self.strategy.min_candles, symbol)
        self.strategy.signals_filtered = 0
        frame = self.strategy.compute_indicators(candles)

        balance = self.initial_balance
        trades: List[BacktestTrade] = []
        position: Optional[Position] = None
        equity_curve = [balance]

        for i in range(self.strategy.slow_period, len(candles)):
            close = candles[i].close

            if position is not None:
                exit_price, reason = self._exit_for(position, frame, i, close)
                if exit_price is not None:
                    trade = self._close(position, candles, i, exit_price, reason, symbol)
                    balance += position.cost + trade.profit
                    trades.append(trade)
                    position = None
            else:
                position, balance = self._try_enter(frame, i, close, balance)

            reserved = position.cost if position is not None else 0.0
            equity_curve.append(balance + reserved)

        if position is not None:
            last = len(candles) - 1
            trade = self._close(position, candles, last, candles[last].close, "end_of_data", symbol)
            balance += position.cost + trade.profit
            trades.append(trade)
            equity_curve.append(balance)

        result = self._summarize(symbol, balance, trades, equity_curve)
        logger.info(
            "Backtest %s %s: %d trades, profit %.2f (%.2f%%), max drawdown %.2f%%",
            symbol, self.strategy.strategy.value, result.total_trades,
            result.total_profit, result.total_profit_percent, result.max_drawdown_percent,
        )
        return result

    def _exit_for(self, position: Position, frame, i: int, close: float) -> tuple[Optional[float], str]:
        if position.side is Side.BUY:
            if close <= position.stop_loss:
                return position.stop_loss, "stop_loss"
            if close >= position.take_profit:
                return position.take_profit, "take_profit"
        else:
            if close >= position.stop_loss:
                return position.stop_loss, "stop_loss"
            if close <= position.take_profit:
                return position.take_profit, "take_profit"
        if self.strategy.crossover_at(frame, i) is position.side.opposite:
            return close, "signal_reversal"
        return None, ""

    def _try_enter(self, frame, i: int, close: float, balance: float) -> tuple[Optional[Position], float]:
        signal = self.strategy.evaluate(frame, i)
        if signal.kind is SignalKind.NONE:
            return None, balance
        side = Side(signal.kind.value)
        sizing = self.risk_manager.size_entry(side, close, balance)
        if not sizing.allowed:
            logger.debug("Entry at index %d rejected: %s", i, sizing.reason)
            return None, balance
        position = Position(
            side=side,
            entry_price=close,
            entry_index=i,
            size=sizing.quantity,
            stop_loss=sizing.stop_loss,
            take_profit=sizing.take_profit,
        )
        return position, balance - position.cost

    @staticmethod
    def _close(
        position: Position,
        candles: Sequence[Candle],
        i: int,
        exit_price: float,
        reason: str,
        symbol: str,
    ) -> BacktestTrade:
        profit = position.profit_at(exit_price)
        return BacktestTrade(
            entry_date=candles[position.entry_index].timestamp,
            exit_date=candles[i].timestamp,
            symbol=symbol,
            side=position.side,
            entry_price=position.entry_price,
            exit_price=exit_price,
            size=position.size,
            profit=profit,
            profit_percent=profit / position.cost * 100.0,
            stop_loss=position.stop_loss,
            take_profit=position.take_profit,
            exit_reason=reason,
        )

    def _summarize(
        self,
        symbol: str,
        final_balance: float,
        trades: List[BacktestTrade],
        equity_curve: List[float],
    ) -> BacktestResult:
        pnls = [t.profit for t in trades]
        total_profit = sum(pnls)
        dd, dd_pct = max_drawdown(equity_curve)
        return BacktestResult(
            symbol=symbol,
            strategy=self.strategy.strategy.value,
            initial_balance=self.initial_balance,
            final_balance=final_balance,
            total_profit=total_profit,
            total_profit_percent=total_profit / self.initial_balance * 100.0 if self.initial_balance else 0.0,
            total_trades=len(trades),
            winning_trades=sum(1 for p in pnls if p > 0),
            losing_trades=sum(1 for p in pnls if p < 0),
            win_rate=win_rate(pnls),
            max_drawdown=dd,
            max_drawdown_percent=dd_pct,
            sharpe_ratio=sharpe_ratio([t.profit_percent for t in trades]),
            signals_filtered=self.strategy.signals_filtered,
            trades=trades,
            equity_curve=equity_curve,
        )


def run_backtest(
    broker: "Broker",
    symbol: str,
    timeframe: str,
    start: datetime,
    end: datetime,
    fast_period: int = 9,
    slow_period: int = 21,
    risk_percent: float = 1.5,
    stop_loss_pips: float = 30.0,
    take_profit_pips: float = 75.0,
    initial_balance: float = 10000.0,
    allow_buy: bool = True,
    allow_sell: bool = True,
    strategy: "str | StrategyType" = StrategyType.EMA_RSI,
    rsi_period: int = 14,
    rsi_overbought: float = 70.0,
    rsi_oversold: float = 30.0,
) -> BacktestResult:
    """Fetch candles for [start, end] from the broker and run a backtest over them."""
    crossover = CrossoverStrategy(
        fast_period=fast_period,
        slow_period=slow_period,
        strategy=strategy,
        rsi_period=rsi_period,
        rsi_overbought=rsi_overbought,
        rsi_oversold=rsi_oversold,
        allow_buy=allow_buy,
        allow_sell=allow_sell,
    )
    try:
        candles = broker.get_klines(symbol, timeframe, int(start.timestamp()), int(end.timestamp()))
    except BrokerError as e:
        raise BrokerError(
            f"Failed to fetch data for {symbol} from {broker.get_name()}: {e}", code=e.code
        ) from e
    engine = BacktestEngine(
        strategy=crossover,
        risk_manager=RiskManager(risk_percent, stop_loss_pips, take_profit_pips),
        initial_balance=initial_balance,
    )
    result = engine.run(candles, symbol=symbol)
    result.timeframe = timeframe
    result.start_date = start
    result.end_date = end
    return result

"""
Risk sizing: size = (balance * risk%) / |entry - stop|, capped at what the balance can buy.
Stop-loss/take-profit prices from pip offsets (pips / 10000 of entry price).
"""

from __future__ import annotations
import logging
from dataclasses import dataclass

from ema_trader.core.errors import InvalidSizing
from ema_trader.core.types import Side

logger = logging.getLogger("ema_trader.risk")

PIPS_PER_UNIT = 10000.0


def position_size(balance: float, risk_percent: float, entry_price: float, stop_price: float) -> float:
    """Risked amount over stop distance, clamped to [0, balance / entry_price]. 0 for a degenerate stop."""
    if entry_price <= 0 or balance <= 0:
        return 0.0
    risk_amount = balance * (risk_percent / 100.0)
    price_diff = abs(entry_price - stop_price)
    if price_diff == 0:
        return 0.0
    size = risk_amount / price_diff
    return max(0.0, min(size, balance / entry_price))


def protective_prices(
    side: Side,
    entry_price: float,
    stop_loss_pips: float,
    take_profit_pips: float,
) -> tuple[float, float]:
    """Return (stop_loss, take_profit) for a position entered at entry_price."""
    sl = stop_loss_pips / PIPS_PER_UNIT
    tp = take_profit_pips / PIPS_PER_UNIT
    if side is Side.BUY:
        return entry_price * (1 - sl), entry_price * (1 + tp)
    return entry_price * (1 + sl), entry_price * (1 - tp)


def spread_pips(best_ask: float, best_bid: float) -> float:
    """(ask - bid) / mid expressed in pips."""
    mid = (best_ask + best_bid) / 2.0
    if mid <= 0:
        return float("inf")
    return (best_ask - best_bid) / mid * PIPS_PER_UNIT


@dataclass
class RiskResult:
    """Result of risk check: allowed or rejected + reason."""
    allowed: bool
    quantity: float = 0.0
    stop_loss: float = 0.0
    take_profit: float = 0.0
    reason: str = ""

    def require(self) -> float:
        """Quantity, or InvalidSizing if the entry was rejected."""
        if not self.allowed:
            raise InvalidSizing(self.reason)
        return self.quantity


class RiskManager:
    """
    Percent-of-balance risk per trade with pip-based stop and target.
    Shared by the backtest and the live loop so both size identically.
    """

    def __init__(self, risk_percent: float, stop_loss_pips: float, take_profit_pips: float):
        if risk_percent < 0:
            raise ValueError("risk_percent must be >= 0")
        self.risk_percent = risk_percent
        self.stop_loss_pips = stop_loss_pips
        self.take_profit_pips = take_profit_pips

    def protective_prices(self, side: Side, entry_price: float) -> tuple[float, float]:
        return protective_prices(side, entry_price, self.stop_loss_pips, self.take_profit_pips)

    def size_entry(self, side: Side, entry_price: float, balance: float) -> RiskResult:
        """Validate an entry and compute its quantity, stop and target."""
        stop, target = self.protective_prices(side, entry_price)
        qty = position_size(balance, self.risk_percent, entry_price, stop)
        if qty <= 0:
            return RiskResult(allowed=False, stop_loss=stop, take_profit=target,
                              reason=f"zero size (balance={balance:.8f}, entry={entry_price}, stop={stop})")
        if not self.can_afford(balance, entry_price, qty):
            return RiskResult(allowed=False, quantity=qty, stop_loss=stop, take_profit=target,
                              reason=f"cost {entry_price * qty:.8f} exceeds balance {balance:.8f}")
        return RiskResult(allowed=True, quantity=qty, stop_loss=stop, take_profit=target)

    @staticmethod
    def can_afford(balance: float, entry_price: float, quantity: float) -> bool:
        # Tolerate float rounding from the balance / entry cap.
        return balance >= entry_price * quantity * (1 - 1e-12)

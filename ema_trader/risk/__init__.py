"""Risk management: position sizing and pip-offset protective prices."""

from ema_trader.risk.manager import (
    RiskManager,
    RiskResult,
    position_size,
    protective_prices,
    spread_pips,
)

__all__ = ["RiskManager", "RiskResult", "position_size", "protective_prices", "spread_pips"]

"""Binance spot symbol filters: lot step, price tick, minimum notional."""

from __future__ import annotations
import math
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class SymbolFilters:
    min_qty: float = 0.0
    lot_step: float = 1e-8
    price_tick: float = 1e-8
    min_notional: float = 0.0

    @classmethod
    def from_symbol_info(cls, symbol_info: Optional[dict]) -> "SymbolFilters":
        """Read LOT_SIZE, PRICE_FILTER and NOTIONAL/MIN_NOTIONAL; defaults when info is missing."""
        if not symbol_info:
            return cls()
        values = {}
        for f in symbol_info.get("filters", []):
            kind = f.get("filterType")
            if kind == "LOT_SIZE":
                values["min_qty"] = float(f.get("minQty", 0))
                values["lot_step"] = float(f.get("stepSize", 0)) or cls.lot_step
            elif kind == "PRICE_FILTER":
                values["price_tick"] = float(f.get("tickSize", 0)) or cls.price_tick
            elif kind in ("NOTIONAL", "MIN_NOTIONAL"):
                values["min_notional"] = float(f.get("minNotional", 0))
        return cls(**values)

    def quantity(self, qty: float) -> float:
        """Floor to the lot step; 0 when below the minimum quantity."""
        if qty <= 0:
            return 0.0
        # 0.3 / 0.1 must not floor to 2
        steps = math.floor(qty / self.lot_step + 1e-9)
        rounded = round(steps * self.lot_step, 8)
        return rounded if rounded >= self.min_qty else 0.0

    def price(self, price: float) -> float:
        """Nearest tick."""
        return round(round(price / self.price_tick) * self.price_tick, 8)

    def meets_notional(self, qty: float, price: float) -> bool:
        return qty * price >= self.min_notional

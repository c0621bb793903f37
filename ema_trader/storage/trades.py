"""
Trade persistence. The live loop only issues create/save intents; repositories own the records.
"""

from __future__ import annotations
import json
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import asdict, fields, replace
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from ema_trader.core.errors import TradeStateError
from ema_trader.core.types import Side, Trade, TradeStatus

logger = logging.getLogger("ema_trader.storage")

_DATETIME_FIELDS = ("opened_at", "closed_at")


def trade_to_dict(trade: Trade) -> Dict[str, Any]:
    data = asdict(trade)
    data["side"] = trade.side.value
    data["status"] = trade.status.value
    for name in _DATETIME_FIELDS:
        value = data[name]
        data[name] = value.isoformat() if value is not None else None
    return data


def trade_from_dict(data: Dict[str, Any]) -> Trade:
    known = {f.name for f in fields(Trade)}
    values = {k: v for k, v in data.items() if k in known}
    values["side"] = Side(values["side"])
    values["status"] = TradeStatus(values.get("status", TradeStatus.UNKNOWN.value))
    for name in _DATETIME_FIELDS:
        if values.get(name):
            values[name] = datetime.fromisoformat(values[name])
    return Trade(**values)


class TradeRepository(ABC):
    """Create/save/query trades. Returned trades are copies; call save() to persist changes."""

    @abstractmethod
    def create(self, trade: Trade) -> Trade:
        """Persist a new trade and return it with an id."""

    @abstractmethod
    def save(self, trade: Trade) -> Trade:
        """Overwrite an existing trade."""

    @abstractmethod
    def get(self, trade_id: str) -> Optional[Trade]:
        """Trade by id, or None."""

    @abstractmethod
    def list(self, symbol: Optional[str] = None) -> List[Trade]:
        """All trades, oldest first, optionally for one symbol."""

    def open_trades(self, symbol: Optional[str] = None) -> List[Trade]:
        """Trades not yet closed or cancelled."""
        return [t for t in self.list(symbol) if t.is_open]


class InMemoryTradeRepository(TradeRepository):
    """Process-local store."""

    def __init__(self) -> None:
        self._trades: Dict[str, Trade] = {}
        self._lock = threading.Lock()

    def create(self, trade: Trade) -> Trade:
        with self._lock:
            stored = replace(trade, id=trade.id or uuid.uuid4().hex)
            if stored.id in self._trades:
                raise TradeStateError(f"Trade {stored.id} already exists")
            self._trades[stored.id] = stored
            self._flush()
            return replace(stored)

    def save(self, trade: Trade) -> Trade:
        with self._lock:
            if trade.id not in self._trades:
                raise TradeStateError(f"Trade {trade.id} not found")
            self._trades[trade.id] = replace(trade)
            self._flush()
            return replace(trade)

    def get(self, trade_id: str) -> Optional[Trade]:
        with self._lock:
            trade = self._trades.get(trade_id)
            return replace(trade) if trade else None

    def list(self, symbol: Optional[str] = None) -> List[Trade]:
        with self._lock:
            trades = [replace(t) for t in self._trades.values()]
        if symbol:
            trades = [t for t in trades if t.symbol == symbol]
        return sorted(trades, key=lambda t: t.opened_at)

    def _flush(self) -> None:
        pass


class JsonTradeRepository(InMemoryTradeRepository):
    """In-memory store mirrored to a JSON file after every write."""

    def __init__(self, path: Path) -> None:
        super().__init__()
        self.path = Path(path)
        if self.path.exists():
            with open(self.path, "r", encoding="utf-8") as f:
                for row in json.load(f):
                    trade = trade_from_dict(row)
                    self._trades[trade.id] = trade
            logger.info("Loaded %d trades from %s", len(self._trades), self.path)

    def _flush(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump([trade_to_dict(t) for t in self._trades.values()], f, indent=2)
        tmp.replace(self.path)

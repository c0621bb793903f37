"""
Binance spot broker with retry and rate-limit handling.

Symbols are accepted as 'BTC-USDT' and sent as 'BTCUSDT'. Order ids are
'BTC-USDT:<orderId>' because Binance needs the symbol to look an order up.
"""

from __future__ import annotations
import functools
import logging
import time
from typing import Dict, List, Optional

from binance.client import Client
from binance.exceptions import BinanceAPIException, BinanceRequestException
from requests.exceptions import RequestException

from ema_trader.core.errors import BrokerError
from ema_trader.core.types import Account, Candle, Order, Side, Ticker, TradeStatus
from ema_trader.execution.base import Broker, format_amount
from ema_trader.utils.exchange_filters import SymbolFilters
from ema_trader.utils.timeframes import to_binance_interval

logger = logging.getLogger("ema_trader.execution.binance")

_STATUS_MAP = {
    "NEW": TradeStatus.PENDING.value,
    "PARTIALLY_FILLED": TradeStatus.PENDING.value,
    "FILLED": TradeStatus.FILLED.value,
    "CANCELED": TradeStatus.CANCELLED.value,
    "PENDING_CANCEL": TradeStatus.CANCELLED.value,
    "EXPIRED": TradeStatus.CANCELLED.value,
    "EXPIRED_IN_MATCH": TradeStatus.CANCELLED.value,
    "REJECTED": TradeStatus.CANCELLED.value,
}
# Limit price of a stop-limit order sits this fraction beyond its trigger.
STOP_LIMIT_BUFFER = 0.001


def retry_on_rate_limit(max_retries: int = 3, base_delay: float = 1.0):
    """Decorator: retry on 429 or 418 (rate limit); map client errors to BrokerError."""
    def decorator(f):
        @functools.wraps(f)
        def wrapped(*args, **kwargs):
            for attempt in range(max_retries):
                try:
                    return f(*args, **kwargs)
                except BinanceAPIException as e:
                    if e.status_code in (429, 418) and attempt < max_retries - 1:
                        delay = base_delay * (2 ** attempt)
                        logger.warning("Rate limited, retry in %.1fs (attempt %d)", delay, attempt + 1)
                        time.sleep(delay)
                        continue
                    raise BrokerError(f"Binance API error [{e.code}]: {e.message}", code=e.code) from e
                except (BinanceRequestException, RequestException) as e:
                    raise BrokerError(f"Binance request failed: {e}") from e
            raise BrokerError(f"Binance rate limit: gave up after {max_retries} attempts")
        return wrapped
    return decorator


def to_exchange_symbol(symbol: str) -> str:
    return symbol.replace("-", "").replace("_", "").replace("/", "").upper()


def _split_order_id(order_id: str) -> tuple[str, int]:
    symbol, sep, raw = order_id.partition(":")
    if not sep or not raw.isdigit():
        raise BrokerError(f"Malformed order id: {order_id!r}")
    return symbol, int(raw)


class BinanceSpotBroker(Broker):
    """Binance spot client (testnet and live)."""

    def __init__(self, api_key: str, api_secret: str, testnet: bool = True):
        self._client = Client(api_key, api_secret, testnet=testnet)
        logger.info("Binance spot: using %s", "TESTNET" if testnet else "LIVE")
        self._symbol_info_cache: Dict[str, Optional[dict]] = {}

    def get_name(self) -> str:
        return "Binance"

    def is_symbol_supported(self, symbol: str) -> bool:
        try:
            return self._symbol_info(symbol) is not None
        except BrokerError as e:
            logger.warning("Symbol lookup failed for %s: %s", symbol, e)
            return False

    @retry_on_rate_limit(max_retries=2)
    def _symbol_info(self, symbol: str) -> Optional[dict]:
        key = to_exchange_symbol(symbol)
        if key not in self._symbol_info_cache:
            self._symbol_info_cache[key] = self._client.get_symbol_info(key)
        return self._symbol_info_cache[key]

    def _filters(self, symbol: str) -> SymbolFilters:
        return SymbolFilters.from_symbol_info(self._symbol_info(symbol))

    def _format_size(self, symbol: str, size: str, price: Optional[float] = None) -> str:
        filters = self._filters(symbol)
        qty = filters.quantity(float(size))
        if qty <= 0:
            raise BrokerError(f"Size {size} below minimum quantity {filters.min_qty} for {symbol}")
        if price is not None and not filters.meets_notional(qty, price):
            raise BrokerError(f"Order value {qty * price:.8f} below minimum notional {filters.min_notional} for {symbol}")
        return format_amount(qty)

    def _format_price(self, symbol: str, price: float) -> str:
        return format_amount(self._filters(symbol).price(price))

    @retry_on_rate_limit(max_retries=3, base_delay=1.0)
    def get_accounts(self, currency: Optional[str] = None) -> List[Account]:
        balances = self._client.get_account().get("balances", [])
        accounts = []
        for b in balances:
            asset = b.get("asset", "")
            if currency and asset != currency.upper():
                continue
            free, locked = float(b.get("free", 0)), float(b.get("locked", 0))
            accounts.append(Account(
                id=asset,
                currency=asset,
                type="spot",
                balance=format_amount(free + locked),
                available=b.get("free", "0"),
                holds=b.get("locked", "0"),
            ))
        return accounts

    @retry_on_rate_limit(max_retries=3, base_delay=1.0)
    def get_balance(self, currency: str) -> float:
        res = self._client.get_asset_balance(asset=currency.upper())
        return float(res.get("free", 0)) if res else 0.0

    @retry_on_rate_limit(max_retries=3, base_delay=1.0)
    def get_klines(
        self,
        symbol: str,
        timeframe: str,
        start_at: Optional[int] = None,
        end_at: Optional[int] = None,
    ) -> List[Candle]:
        interval = to_binance_interval(timeframe)
        key = to_exchange_symbol(symbol)
        if start_at is not None:
            raw = self._client.get_historical_klines(
                key, interval, start_at * 1000, end_at * 1000 if end_at is not None else None
            )
        else:
            raw = self._client.get_klines(symbol=key, interval=interval, limit=300)
        return [
            Candle(
                time=int(k[0]) // 1000,
                open=float(k[1]),
                high=float(k[2]),
                low=float(k[3]),
                close=float(k[4]),
                volume=float(k[5]),
            )
            for k in raw
        ]

    @retry_on_rate_limit(max_retries=3, base_delay=1.0)
    def get_ticker(self, symbol: str) -> Ticker:
        key = to_exchange_symbol(symbol)
        book = self._client.get_orderbook_ticker(symbol=key)
        last = self._client.get_symbol_ticker(symbol=key)
        return Ticker(price=last["price"], best_ask=book["askPrice"], best_bid=book["bidPrice"])

    def _to_order(self, symbol: str, res: dict, side: Optional[Side] = None) -> Order:
        return Order(
            id=f"{symbol}:{res.get('orderId')}",
            symbol=symbol,
            side=side or Side(str(res.get("side", "BUY")).lower()),
            type=str(res.get("type", "")).lower(),
            status=_STATUS_MAP.get(res.get("status", ""), TradeStatus.UNKNOWN.value),
            size=res.get("origQty"),
            price=res.get("price") if float(res.get("price") or 0) > 0 else None,
            funds=res.get("origQuoteOrderQty"),
            filled_size=res.get("executedQty"),
            filled_value=res.get("cummulativeQuoteQty"),
            created_at=res.get("transactTime") or res.get("time"),
        )

    @retry_on_rate_limit(max_retries=2)
    def place_market_order(
        self,
        symbol: str,
        side: Side,
        size: Optional[str] = None,
        funds: Optional[str] = None,
    ) -> Order:
        params = {"symbol": to_exchange_symbol(symbol), "side": side.value.upper(), "type": "MARKET"}
        if size is not None:
            params["quantity"] = self._format_size(symbol, size)
        elif funds is not None:
            params["quoteOrderQty"] = funds
        else:
            raise BrokerError("Market order needs size or funds")
        res = self._client.create_order(**params)
        logger.info("Market %s %s size=%s funds=%s -> %s", side.value, symbol, size, funds, res.get("orderId"))
        return self._to_order(symbol, res, side)

    @retry_on_rate_limit(max_retries=2)
    def place_limit_order(self, symbol: str, side: Side, price: str, size: str) -> Order:
        res = self._client.create_order(
            symbol=to_exchange_symbol(symbol),
            side=side.value.upper(),
            type="LIMIT",
            timeInForce="GTC",
            quantity=self._format_size(symbol, size, float(price)),
            price=self._format_price(symbol, float(price)),
        )
        return self._to_order(symbol, res, side)

    @retry_on_rate_limit(max_retries=2)
    def cancel_order(self, order_id: str) -> None:
        symbol, raw_id = _split_order_id(order_id)
        self._client.cancel_order(symbol=to_exchange_symbol(symbol), orderId=raw_id)
        logger.info("Cancelled order %s", order_id)

    @retry_on_rate_limit(max_retries=3, base_delay=1.0)
    def get_order(self, order_id: str) -> Order:
        symbol, raw_id = _split_order_id(order_id)
        res = self._client.get_order(symbol=to_exchange_symbol(symbol), orderId=raw_id)
        return self._to_order(symbol, res)

    @retry_on_rate_limit(max_retries=3, base_delay=1.0)
    def get_open_orders(self, symbol: Optional[str] = None) -> List[Order]:
        if symbol:
            raw = self._client.get_open_orders(symbol=to_exchange_symbol(symbol))
            return [self._to_order(symbol, o) for o in raw]
        return [self._to_order(o["symbol"], o) for o in self._client.get_open_orders()]

    @retry_on_rate_limit(max_retries=2)
    def place_stop_loss_order(self, symbol: str, side: Side, stop_price: str, size: str) -> Order:
        close_side = side.opposite
        stop = float(stop_price)
        limit = stop * (1 - STOP_LIMIT_BUFFER) if close_side is Side.SELL else stop * (1 + STOP_LIMIT_BUFFER)
        res = self._client.create_order(
            symbol=to_exchange_symbol(symbol),
            side=close_side.value.upper(),
            type="STOP_LOSS_LIMIT",
            timeInForce="GTC",
            quantity=self._format_size(symbol, size, limit),
            stopPrice=self._format_price(symbol, stop),
            price=self._format_price(symbol, limit),
        )
        return self._to_order(symbol, res, close_side)

    @retry_on_rate_limit(max_retries=2)
    def place_take_profit_order(self, symbol: str, side: Side, take_profit_price: str, size: str) -> Order:
        close_side = side.opposite
        res = self._client.create_order(
            symbol=to_exchange_symbol(symbol),
            side=close_side.value.upper(),
            type="LIMIT",
            timeInForce="GTC",
            quantity=self._format_size(symbol, size, float(take_profit_price)),
            price=self._format_price(symbol, float(take_profit_price)),
        )
        return self._to_order(symbol, res, close_side)

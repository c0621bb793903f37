"""
Load configuration from config.yaml and .env. API keys only from env.
"""

from __future__ import annotations
import os
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv

from ema_trader.core.errors import ConfigError


def _env_path(project_root: Optional[Path] = None) -> Path:
    root = project_root or Path(__file__).resolve().parents[2]
    return root / ".env"


def load_dotenv_if_exists(project_root: Optional[Path] = None) -> None:
    """Load .env from project root if present."""
    path = _env_path(project_root)
    if path.exists():
        load_dotenv(path)


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping at top level")
    return data


def load_config(config_path: Optional[Path] = None, project_root: Optional[Path] = None) -> "Config":
    """Load config.yaml and overlay with env. Returns Config."""
    load_dotenv_if_exists(project_root)
    root = project_root or Path(__file__).resolve().parents[2]
    path = config_path or root / "config.yaml"
    data = _read_yaml(Path(path))

    # Env overrides (for secrets and overrides)
    def env(key: str, default: str = "") -> str:
        return os.getenv(key, str(default)).strip()

    def env_bool(key: str, default: bool = False) -> bool:
        return os.getenv(key, str(default)).lower() in ("true", "1", "yes")

    def env_int(key: str, default: int = 0) -> int:
        try:
            return int(os.getenv(key, str(default)))
        except ValueError:
            return default

    def env_float(key: str, default: float = 0.0) -> float:
        try:
            return float(os.getenv(key, str(default)))
        except ValueError:
            return default

    api = data.get("api", {})
    strategy = data.get("strategy", {})
    risk = data.get("risk", {})
    trading = data.get("trading", {})
    telegram = data.get("telegram", {})
    logging_cfg = data.get("logging", {})
    backtest = data.get("backtest", {})

    poll = trading.get("poll_interval_minutes")
    poll_env = env("POLL_INTERVAL_MINUTES")
    if poll_env:
        poll = env_float("POLL_INTERVAL_MINUTES", 0.0) or None

    return Config(
        # API (env only; never put keys in config.yaml)
        binance_api_key=env("BINANCE_API_KEY"),
        binance_api_secret=env("BINANCE_API_SECRET"),
        use_testnet=env_bool("USE_TESTNET", api.get("use_testnet", True)),
        symbol=env("SYMBOL", strategy.get("symbol", "BTC-USDT")).upper(),
        timeframe=env("TIMEFRAME", strategy.get("timeframe", "15min")),
        # Strategy
        strategy=env("STRATEGY", strategy.get("strategy", "ema-rsi")).lower(),
        fast_period=env_int("FAST_PERIOD", strategy.get("fast_period", 9)),
        slow_period=env_int("SLOW_PERIOD", strategy.get("slow_period", 21)),
        rsi_period=env_int("RSI_PERIOD", strategy.get("rsi_period", 14)),
        rsi_overbought=env_float("RSI_OVERBOUGHT", strategy.get("rsi_overbought", 70.0)),
        rsi_oversold=env_float("RSI_OVERSOLD", strategy.get("rsi_oversold", 30.0)),
        allow_buy=env_bool("ALLOW_BUY", strategy.get("allow_buy", True)),
        allow_sell=env_bool("ALLOW_SELL", strategy.get("allow_sell", True)),
        # Risk
        risk_percent=env_float("RISK_PERCENT", risk.get("risk_percent", 1.5)),
        stop_loss_pips=env_float("STOP_LOSS_PIPS", risk.get("stop_loss_pips", 30.0)),
        take_profit_pips=env_float("TAKE_PROFIT_PIPS", risk.get("take_profit_pips", 75.0)),
        max_spread_pips=env_float("MAX_SPREAD_PIPS", risk.get("max_spread_pips", 20.0)),
        # Live trading
        active=env_bool("TRADING_ACTIVE", trading.get("active", True)),
        poll_interval_minutes=poll,
        quote_currency=env("QUOTE_CURRENCY", trading.get("quote_currency", "USDT")).upper(),
        trades_file=Path(trading.get("trades_file", "data/trades.json")),
        # Telegram
        telegram_bot_token=env("TELEGRAM_BOT_TOKEN", telegram.get("bot_token", "")),
        telegram_chat_id=env("TELEGRAM_CHAT_ID", telegram.get("chat_id", "")),
        # Logging
        log_level=logging_cfg.get("level", "INFO"),
        log_dir=Path(logging_cfg.get("log_dir", "logs")),
        log_file=logging_cfg.get("log_file", "ema_trader.log"),
        # Backtest
        backtest_start=backtest.get("start_date"),
        backtest_end=backtest.get("end_date"),
        backtest_initial_balance=float(backtest.get("initial_balance", 10000.0)),
    )


class Config:
    """Unified configuration. Treated as immutable after load."""

    __slots__ = (
        "binance_api_key", "binance_api_secret", "use_testnet", "symbol", "timeframe",
        "strategy", "fast_period", "slow_period", "rsi_period", "rsi_overbought", "rsi_oversold",
        "allow_buy", "allow_sell",
        "risk_percent", "stop_loss_pips", "take_profit_pips", "max_spread_pips",
        "active", "poll_interval_minutes", "quote_currency", "trades_file",
        "telegram_bot_token", "telegram_chat_id",
        "log_level", "log_dir", "log_file",
        "backtest_start", "backtest_end", "backtest_initial_balance",
    )

    def __init__(
        self,
        binance_api_key: str = "",
        binance_api_secret: str = "",
        use_testnet: bool = True,
        symbol: str = "BTC-USDT",
        timeframe: str = "15min",
        strategy: str = "ema-rsi",
        fast_period: int = 9,
        slow_period: int = 21,
        rsi_period: int = 14,
        rsi_overbought: float = 70.0,
        rsi_oversold: float = 30.0,
        allow_buy: bool = True,
        allow_sell: bool = True,
        risk_percent: float = 1.5,
        stop_loss_pips: float = 30.0,
        take_profit_pips: float = 75.0,
        max_spread_pips: float = 20.0,
        active: bool = True,
        poll_interval_minutes: Optional[float] = None,
        quote_currency: str = "USDT",
        trades_file: Optional[Path] = None,
        telegram_bot_token: str = "",
        telegram_chat_id: str = "",
        log_level: str = "INFO",
        log_dir: Optional[Path] = None,
        log_file: str = "ema_trader.log",
        backtest_start: Optional[str] = None,
        backtest_end: Optional[str] = None,
        backtest_initial_balance: float = 10000.0,
    ):
        if fast_period <= 0 or slow_period <= 0:
            raise ConfigError("fast_period and slow_period must be positive")
        if fast_period >= slow_period:
            raise ConfigError(f"fast_period ({fast_period}) must be < slow_period ({slow_period})")
        self.binance_api_key = binance_api_key
        self.binance_api_secret = binance_api_secret
        self.use_testnet = use_testnet
        self.symbol = symbol
        self.timeframe = timeframe
        self.strategy = strategy
        self.fast_period = fast_period
        self.slow_period = slow_period
        self.rsi_period = rsi_period
        self.rsi_overbought = rsi_overbought
        self.rsi_oversold = rsi_oversold
        self.allow_buy = allow_buy
        self.allow_sell = allow_sell
        self.risk_percent = risk_percent
        self.stop_loss_pips = stop_loss_pips
        self.take_profit_pips = take_profit_pips
        self.max_spread_pips = max_spread_pips
        self.active = active
        self.poll_interval_minutes = poll_interval_minutes
        self.quote_currency = quote_currency
        self.trades_file = Path(trades_file) if trades_file else Path("data/trades.json")
        self.telegram_bot_token = telegram_bot_token
        self.telegram_chat_id = telegram_chat_id
        self.log_level = log_level
        self.log_dir = Path(log_dir) if log_dir else Path("logs")
        self.log_file = log_file
        self.backtest_start = backtest_start
        self.backtest_end = backtest_end
        self.backtest_initial_balance = backtest_initial_balance

    def replace(self, **changes: Any) -> "Config":
        """Copy with some fields changed."""
        values = {name: getattr(self, name) for name in self.__slots__}
        unknown = set(changes) - set(values)
        if unknown:
            raise ConfigError(f"Unknown config fields: {sorted(unknown)}")
        values.update(changes)
        return Config(**values)

"""Unit tests for core.config."""

import pytest

from ema_trader.core.config import Config, load_config
from ema_trader.core.errors import ConfigError

ENV_KEYS = (
    "BINANCE_API_KEY", "BINANCE_API_SECRET", "USE_TESTNET", "SYMBOL", "TIMEFRAME", "STRATEGY",
    "FAST_PERIOD", "SLOW_PERIOD", "RISK_PERCENT", "STOP_LOSS_PIPS", "TAKE_PROFIT_PIPS",
    "MAX_SPREAD_PIPS", "TRADING_ACTIVE", "POLL_INTERVAL_MINUTES", "ALLOW_BUY", "ALLOW_SELL",
)

YAML = """
strategy:
  symbol: eth-usdt
  timeframe: 1hour
  fast_period: 5
  slow_period: 20
  strategy: ema-only
risk:
  risk_percent: 2.0
  stop_loss_pips: 40
trading:
  active: false
  poll_interval_minutes: 3
backtest:
  initial_balance: 500
"""


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    # setenv first so anything load_dotenv adds is rolled back after the test
    for key in ENV_KEYS:
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)


def test_defaults_without_files(tmp_path):
    config = load_config(tmp_path / "missing.yaml", tmp_path)
    assert config.symbol == "BTC-USDT"
    assert config.fast_period == 9
    assert config.slow_period == 21
    assert config.strategy == "ema-rsi"
    assert config.risk_percent == 1.5
    assert config.stop_loss_pips == 30.0
    assert config.take_profit_pips == 75.0
    assert config.active is True
    assert config.poll_interval_minutes is None


def test_yaml_values(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(YAML)
    config = load_config(path, tmp_path)
    assert config.symbol == "ETH-USDT"
    assert config.timeframe == "1hour"
    assert (config.fast_period, config.slow_period) == (5, 20)
    assert config.strategy == "ema-only"
    assert config.risk_percent == 2.0
    assert config.stop_loss_pips == 40.0
    assert config.active is False
    assert config.poll_interval_minutes == 3
    assert config.backtest_initial_balance == 500.0


def test_env_overrides_yaml(tmp_path, monkeypatch):
    path = tmp_path / "config.yaml"
    path.write_text(YAML)
    monkeypatch.setenv("SYMBOL", "sol-usdt")
    monkeypatch.setenv("RISK_PERCENT", "0.5")
    monkeypatch.setenv("TRADING_ACTIVE", "true")
    monkeypatch.setenv("FAST_PERIOD", "not-a-number")
    config = load_config(path, tmp_path)
    assert config.symbol == "SOL-USDT"
    assert config.risk_percent == 0.5
    assert config.active is True
    assert config.fast_period == 5


def test_dotenv_file_loaded(tmp_path, monkeypatch):
    (tmp_path / ".env").write_text("BINANCE_API_KEY=abc\nBINANCE_API_SECRET=def\n")
    config = load_config(tmp_path / "config.yaml", tmp_path)
    assert config.binance_api_key == "abc"
    assert config.binance_api_secret == "def"


def test_invalid_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("strategy: [unclosed")
    with pytest.raises(ConfigError):
        load_config(path, tmp_path)


def test_fast_must_be_below_slow():
    with pytest.raises(ConfigError):
        Config(fast_period=21, slow_period=21)


def test_replace():
    config = Config()
    changed = config.replace(symbol="ETH-USDT")
    assert changed.symbol == "ETH-USDT"
    assert config.symbol == "BTC-USDT"
    with pytest.raises(ConfigError):
        config.replace(leverage=5)

"""Timeframe strings ('5m', '15min', '1hour', '1d') to minutes, intervals and poll periods."""

import re

_UNIT_MINUTES = {
    "m": 1, "min": 1,
    "h": 60, "hour": 60,
    "d": 60 * 24, "day": 60 * 24,
    "w": 60 * 24 * 7, "week": 60 * 24 * 7,
}
_BINANCE_UNITS = {1: "m", 60: "h", 60 * 24: "d", 60 * 24 * 7: "w"}
_PATTERN = re.compile(r"^(\d+)\s*([a-z]+)$")

MIN_POLL_MINUTES = 1.0
MAX_POLL_MINUTES = 30.0


def _parse(tf: str) -> tuple[int, int]:
    match = _PATTERN.match(tf.strip().lower())
    if not match or match.group(2) not in _UNIT_MINUTES:
        raise ValueError(f"Unsupported timeframe: {tf}")
    return int(match.group(1)), _UNIT_MINUTES[match.group(2)]


def timeframe_minutes(tf: str) -> int:
    """Convert a timeframe such as '5m', '15min', '4hour' or '1d' to minutes."""
    count, unit = _parse(tf)
    return count * unit


def to_binance_interval(tf: str) -> str:
    """'15min' -> '15m', '4hour' -> '4h', '1day' -> '1d'."""
    count, unit = _parse(tf)
    return f"{count}{_BINANCE_UNITS[unit]}"


def poll_interval_minutes(tf: str) -> float:
    """Live loop period: an eighth of the candle length, kept within 1..30 minutes."""
    return max(MIN_POLL_MINUTES, min(MAX_POLL_MINUTES, timeframe_minutes(tf) / 8.0))

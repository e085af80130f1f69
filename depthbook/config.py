"""
Runtime configuration.

Defaults follow Binance spot endpoints and the exchange's documented
snapshot/diff procedure. Every value can be overridden via a DEPTHBOOK_*
environment variable; unparseable values fall back to the default.
"""

from __future__ import annotations

import os
from dataclasses import dataclass


def _env_str(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip()


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


# Binance spot endpoints
WS_BASE = "wss://stream.binance.com:443/stream"
SNAPSHOT_URL = "https://api.binance.com/api/v3/depth"

SNAPSHOT_LIMIT = 1000
SNAPSHOT_TIMEOUT_S = 10.0

# Fixed-interval retries, no growth and no jitter
SNAPSHOT_RETRY_DELAY_S = 0.3
SNAPSHOT_MAX_ATTEMPTS = 6  # ~2s total
RECONNECT_DELAY_S = 1.0

# Ping interval; a missing pong closes a half-open socket so reconnect fires
WS_HEARTBEAT_S = 20.0

TRADE_LOG_SIZE = 50
DIFF_BUFFER_MAX = 10_000
VIEW_INTERVAL_MS = 100  # Push to UI every 100ms

DEFAULT_SYMBOL = "BTCUSDT"

# Cycled by the UI symbol keys
SYMBOLS = ("BTCUSDT", "ETHUSDT", "BNBUSDT", "SOLUSDT")


@dataclass(frozen=True)
class Settings:
    ws_base: str = WS_BASE
    snapshot_url: str = SNAPSHOT_URL
    snapshot_limit: int = SNAPSHOT_LIMIT
    snapshot_timeout_s: float = SNAPSHOT_TIMEOUT_S
    snapshot_retry_delay_s: float = SNAPSHOT_RETRY_DELAY_S
    snapshot_max_attempts: int = SNAPSHOT_MAX_ATTEMPTS
    reconnect_delay_s: float = RECONNECT_DELAY_S
    ws_heartbeat_s: float = WS_HEARTBEAT_S
    view_interval_ms: int = VIEW_INTERVAL_MS
    diff_buffer_max: int = DIFF_BUFFER_MAX
    trade_log_size: int = TRADE_LOG_SIZE
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            ws_base=_env_str("DEPTHBOOK_WS_BASE", WS_BASE),
            snapshot_url=_env_str("DEPTHBOOK_SNAPSHOT_URL", SNAPSHOT_URL),
            snapshot_limit=max(1, _env_int("DEPTHBOOK_SNAPSHOT_LIMIT", SNAPSHOT_LIMIT)),
            snapshot_timeout_s=max(0.1, _env_float("DEPTHBOOK_SNAPSHOT_TIMEOUT_S", SNAPSHOT_TIMEOUT_S)),
            snapshot_retry_delay_s=max(
                0.0, _env_float("DEPTHBOOK_SNAPSHOT_RETRY_DELAY_S", SNAPSHOT_RETRY_DELAY_S)
            ),
            snapshot_max_attempts=max(
                1, _env_int("DEPTHBOOK_SNAPSHOT_MAX_ATTEMPTS", SNAPSHOT_MAX_ATTEMPTS)
            ),
            reconnect_delay_s=max(0.0, _env_float("DEPTHBOOK_RECONNECT_DELAY_S", RECONNECT_DELAY_S)),
            ws_heartbeat_s=max(1.0, _env_float("DEPTHBOOK_WS_HEARTBEAT_S", WS_HEARTBEAT_S)),
            view_interval_ms=max(1, _env_int("DEPTHBOOK_VIEW_INTERVAL_MS", VIEW_INTERVAL_MS)),
            diff_buffer_max=max(1, _env_int("DEPTHBOOK_DIFF_BUFFER_MAX", DIFF_BUFFER_MAX)),
            log_level=_env_str("DEPTHBOOK_LOG_LEVEL", "INFO").upper(),
        )


def next_symbol(current: str, step: int = 1) -> str:
    """Neighbour of `current` in SYMBOLS, wrapping around. Unknown symbols map to the first."""
    try:
        index = SYMBOLS.index(current.upper())
    except ValueError:
        return SYMBOLS[0]
    return SYMBOLS[(index + step) % len(SYMBOLS)]

"""
Recent trades tape.

HOT PATH: ingest() is called for every trade (~100s per second for active
symbols). Trades are fed in arrival order regardless of book sync state.
"""

from __future__ import annotations

from collections import deque

from ..types import Trade

DEFAULT_MAX_TRADES = 50


class TradeLog:
    """
    Bounded newest-first trade history.

    A trade whose id equals the current head's id is dropped: after a
    reconnect the stream replays the last trade it sent.

    Thread-safety: NOT thread-safe. Designed for single-threaded async use.
    """

    __slots__ = ('_trades',)

    def __init__(self, max_trades: int = DEFAULT_MAX_TRADES) -> None:
        # appendleft + maxlen drops the oldest entry from the right
        self._trades: deque[Trade] = deque(maxlen=max_trades)

    def ingest(self, trade: Trade) -> bool:
        """Prepend trade unless it duplicates the head. Returns True if stored. O(1)."""
        if self._trades and self._trades[0].id == trade.id:
            return False
        self._trades.appendleft(trade)
        return True

    @property
    def head(self) -> Trade | None:
        return self._trades[0] if self._trades else None

    def snapshot(self) -> tuple[Trade, ...]:
        """Immutable copy, newest first."""
        return tuple(self._trades)

    def clear(self) -> None:
        self._trades.clear()

    def __len__(self) -> int:
        return len(self._trades)

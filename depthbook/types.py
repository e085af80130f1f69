"""
Data types for depthbook.

Performance notes:
- Using NamedTuple for immutable, memory-efficient structures
- The book itself lives in plain dicts (see datafeed/orderbook.py); these are
  the wire-facing and UI-facing structures
"""

from __future__ import annotations

from enum import Enum
from typing import NamedTuple

BUY = "buy"
SELL = "sell"


class SyncState(Enum):
    """Whether the local book is a valid reconstruction of the upstream book."""
    UNSYNCED = "unsynced"
    SYNCED = "synced"


class TransportState(Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


class ApplyResult(Enum):
    """Outcome of applying one diff event to the book."""
    APPLIED = "applied"
    STALE = "stale"  # final id already covered by the cursor, nothing changed
    GAP = "gap"      # first id beyond cursor + 1, nothing changed


class PriceLevel(NamedTuple):
    """Single price level on one side of the book."""
    price: float
    qty: float


class DiffEvent(NamedTuple):
    """Incremental depth update covering sequence ids [first_id, final_id]."""
    first_id: int
    final_id: int
    bids: tuple[tuple[float, float], ...]
    asks: tuple[tuple[float, float], ...]


class DepthSnapshot(NamedTuple):
    """Full point-in-time book listing plus the sequence id it corresponds to."""
    cursor: int
    bids: tuple[tuple[float, float], ...]
    asks: tuple[tuple[float, float], ...]


class Trade(NamedTuple):
    """Single trade from the trade stream."""
    id: int
    price: float
    size: float
    timestamp_ms: int
    side: str  # BUY = taker bought, SELL = taker sold (buyer was maker)


class BookView(NamedTuple):
    """
    Complete read-only view for consumers.

    Pushed to the view queue on every tick (~10 FPS). All sequences are
    tuples so a view can be handed around without copying.
    """
    symbol: str
    bids: tuple[PriceLevel, ...]      # Sorted by price descending
    asks: tuple[PriceLevel, ...]      # Sorted by price ascending
    bid_totals: tuple[float, ...]     # Cumulative qty aligned with bids
    ask_totals: tuple[float, ...]     # Cumulative qty aligned with asks
    max_bid_total: float
    max_ask_total: float
    best_bid: float | None
    best_ask: float | None
    spread: float | None
    trades: tuple[Trade, ...]         # Newest first
    connected: bool
    synced: bool
    error: str | None
    cursor: int
    timestamp_ms: int

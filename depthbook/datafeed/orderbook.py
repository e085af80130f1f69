"""
Local order book: REST snapshot + incremental diff events.

HOT PATH: apply_diff() is called for every depth event (every 100ms per
stream, with bursts of buffered events after a snapshot).

Performance strategy:
1. Use dict[float, float] for O(1) lookup/update of individual prices
2. Never keep the book sorted; ordering is imposed only when a view is
   derived (see engine/view.py)
3. The applier never touches sync state; it reports an ApplyResult and the
   coordinator decides what to do with it
"""

from __future__ import annotations

from typing import Iterable

from ..types import ApplyResult, DepthSnapshot, DiffEvent, PriceLevel


class OrderBook:
    """
    Bid/ask price -> quantity maps plus the update cursor.

    Thread-safety: NOT thread-safe. Designed for single-threaded async use;
    every mutation runs to completion between two awaits.
    """

    __slots__ = ('symbol', 'bids', 'asks', 'cursor')

    def __init__(self, symbol: str) -> None:
        self.symbol = symbol

        # Core data: price -> quantity. Zero-quantity levels are never stored.
        self.bids: dict[float, float] = {}
        self.asks: dict[float, float] = {}

        # Final id of the last applied diff (or the snapshot's lastUpdateId)
        self.cursor: int = 0

    def load_snapshot(self, snapshot: DepthSnapshot) -> None:
        """Replace both sides with the snapshot levels and move the cursor to its id."""
        self.bids.clear()
        self.asks.clear()

        for price, qty in snapshot.bids:
            if qty > 0:
                self.bids[price] = qty

        for price, qty in snapshot.asks:
            if qty > 0:
                self.asks[price] = qty

        self.cursor = snapshot.cursor

    def apply_diff(self, event: DiffEvent) -> ApplyResult:
        """
        Apply one diff event.

        HOT PATH.

        - final_id <= cursor: already covered, STALE (no mutation)
        - first_id > cursor + 1: missed events, GAP (no mutation)
        - otherwise update both sides and move the cursor to final_id
        """
        if event.final_id <= self.cursor:
            return ApplyResult.STALE

        if event.first_id > self.cursor + 1:
            return ApplyResult.GAP

        _apply_side(self.bids, event.bids)
        _apply_side(self.asks, event.asks)

        self.cursor = event.final_id
        return ApplyResult.APPLIED

    def sorted_bids(self) -> list[PriceLevel]:
        """Bid levels, best (highest) first."""
        return [PriceLevel(p, q) for p, q in sorted(self.bids.items(), reverse=True)]

    def sorted_asks(self) -> list[PriceLevel]:
        """Ask levels, best (lowest) first."""
        return [PriceLevel(p, q) for p, q in sorted(self.asks.items())]


def _apply_side(side: dict[float, float], updates: Iterable[tuple[float, float]]) -> None:
    for price, qty in updates:
        if qty == 0:
            side.pop(price, None)
        else:
            side[price] = qty

"""
View derivation: book maps -> sorted, cumulative, immutable BookView.

Runs on an external cadence (display refresh), not per event, so the cost
under bursty diff traffic is bounded by the tick rate.

Performance strategy:
1. One O(n log n) sort per side per tick
2. Cumulative totals via numpy.cumsum over the sorted quantities
3. Everything handed out is a tuple; consumers can't reach the live dicts
"""

from __future__ import annotations

import time
from typing import Awaitable, Callable

import numpy as np

from ..datafeed.orderbook import OrderBook
from ..types import BookView, PriceLevel, Trade
from .trades import TradeLog


def cumulative_totals(levels: list[PriceLevel]) -> tuple[tuple[float, ...], float]:
    """
    Running quantity sum from the best price outward.

    Returns (totals aligned with levels, max total). Max is 0.0 for an
    empty side.
    """
    if not levels:
        return (), 0.0
    qtys = np.fromiter((lvl.qty for lvl in levels), dtype=np.float64, count=len(levels))
    totals = np.cumsum(qtys)
    return tuple(totals.tolist()), float(totals.max())


class ViewDeriver:
    """
    Builds BookView values from an OrderBook and a TradeLog.

    Usage:
        deriver = ViewDeriver("BTCUSDT", depth=25)
        view = deriver.derive(book, trades, connected=True, synced=True)
    """

    __slots__ = ('symbol', 'depth')

    def __init__(self, symbol: str, depth: int | None = None) -> None:
        self.symbol = symbol
        # Levels per side kept in the view; None keeps the whole book
        self.depth = depth

    def derive(
        self,
        book: OrderBook,
        trades: TradeLog | tuple[Trade, ...] = (),
        *,
        connected: bool = False,
        synced: bool = False,
        error: str | None = None,
    ) -> BookView:
        bids = book.sorted_bids()
        asks = book.sorted_asks()
        if self.depth is not None:
            bids = bids[:self.depth]
            asks = asks[:self.depth]

        bid_totals, max_bid_total = cumulative_totals(bids)
        ask_totals, max_ask_total = cumulative_totals(asks)

        best_bid = bids[0].price if bids else None
        best_ask = asks[0].price if asks else None
        spread = best_ask - best_bid if best_bid is not None and best_ask is not None else None

        trade_tuple = trades.snapshot() if isinstance(trades, TradeLog) else tuple(trades)

        return BookView(
            symbol=self.symbol,
            bids=tuple(bids),
            asks=tuple(asks),
            bid_totals=bid_totals,
            ask_totals=ask_totals,
            max_bid_total=max_bid_total,
            max_ask_total=max_ask_total,
            best_bid=best_bid,
            best_ask=best_ask,
            spread=spread,
            trades=trade_tuple,
            connected=connected,
            synced=synced,
            error=error,
            cursor=book.cursor,
            timestamp_ms=int(time.time() * 1000),
        )

    async def run(
        self,
        tick: Callable[[], Awaitable[object]],
        produce: Callable[[], BookView],
        publish: Callable[[BookView], None],
        should_stop: Callable[[], bool],
    ) -> None:
        """
        Derive and publish one view per tick until should_stop() is true.

        tick is any awaitable trigger: a fixed sleep, a frame signal, an
        event set by a consumer asking for data.
        """
        while not should_stop():
            await tick()
            if should_stop():
                break
            publish(produce())

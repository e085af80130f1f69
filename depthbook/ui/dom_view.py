"""
Order book TUI using Textual.

Displays:
- Left: Ladder with asks on top, bids below, cumulative depth bars
- Right: Recent trades tape
- Top: Symbol, best bid/ask, spread, connection + sync status

Performance notes:
- Only renders views pulled from the client's queue (~10 FPS)
- Never touches engine state; BookView is immutable
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING

from rich.console import RenderableType
from rich.style import Style
from rich.table import Table
from rich.text import Text

from textual.app import App, ComposeResult
from textual.containers import Horizontal
from textual.widgets import Footer, Static

from ..config import next_symbol
from ..types import SELL

if TYPE_CHECKING:
    from ..main import Feed
    from ..types import BookView

# Color scheme (dark theme)
BID_COLOR = "#22c55e"      # Green
ASK_COLOR = "#ef4444"      # Red
PRICE_COLOR = "#f8fafc"
HEADER_COLOR = "#94a3b8"
BAR_BG = "#1e293b"

BAR_WIDTH = 16


def format_num(value: float) -> str:
    """Format price/quantity: thousands separators, 2 to 8 decimals."""
    text = f"{value:,.8f}".rstrip("0")
    whole, _, frac = text.partition(".")
    return f"{whole}.{frac.ljust(2, '0')}"


def format_time(timestamp_ms: int) -> str:
    return time.strftime("%H:%M:%S", time.localtime(timestamp_ms / 1000))


def make_bar(value: float, max_value: float, width: int, color: str) -> Text:
    """Create a horizontal bar using block characters."""
    if max_value <= 0:
        return Text(" " * width)

    fill_ratio = min(1.0, value / max_value)
    fill_width = int(fill_ratio * width)

    bar = "█" * fill_width + " " * (width - fill_width)
    return Text(bar, style=Style(color=color, bgcolor=BAR_BG))


class LadderTable(Static):
    """Order book ladder: asks (best at the bottom) over bids (best at the top)."""

    DEFAULT_CSS = """
    LadderTable {
        width: 2fr;
        height: 100%;
    }
    """

    def __init__(self, levels: int = 20) -> None:
        super().__init__()
        self.levels = levels
        self._view: BookView | None = None

    def update_view(self, view: BookView) -> None:
        self._view = view
        self.refresh()

    def clear_view(self) -> None:
        self._view = None
        self.refresh()

    def render(self) -> RenderableType:
        if self._view is None:
            return Text("Waiting for data...", style="dim")

        view = self._view
        if not view.bids and not view.asks:
            return Text("No levels", style="dim")

        table = Table(
            show_header=True,
            header_style=HEADER_COLOR,
            box=None,
            padding=(0, 1),
            collapse_padding=True,
        )
        table.add_column("Price", justify="right", width=14)
        table.add_column("Amount", justify="right", width=14)
        table.add_column("Total", justify="right", width=14)
        table.add_column("Depth", justify="left", width=BAR_WIDTH, no_wrap=True)

        n_asks = min(self.levels, len(view.asks))
        for i in range(n_asks - 1, -1, -1):
            level = view.asks[i]
            total = view.ask_totals[i]
            table.add_row(
                Text(format_num(level.price), style=ASK_COLOR),
                Text(format_num(level.qty), style=PRICE_COLOR),
                Text(format_num(total), style=HEADER_COLOR),
                make_bar(total, view.max_ask_total, BAR_WIDTH, ASK_COLOR),
            )

        spread = format_num(view.spread) if view.spread is not None else "-"
        table.add_row(Text(f"spread {spread}", style="yellow"), Text(""), Text(""), Text(""))

        n_bids = min(self.levels, len(view.bids))
        for i in range(n_bids):
            level = view.bids[i]
            total = view.bid_totals[i]
            table.add_row(
                Text(format_num(level.price), style=BID_COLOR),
                Text(format_num(level.qty), style=PRICE_COLOR),
                Text(format_num(total), style=HEADER_COLOR),
                make_bar(total, view.max_bid_total, BAR_WIDTH, BID_COLOR),
            )

        return table


class TradesTable(Static):
    """Recent trades, newest first."""

    DEFAULT_CSS = """
    TradesTable {
        width: 1fr;
        height: 100%;
    }
    """

    def __init__(self) -> None:
        super().__init__()
        self._view: BookView | None = None

    def update_view(self, view: BookView) -> None:
        self._view = view
        self.refresh()

    def clear_view(self) -> None:
        self._view = None
        self.refresh()

    def render(self) -> RenderableType:
        if self._view is None or not self._view.trades:
            return Text("No trades yet", style="dim")

        table = Table(show_header=True, header_style=HEADER_COLOR, box=None, padding=(0, 1))
        table.add_column("Time", width=8)
        table.add_column("Price", justify="right", width=14)
        table.add_column("Size", justify="right", width=12)

        for trade in self._view.trades:
            color = ASK_COLOR if trade.side == SELL else BID_COLOR
            table.add_row(
                Text(format_time(trade.timestamp_ms), style="dim"),
                Text(format_num(trade.price), style=color),
                Text(format_num(trade.size), style=PRICE_COLOR),
            )
        return table


class StatusBar(Static):
    """Status bar showing symbol, top of book and connection/sync state."""

    DEFAULT_CSS = """
    StatusBar {
        dock: top;
        height: 3;
        padding: 0 2;
        background: #0f172a;
    }
    """

    def __init__(self) -> None:
        super().__init__()
        self._view: BookView | None = None

    def update_view(self, view: BookView) -> None:
        self._view = view
        self.refresh()

    def clear_view(self) -> None:
        self._view = None
        self.refresh()

    def render(self) -> RenderableType:
        if self._view is None:
            return Text("Connecting...", style="dim")

        view = self._view

        def price(value: float | None) -> str:
            return format_num(value) if value is not None else "-"

        parts = [
            Text(f" {view.symbol} ", style="bold white on #1e40af"),
            Text("  "),
            Text("Bid: ", style="dim"),
            Text(price(view.best_bid), style=BID_COLOR),
            Text("  Ask: ", style="dim"),
            Text(price(view.best_ask), style=ASK_COLOR),
            Text("  Spread: ", style="dim"),
            Text(price(view.spread), style="yellow"),
            Text("  │  ", style="dim"),
            Text("live" if view.connected else "disconnected", style="cyan" if view.connected else "red"),
            Text("  "),
            Text("synced" if view.synced else "syncing", style="cyan" if view.synced else "yellow"),
        ]
        if view.error:
            parts.append(Text(f"  {view.error}", style="red"))

        result = Text()
        for p in parts:
            result.append(p)
        return result


class BookApp(App):
    """Main order book application."""

    CSS = """
    Screen {
        background: #0f172a;
    }

    #main-container {
        width: 100%;
        height: 100%;
        padding: 1 2;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("r", "resync", "Resync"),
        ("n", "next_symbol", "Next symbol"),
        ("p", "prev_symbol", "Prev symbol"),
    ]

    def __init__(self, feed: Feed, levels: int = 20) -> None:
        super().__init__()
        self.feed = feed
        self.levels = levels
        self._status_bar: StatusBar | None = None
        self._ladder: LadderTable | None = None
        self._trades: TradesTable | None = None

    def compose(self) -> ComposeResult:
        self._status_bar = StatusBar()
        self._ladder = LadderTable(self.levels)
        self._trades = TradesTable()

        yield self._status_bar
        yield Horizontal(self._ladder, self._trades, id="main-container")
        yield Footer()

    async def on_mount(self) -> None:
        """Start the view consumer task."""
        self.run_worker(self._consume_views(), exclusive=True)

    def action_resync(self) -> None:
        self.feed.resync()

    async def action_next_symbol(self) -> None:
        await self._switch_symbol(1)

    async def action_prev_symbol(self) -> None:
        await self._switch_symbol(-1)

    async def _switch_symbol(self, step: int) -> None:
        await self.feed.switch(next_symbol(self.feed.symbol, step))
        for widget in (self._status_bar, self._ladder, self._trades):
            if widget is not None:
                widget.clear_view()
        # The new client has its own queue; exclusive replaces the old consumer
        self.run_worker(self._consume_views(), exclusive=True)

    async def _consume_views(self) -> None:
        """Consume views from the current client's queue and update UI."""
        queue = self.feed.view_queue
        while True:
            try:
                view = await asyncio.wait_for(queue.get(), timeout=1.0)
            except asyncio.TimeoutError:
                continue

            for widget in (self._status_bar, self._ladder, self._trades):
                if widget is not None:
                    widget.update_view(view)


async def run_ui(feed: Feed, levels: int = 20) -> None:
    """Run the TUI application."""
    app = BookApp(feed, levels)
    await app.run_async()

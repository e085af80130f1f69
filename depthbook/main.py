#!/usr/bin/env python3
"""
depthbook - Live order book + trades for a Binance spot symbol.

Usage:
    python -m depthbook.main BTCUSDT --levels 20

Controls:
    q - Quit
    r - Resync (new snapshot)
    n / p - Next / previous symbol
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import logging
import sys
from typing import TYPE_CHECKING, Callable

from .config import DEFAULT_SYMBOL, Settings

if TYPE_CHECKING:
    from .datafeed.binance_client import BinanceClient
    from .types import BookView

log = logging.getLogger(__name__)


def _make_client(symbol: str, levels: int, settings: Settings) -> "BinanceClient":
    # Import here to avoid slow startup for --help
    from .datafeed.binance_client import BinanceClient
    return BinanceClient(symbol=symbol, levels=levels, settings=settings)


class Feed:
    """
    Owns the running client. One client per symbol: switching stops the
    current client and starts a fresh one with its own view queue.
    """

    def __init__(
        self,
        symbol: str,
        levels: int,
        settings: Settings,
        client_factory: Callable[[str, int, Settings], "BinanceClient"] | None = None,
    ) -> None:
        self.levels = levels
        self.settings = settings
        self.client: BinanceClient | None = None
        self._symbol = symbol.upper()
        self._factory = client_factory or _make_client
        self._task: asyncio.Task | None = None

    @property
    def symbol(self) -> str:
        return self._symbol

    @property
    def view_queue(self) -> asyncio.Queue[BookView]:
        assert self.client is not None
        return self.client.view_queue

    def start(self) -> "BinanceClient":
        self.client = self._factory(self._symbol, self.levels, self.settings)
        self._task = asyncio.create_task(self._run_client(self.client))
        return self.client

    @staticmethod
    async def _run_client(client: "BinanceClient") -> None:
        try:
            await client.run()
        except Exception:
            log.exception("Feed error")

    async def switch(self, symbol: str) -> "BinanceClient":
        """Tear down the current client and start one for `symbol`."""
        log.info("Switching %s -> %s", self._symbol, symbol.upper())
        await self.close()
        self._symbol = symbol.upper()
        return self.start()

    def resync(self) -> None:
        if self.client is not None:
            self.client.resync()

    async def close(self) -> None:
        if self.client is not None:
            self.client.stop()
        if self._task is not None:
            await self._task
            self._task = None


async def main(symbol: str, levels: int, settings: Settings) -> None:
    """Main entry point - runs data feed and UI concurrently."""
    from .ui.dom_view import run_ui

    feed = Feed(symbol, levels, settings)
    feed.start()

    try:
        # Run UI (blocks until quit)
        await run_ui(feed, levels)
    finally:
        await feed.close()


def cli() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="depthbook - Live order book and trades for Binance spot",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python -m depthbook.main BTCUSDT
    python -m depthbook.main ETHUSDT --levels 30
    python -m depthbook.main BTCUSDT --snapshot-url http://localhost:8080/api/depth
        """
    )

    parser.add_argument(
        "symbol",
        nargs="?",
        default=DEFAULT_SYMBOL,
        help=f"Trading symbol (default: {DEFAULT_SYMBOL})"
    )

    parser.add_argument(
        "--levels",
        type=int,
        default=20,
        help="Number of price levels per side (default: 20)"
    )

    parser.add_argument(
        "--snapshot-url",
        default=None,
        help="Depth snapshot endpoint, e.g. the depthbook proxy"
    )

    parser.add_argument(
        "--refresh-ms",
        type=int,
        default=None,
        help="View refresh interval in milliseconds (default: 100)"
    )

    parser.add_argument(
        "--log-file",
        default="logs/depthbook.log",
        help="Log file (default: logs/depthbook.log)"
    )

    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (default: INFO)"
    )

    args = parser.parse_args()

    settings = Settings.from_env()
    overrides = {}
    if args.snapshot_url:
        overrides["snapshot_url"] = args.snapshot_url
    if args.refresh_ms:
        overrides["view_interval_ms"] = max(1, args.refresh_ms)
    if args.log_level:
        overrides["log_level"] = args.log_level.upper()
    settings = dataclasses.replace(settings, **overrides)

    from .logging_config import setup_logging
    setup_logging(settings.log_level, args.log_file)

    try:
        asyncio.run(main(args.symbol, args.levels, settings))
    except KeyboardInterrupt:
        print("\nShutdown requested.")
        sys.exit(0)


if __name__ == "__main__":
    cli()

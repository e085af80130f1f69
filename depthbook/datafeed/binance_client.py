"""
Binance spot client with async orchestration. One instance = one symbol.

Handles:
1. Combined WebSocket stream for depth diffs + aggregated trades
2. REST snapshot + diff bridging per the Binance depth procedure
3. Gap detection -> automatic resync
4. Fixed-delay reconnect, forever, with a full resync after every reconnect
5. Periodic view generation for the UI

Performance notes:
- Uses orjson for fast JSON parsing
- Logging only on state transitions, never per message
- All I/O is non-blocking (pure asyncio); every mutation of the book, the
  diff buffer and the trade log happens between awaits on the loop that
  runs run(), so no locks are needed
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Awaitable, Callable

import aiohttp

from ..config import Settings
from ..engine.trades import TradeLog
from ..engine.view import ViewDeriver
from ..errors import MessageDecodeError
from ..types import ApplyResult, BookView, DepthSnapshot, DiffEvent, Trade, TransportState
from .messages import decode_message, iter_stream_names
from .orderbook import OrderBook
from .snapshot import SnapshotFetcher
from .sync import SyncCoordinator

log = logging.getLogger(__name__)


class BinanceClient:
    """
    Async Binance client for the order book + trade streams of one symbol.

    Usage:
        client = BinanceClient("BTCUSDT", levels=25)
        task = asyncio.create_task(client.run())
        view = await client.view_queue.get()
        ...
        client.stop()
        await task

    Switching symbols means stop() and a new client; no state carries over.
    """

    def __init__(
        self,
        symbol: str,
        levels: int | None = None,
        settings: Settings | None = None,
        tick: Callable[[], Awaitable[object]] | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.symbol = symbol.upper()

        # Core components
        self.orderbook = OrderBook(self.symbol)
        self.trades = TradeLog(self.settings.trade_log_size)
        self.deriver = ViewDeriver(self.symbol, depth=levels)
        self.sync = SyncCoordinator(
            self.orderbook,
            self._fetch_snapshot,
            retry_delay_s=self.settings.snapshot_retry_delay_s,
            max_attempts=self.settings.snapshot_max_attempts,
            buffer_max=self.settings.diff_buffer_max,
            on_error=self._set_error,
        )

        # State
        self.state = TransportState.CLOSED
        self.connected = False
        self.error: str | None = None
        self.connect_count = 0
        self._disposed = False

        self._fetcher: SnapshotFetcher | None = None
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._sync_task: asyncio.Task | None = None
        self._view_task: asyncio.Task | None = None
        self._close_task: asyncio.Task | None = None
        self._stop_event: asyncio.Event | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._tick = tick or self._default_tick

        # Output queue for the UI; oldest view is dropped when full
        self.view_queue: asyncio.Queue[BookView] = asyncio.Queue(maxsize=5)

    @property
    def synced(self) -> bool:
        return self.sync.synced

    @property
    def disposed(self) -> bool:
        return self._disposed

    def build_ws_url(self) -> str:
        """Combined stream URL: aggTrade + 100ms diff depth."""
        streams = "/".join(iter_stream_names(self.symbol))
        return f"{self.settings.ws_base}?streams={streams}"

    # -- outputs ---------------------------------------------------------

    def view(self) -> BookView:
        """Derive a view right now (on-demand trigger)."""
        return self.deriver.derive(
            self.orderbook,
            self.trades,
            connected=self.connected,
            synced=self.sync.synced,
            error=self.error,
        )

    def _publish(self, view: BookView) -> None:
        try:
            self.view_queue.put_nowait(view)
        except asyncio.QueueFull:
            # Drop oldest, put newest
            self.view_queue.get_nowait()
            self.view_queue.put_nowait(view)

    async def _default_tick(self) -> None:
        await asyncio.sleep(self.settings.view_interval_ms / 1000)

    def _set_error(self, message: str | None) -> None:
        if self._disposed:
            return
        self.error = message

    # -- inbound messages --------------------------------------------------

    def _handle_ws_message(self, raw: str | bytes) -> None:
        """
        Decode and dispatch one frame.

        HOT PATH - called for every message (~10-100+ per second).
        """
        if self._disposed:
            return
        try:
            event = decode_message(raw)
        except MessageDecodeError as exc:
            log.warning("Dropping malformed message: %s", exc)
            self._set_error(f"Malformed message: {exc}")
            return

        if isinstance(event, Trade):
            self.trades.ingest(event)
        elif isinstance(event, DiffEvent):
            self._process_depth_update(event)

    def _process_depth_update(self, event: DiffEvent) -> None:
        result = self.sync.on_diff(event)
        if result is ApplyResult.GAP:
            self.resync()

    # -- synchronization -----------------------------------------------------

    async def _fetch_snapshot(self) -> DepthSnapshot:
        assert self._fetcher is not None
        return await self._fetcher.fetch()

    def resync(self) -> None:
        """
        Start the snapshot/bridge procedure unless one is already running.

        Also the manual retry once synchronize() has used up its attempts:
        while unsynced, diffs are only buffered, so no gap can trigger it.
        """
        if self._disposed or self._fetcher is None:
            return
        if self._sync_task is not None and not self._sync_task.done():
            return
        self._sync_task = asyncio.create_task(self._run_sync())

    async def _run_sync(self) -> None:
        try:
            await self.sync.synchronize()
        except Exception as exc:
            log.exception("Unexpected error during sync")
            self._set_error(f"Sync error: {exc}")

    def _cancel_sync(self) -> None:
        if self._sync_task is not None and not self._sync_task.done():
            self._sync_task.cancel()
        self._sync_task = None

    # -- transport lifecycle ---------------------------------------------------

    def _on_open(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        self._ws = ws
        self.state = TransportState.OPEN
        self.connected = True
        self.connect_count += 1
        self._set_error(None)
        log.info("Connected to %s stream (session #%d)", self.symbol, self.connect_count)

        # Sequence continuity can't be assumed across sessions: always resync
        self._cancel_sync()
        self.sync.reset()
        self.resync()

    def _on_close(self) -> None:
        self._ws = None
        self.connected = False
        self._cancel_sync()
        if self._disposed:
            return
        self.sync.reset()
        self.state = TransportState.CONNECTING
        log.info("Stream closed for %s", self.symbol)

    async def _run_session(self, session: aiohttp.ClientSession) -> None:
        """One connection session: connect, read until close/error."""
        self.state = TransportState.CONNECTING
        try:
            async with session.ws_connect(self.build_ws_url(), heartbeat=self.settings.ws_heartbeat_s) as ws:
                if self._disposed:
                    return
                self._on_open(ws)
                try:
                    async for msg in ws:
                        if self._disposed:
                            break

                        if msg.type == aiohttp.WSMsgType.TEXT:
                            self._handle_ws_message(msg.data)
                        elif msg.type == aiohttp.WSMsgType.ERROR:
                            log.warning("WebSocket error: %s", ws.exception())
                            self._set_error("WebSocket error")
                            break
                        elif msg.type == aiohttp.WSMsgType.BINARY:
                            log.warning("Dropping binary frame (%d bytes)", len(msg.data))
                            self._set_error("Malformed message: unexpected binary frame")
                finally:
                    self._on_close()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            log.warning("WebSocket connect failed: %s", exc)
            self._set_error(f"WebSocket error: {exc}")

    async def _wait_reconnect(self) -> None:
        assert self._stop_event is not None
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=self.settings.reconnect_delay_s)
        except asyncio.TimeoutError:
            pass

    async def run(self) -> None:
        """
        Main run loop. Returns only after stop().

        Pushes BookView to self.view_queue on every tick.
        """
        if self._disposed:
            return
        self._stop_event = asyncio.Event()
        self._loop = asyncio.get_running_loop()

        async with aiohttp.ClientSession() as session:
            self._fetcher = SnapshotFetcher(
                session,
                self.symbol,
                self.settings.snapshot_url,
                limit=self.settings.snapshot_limit,
                timeout_s=self.settings.snapshot_timeout_s,
            )
            self._view_task = asyncio.create_task(
                self.deriver.run(self._tick, self.view, self._publish, lambda: self._disposed)
            )
            try:
                while not self._disposed:
                    await self._run_session(session)
                    if self._disposed:
                        break
                    # Fixed delay, no backoff growth, retried until stop()
                    log.info("Reconnecting in %.1fs", self.settings.reconnect_delay_s)
                    await self._wait_reconnect()
            finally:
                for task in (self._sync_task, self._view_task):
                    if task is not None and not task.done():
                        task.cancel()
                        with contextlib.suppress(asyncio.CancelledError):
                            await task
                if self._close_task is not None:
                    await self._close_task
                    self._close_task = None
                self._sync_task = None
                self._view_task = None
                self.state = TransportState.CLOSED
                self.connected = False
                self._fetcher = None

    def stop(self) -> None:
        """Tear down: no further mutations, timers or reconnects."""
        if self._disposed:
            return
        self._disposed = True
        self.sync.dispose()
        self.state = TransportState.CLOSED

        if self._stop_event is not None:
            self._stop_event.set()
        self._cancel_sync()
        if self._view_task is not None and not self._view_task.done():
            self._view_task.cancel()

        ws = self._ws
        if ws is not None and not ws.closed and self._loop is not None:
            # Wakes the receive loop; run() awaits the close before returning
            self._close_task = self._loop.create_task(ws.close())

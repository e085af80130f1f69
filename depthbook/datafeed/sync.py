"""
Snapshot/diff synchronization (Binance "how to manage a local order book").

Procedure:
1. Open the diff stream first; buffer every diff while unsynced
2. Fetch a REST snapshot (lastUpdateId = S)
3. Load the snapshot into the book, drop buffered diffs with u <= S
4. The oldest remaining diff must bridge the snapshot: U <= S+1 <= u
5. Apply the remaining buffered diffs in arrival order -> synced
6. On a bridge failure wait a fixed delay and start again from 2,
   up to a bounded number of attempts

This is the only place SyncState changes. The book reports GAP/STALE as a
return value and the coordinator decides what happens next.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Awaitable, Callable, Iterator

from ..errors import SnapshotError
from ..types import ApplyResult, DepthSnapshot, DiffEvent, SyncState
from .orderbook import OrderBook

log = logging.getLogger(__name__)

RESYNC_REQUIRED = "Depth out-of-sync; resync required"
SYNC_GAP_RETRYING = "Depth sync gap detected; retrying snapshot"


class DiffBuffer:
    """Arrival-ordered diff events held while the book is unsynced."""

    __slots__ = ('_events', 'overflowed')

    def __init__(self, max_size: int = 10_000) -> None:
        # Oldest events fall off when full; the bridge check then fails and
        # the coordinator fetches a fresh snapshot.
        self._events: deque[DiffEvent] = deque(maxlen=max_size)
        self.overflowed: int = 0

    def append(self, event: DiffEvent) -> None:
        if len(self._events) == self._events.maxlen:
            self.overflowed += 1
        self._events.append(event)

    def discard_through(self, cursor: int) -> int:
        """Drop every event whose final id is <= cursor. Returns how many were dropped."""
        before = len(self._events)
        kept = [ev for ev in self._events if ev.final_id > cursor]
        self._events.clear()
        self._events.extend(kept)
        return before - len(kept)

    def peek(self) -> DiffEvent | None:
        return self._events[0] if self._events else None

    def popleft(self) -> DiffEvent:
        return self._events.popleft()

    def push_front(self, event: DiffEvent) -> None:
        self._events.appendleft(event)

    def clear(self) -> None:
        self._events.clear()
        self.overflowed = 0

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[DiffEvent]:
        return iter(self._events)


class SyncCoordinator:
    """
    Brings the OrderBook to SYNCED and keeps it there.

    Routing: while UNSYNCED every diff goes to the buffer, once SYNCED diffs
    are applied directly. A forward gap flips the state back to UNSYNCED; the
    owner (BinanceClient) then schedules synchronize() again.

    Thread-safety: NOT thread-safe. All methods must run on the event loop
    that owns the book.
    """

    def __init__(
        self,
        book: OrderBook,
        fetch_snapshot: Callable[[], Awaitable[DepthSnapshot]],
        *,
        retry_delay_s: float = 0.3,
        max_attempts: int = 6,
        buffer_max: int = 10_000,
        on_error: Callable[[str | None], None] | None = None,
    ) -> None:
        self.book = book
        self.buffer = DiffBuffer(buffer_max)
        self.state = SyncState.UNSYNCED
        self.retry_delay_s = retry_delay_s
        self.max_attempts = max(1, max_attempts)
        self.last_failure: str = ""
        self.disposed = False

        self._fetch_snapshot = fetch_snapshot
        self._on_error = on_error

    @property
    def synced(self) -> bool:
        return self.state is SyncState.SYNCED

    def _report(self, message: str | None) -> None:
        if self._on_error is not None:
            self._on_error(message)

    def _transition(self, state: SyncState) -> None:
        if state is not self.state:
            log.info("Sync state %s -> %s (cursor=%d)", self.state.value, state.value, self.book.cursor)
        self.state = state

    def on_diff(self, event: DiffEvent) -> ApplyResult | None:
        """
        Route one diff event.

        HOT PATH. Returns None when the event was buffered, otherwise the
        book's ApplyResult. GAP means a resync has to be scheduled.
        """
        if self.disposed:
            return None

        if self.state is SyncState.UNSYNCED:
            self.buffer.append(event)
            return None

        result = self.book.apply_diff(event)
        if result is ApplyResult.GAP:
            log.warning(
                "Gap detected: U=%d u=%d cursor=%d", event.first_id, event.final_id, self.book.cursor
            )
            self._transition(SyncState.UNSYNCED)
            self._report(RESYNC_REQUIRED)
            # Still needed if the next snapshot predates it
            self.buffer.append(event)
        return result

    def reconcile(self, snapshot: DepthSnapshot) -> bool:
        """
        Load a snapshot and try to bridge it with the buffered diffs.

        Never awaits, so no other task can touch the book or the
        buffer while this runs. Returns True once SYNCED; on False the
        reason is in last_failure and the state stays UNSYNCED.
        """
        if self.disposed:
            return False

        self.book.load_snapshot(snapshot)
        dropped = self.buffer.discard_through(snapshot.cursor)

        target = snapshot.cursor + 1
        head = self.buffer.peek()
        if head is None:
            self.last_failure = f"no buffered diff after lastUpdateId={snapshot.cursor} (dropped={dropped})"
            return False
        if not head.first_id <= target <= head.final_id:
            self.last_failure = (
                f"bridge gap U={head.first_id} u={head.final_id} lastUpdateId={snapshot.cursor}"
            )
            return False

        while self.buffer:
            event = self.buffer.popleft()
            if self.book.apply_diff(event) is ApplyResult.GAP:
                self.buffer.push_front(event)
                self.last_failure = (
                    f"gap inside buffer U={event.first_id} u={event.final_id} cursor={self.book.cursor}"
                )
                return False

        self._transition(SyncState.SYNCED)
        self._report(None)
        return True

    async def synchronize(self) -> bool:
        """
        Run the snapshot/bridge procedure until SYNCED or out of attempts.

        Fixed delay between attempts, no growth, no jitter. A failed fetch
        counts as an attempt. After the last attempt the error stays set
        and the book stays UNSYNCED until someone calls this again.
        """
        self._transition(SyncState.UNSYNCED)
        reason = ""

        for attempt in range(1, self.max_attempts + 1):
            if self.disposed:
                return False

            try:
                snapshot = await self._fetch_snapshot()
            except SnapshotError as exc:
                reason = str(exc)
                log.warning("Snapshot attempt %d/%d failed: %s", attempt, self.max_attempts, reason)
                self._report(reason)
            else:
                if self.disposed:
                    return False
                if self.reconcile(snapshot):
                    log.info(
                        "Book synced on attempt %d (lastUpdateId=%d cursor=%d)",
                        attempt, snapshot.cursor, self.book.cursor,
                    )
                    return True
                reason = self.last_failure
                log.info("Sync attempt %d/%d: %s", attempt, self.max_attempts, reason)
                if self.buffer.overflowed:
                    log.warning("Diff buffer dropped %d events since the last reset", self.buffer.overflowed)
                self._report(SYNC_GAP_RETRYING)

            if attempt < self.max_attempts:
                await asyncio.sleep(self.retry_delay_s)

        if self.disposed:
            return False
        message = f"Depth sync failed after {self.max_attempts} attempts: {reason}"
        log.error(message)
        self._report(message)
        return False

    def reset(self) -> None:
        """Forget buffered diffs and go UNSYNCED (new connection session)."""
        self.buffer.clear()
        self._transition(SyncState.UNSYNCED)

    def dispose(self) -> None:
        self.disposed = True
        self.buffer.clear()

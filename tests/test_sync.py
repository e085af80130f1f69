from __future__ import annotations

import asyncio

from depthbook.datafeed.orderbook import OrderBook
from depthbook.datafeed.sync import (
    RESYNC_REQUIRED,
    SYNC_GAP_RETRYING,
    DiffBuffer,
    SyncCoordinator,
)
from depthbook.errors import SnapshotError
from depthbook.types import ApplyResult, DepthSnapshot, DiffEvent, SyncState


def _snapshot(cursor: int) -> DepthSnapshot:
    return DepthSnapshot(cursor=cursor, bids=((100.0, 1.0),), asks=((101.0, 1.0),))


def _diff(first: int, final: int, bids=(), asks=()) -> DiffEvent:
    return DiffEvent(first, final, tuple(bids), tuple(asks))


class _Recorder:
    def __init__(self):
        self.messages = []

    def __call__(self, message):
        self.messages.append(message)

    @property
    def last(self):
        return self.messages[-1] if self.messages else None


def _coordinator(fetch=None, **kwargs):
    errors = _Recorder()

    async def no_fetch():
        raise AssertionError("fetch not expected")

    coord = SyncCoordinator(OrderBook("BTCUSDT"), fetch or no_fetch, on_error=errors, **kwargs)
    return coord, errors


def test_diffs_are_buffered_while_unsynced():
    coord, _ = _coordinator()

    assert coord.on_diff(_diff(1, 2)) is None
    assert coord.on_diff(_diff(3, 4)) is None

    assert coord.state is SyncState.UNSYNCED
    assert [ev.final_id for ev in coord.buffer] == [2, 4]
    assert coord.book.cursor == 0


def test_reconcile_discards_covered_events_and_bridges():
    coord, errors = _coordinator()
    for first, final in [(130, 140), (141, 148), (149, 155), (156, 160)]:
        coord.on_diff(_diff(first, final, bids=[(100.0, float(final))]))

    assert coord.reconcile(_snapshot(150)) is True

    assert coord.state is SyncState.SYNCED
    assert coord.book.cursor == 160
    assert coord.book.bids[100.0] == 160.0
    assert len(coord.buffer) == 0
    assert errors.last is None


def test_reconcile_fails_when_first_remaining_event_does_not_bridge():
    coord, _ = _coordinator()
    for first, final in [(130, 140), (141, 148), (152, 155), (156, 160)]:
        coord.on_diff(_diff(first, final))

    assert coord.reconcile(_snapshot(150)) is False

    assert coord.state is SyncState.UNSYNCED
    assert "bridge gap" in coord.last_failure
    # Covered events are gone, the rest wait for the next snapshot
    assert [ev.final_id for ev in coord.buffer] == [155, 160]


def test_reconcile_fails_with_empty_buffer():
    coord, _ = _coordinator()
    coord.on_diff(_diff(90, 95))

    assert coord.reconcile(_snapshot(150)) is False
    assert coord.state is SyncState.UNSYNCED
    assert len(coord.buffer) == 0


def test_reconcile_detects_gap_inside_buffered_run():
    coord, _ = _coordinator()
    for first, final in [(149, 152), (160, 165)]:
        coord.on_diff(_diff(first, final))

    assert coord.reconcile(_snapshot(150)) is False
    assert coord.state is SyncState.UNSYNCED
    assert "gap inside buffer" in coord.last_failure
    assert [ev.first_id for ev in coord.buffer] == [160]


def test_gap_while_synced_goes_unsynced_and_buffers_event():
    coord, errors = _coordinator()
    coord.on_diff(_diff(99, 101))
    assert coord.reconcile(_snapshot(100))

    assert coord.on_diff(_diff(102, 102)) is ApplyResult.APPLIED
    gap = _diff(105, 107)
    assert coord.on_diff(gap) is ApplyResult.GAP

    assert coord.state is SyncState.UNSYNCED
    assert errors.last == RESYNC_REQUIRED
    assert list(coord.buffer) == [gap]
    assert coord.book.cursor == 102

    # Further events are buffered, not applied
    assert coord.on_diff(_diff(108, 108)) is None
    assert coord.book.cursor == 102


def test_synchronize_retries_until_bridge():
    snapshots = [_snapshot(100), _snapshot(200)]
    calls = {"n": 0}

    async def fetch():
        calls["n"] += 1
        return snapshots[min(calls["n"], len(snapshots)) - 1]

    coord, errors = _coordinator(fetch, retry_delay_s=0.0, max_attempts=6)
    # Only bridges the second snapshot
    coord.on_diff(_diff(195, 205))

    assert asyncio.run(coord.synchronize()) is True
    assert calls["n"] == 2
    assert coord.synced
    assert coord.book.cursor == 205
    assert SYNC_GAP_RETRYING in errors.messages
    assert errors.last is None


def test_synchronize_gives_up_after_max_attempts():
    calls = {"n": 0}

    async def fetch():
        calls["n"] += 1
        return _snapshot(100)

    coord, errors = _coordinator(fetch, retry_delay_s=0.0, max_attempts=6)
    coord.on_diff(_diff(300, 301))

    assert asyncio.run(coord.synchronize()) is False
    assert calls["n"] == 6
    assert coord.state is SyncState.UNSYNCED
    assert errors.last.startswith("Depth sync failed after 6 attempts")


def test_snapshot_fetch_failure_counts_as_attempt():
    calls = {"n": 0}

    async def fetch():
        calls["n"] += 1
        if calls["n"] < 3:
            raise SnapshotError("Snapshot fetch failed: 503")
        return _snapshot(100)

    coord, errors = _coordinator(fetch, retry_delay_s=0.0, max_attempts=6)
    coord.on_diff(_diff(100, 101))

    assert asyncio.run(coord.synchronize()) is True
    assert calls["n"] == 3
    assert "Snapshot fetch failed: 503" in errors.messages


def test_synchronize_uses_fixed_delay(monkeypatch):
    delays = []

    async def fake_sleep(delay):
        delays.append(delay)

    async def fetch():
        return _snapshot(100)

    monkeypatch.setattr("depthbook.datafeed.sync.asyncio.sleep", fake_sleep)
    coord, _ = _coordinator(fetch, retry_delay_s=0.3, max_attempts=4)

    assert asyncio.run(coord.synchronize()) is False
    assert delays == [0.3, 0.3, 0.3]


def test_disposed_coordinator_ignores_everything():
    coord, _ = _coordinator()
    coord.dispose()

    assert coord.on_diff(_diff(1, 2)) is None
    assert len(coord.buffer) == 0
    assert coord.reconcile(_snapshot(0)) is False
    assert asyncio.run(coord.synchronize()) is False


def test_reset_clears_buffer_and_state():
    coord, _ = _coordinator()
    coord.on_diff(_diff(99, 101))
    assert coord.reconcile(_snapshot(100))
    coord.buffer.append(_diff(1, 1))

    coord.reset()

    assert coord.state is SyncState.UNSYNCED
    assert len(coord.buffer) == 0


def test_diff_buffer_drops_oldest_when_full():
    buf = DiffBuffer(max_size=3)
    for i in range(5):
        buf.append(_diff(i, i))

    assert [ev.first_id for ev in buf] == [2, 3, 4]
    assert buf.overflowed == 2
    assert buf.discard_through(3) == 2
    assert buf.peek().first_id == 4

    buf.clear()
    assert buf.overflowed == 0


def test_failed_reconcile_logs_buffer_overflow(caplog):
    async def fetch():
        return _snapshot(100)

    coord, _ = _coordinator(fetch, retry_delay_s=0.0, max_attempts=1, buffer_max=2)
    for first in (90, 200, 210):
        coord.on_diff(_diff(first, first + 5))

    with caplog.at_level("WARNING", logger="depthbook.datafeed.sync"):
        assert asyncio.run(coord.synchronize()) is False

    assert coord.buffer.overflowed == 1
    assert "Diff buffer dropped 1 events" in caplog.text

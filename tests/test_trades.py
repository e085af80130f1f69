from __future__ import annotations

from depthbook.engine.trades import TradeLog
from depthbook.types import BUY, SELL, Trade


def _trade(trade_id: int, side: str = BUY) -> Trade:
    return Trade(id=trade_id, price=100.0 + trade_id, size=0.5, timestamp_ms=1_700_000_000_000 + trade_id, side=side)


def test_duplicate_head_is_dropped():
    log = TradeLog()

    assert log.ingest(_trade(7)) is True
    assert log.ingest(_trade(7)) is False

    assert len(log) == 1
    assert log.head.id == 7


def test_only_head_is_checked_for_duplicates():
    log = TradeLog()
    for trade_id in (1, 2, 1):
        log.ingest(_trade(trade_id))

    assert [t.id for t in log.snapshot()] == [1, 2, 1]


def test_log_is_bounded_newest_first():
    log = TradeLog()
    for trade_id in range(60):
        log.ingest(_trade(trade_id, SELL if trade_id % 2 else BUY))

    trades = log.snapshot()
    assert len(trades) == 50
    assert [t.id for t in trades] == list(range(59, 9, -1))


def test_snapshot_is_an_immutable_copy():
    log = TradeLog(max_trades=3)
    log.ingest(_trade(1))
    copy = log.snapshot()

    log.ingest(_trade(2))

    assert isinstance(copy, tuple)
    assert [t.id for t in copy] == [1]


def test_clear():
    log = TradeLog()
    log.ingest(_trade(1))
    log.clear()

    assert len(log) == 0
    assert log.head is None

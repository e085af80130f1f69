from __future__ import annotations

from depthbook.datafeed.orderbook import OrderBook
from depthbook.types import ApplyResult, DepthSnapshot, DiffEvent


def _book(cursor: int = 100) -> OrderBook:
    book = OrderBook("BTCUSDT")
    book.load_snapshot(
        DepthSnapshot(cursor=cursor, bids=((100.0, 2.0), (99.0, 3.0)), asks=((101.0, 1.0), (102.0, 4.0)))
    )
    return book


def test_snapshot_drops_zero_quantity_levels():
    book = OrderBook("BTCUSDT")
    book.load_snapshot(DepthSnapshot(cursor=7, bids=((100.0, 0.0), (99.0, 1.0)), asks=((101.0, 0.0),)))

    assert book.bids == {99.0: 1.0}
    assert book.asks == {}
    assert book.cursor == 7


def test_snapshot_replaces_previous_levels():
    book = _book()
    book.load_snapshot(DepthSnapshot(cursor=200, bids=((50.0, 1.0),), asks=()))

    assert book.bids == {50.0: 1.0}
    assert book.asks == {}
    assert book.cursor == 200


def test_contiguous_diff_is_applied():
    book = _book(cursor=100)
    result = book.apply_diff(DiffEvent(101, 103, ((100.0, 5.0),), ((103.0, 1.5),)))

    assert result is ApplyResult.APPLIED
    assert book.bids[100.0] == 5.0
    assert book.asks[103.0] == 1.5
    assert book.cursor == 103


def test_forward_gap_is_rejected_without_mutation():
    book = _book(cursor=100)
    before = (dict(book.bids), dict(book.asks))

    result = book.apply_diff(DiffEvent(105, 106, ((100.0, 9.0),), ()))

    assert result is ApplyResult.GAP
    assert (book.bids, book.asks) == before
    assert book.cursor == 100


def test_stale_diff_does_not_mutate():
    book = _book(cursor=100)
    before = (dict(book.bids), dict(book.asks))

    result = book.apply_diff(DiffEvent(95, 99, ((100.0, 0.0),), ((101.0, 0.0),)))

    assert result is ApplyResult.STALE
    assert (book.bids, book.asks) == before
    assert book.cursor == 100


def test_applying_same_diff_twice_is_idempotent():
    book = _book(cursor=100)
    event = DiffEvent(101, 101, ((99.5, 1.0),), ((101.0, 0.0),))

    assert book.apply_diff(event) is ApplyResult.APPLIED
    once = (dict(book.bids), dict(book.asks), book.cursor)

    assert book.apply_diff(event) is ApplyResult.STALE
    assert (book.bids, book.asks, book.cursor) == once


def test_cursor_tracks_last_applied_final_id():
    book = _book(cursor=100)
    seen = []
    for first, final in [(101, 104), (105, 105), (106, 110), (108, 112)]:
        assert book.apply_diff(DiffEvent(first, final, (), ())) is ApplyResult.APPLIED
        seen.append(book.cursor)

    assert seen == [104, 105, 110, 112]
    assert seen == sorted(seen)


def test_zero_quantity_removes_existing_level_and_ignores_missing():
    book = _book(cursor=100)

    book.apply_diff(DiffEvent(101, 101, ((100.0, float("0.00000000")), (42.0, 0.0)), ()))

    assert 100.0 not in book.bids
    assert 42.0 not in book.bids
    assert book.bids == {99.0: 3.0}


def test_sorted_sides():
    book = _book()

    assert [lvl.price for lvl in book.sorted_bids()] == [100.0, 99.0]
    assert [lvl.price for lvl in book.sorted_asks()] == [101.0, 102.0]

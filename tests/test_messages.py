from __future__ import annotations

import json

import pytest

from depthbook.datafeed.messages import decode_message, decode_snapshot, iter_stream_names
from depthbook.errors import MessageDecodeError
from depthbook.types import BUY, SELL, DiffEvent, Trade


def _frame(stream: str, data: dict) -> str:
    return json.dumps({"stream": stream, "data": data})


def test_decode_depth_update():
    raw = _frame(
        "btcusdt@depth@100ms",
        {
            "e": "depthUpdate", "E": 1, "s": "BTCUSDT", "U": 157, "u": 160,
            "b": [["0.0024", "10"]], "a": [["0.0026", "0.00000000"]],
        },
    )

    event = decode_message(raw)

    assert isinstance(event, DiffEvent)
    assert (event.first_id, event.final_id) == (157, 160)
    assert event.bids == ((0.0024, 10.0),)
    assert event.asks == ((0.0026, 0.0),)


def test_decode_agg_trade_side_from_maker_flag():
    base = {"e": "aggTrade", "a": 26129, "p": "0.01633102", "q": "4.70443515", "T": 1498793709153}

    sell = decode_message(_frame("btcusdt@aggTrade", {**base, "m": True}))
    buy = decode_message(_frame("btcusdt@aggTrade", {**base, "m": False}))

    assert isinstance(sell, Trade)
    assert sell.id == 26129
    assert sell.side == SELL
    assert buy.side == BUY
    assert sell.timestamp_ms == 1498793709153


def test_decode_plain_trade_uses_trade_id():
    trade = decode_message(
        _frame("btcusdt@trade", {"e": "trade", "t": 12345, "p": "1", "q": "2", "T": 5, "m": False})
    )

    assert trade.id == 12345


def test_bare_payload_without_envelope():
    event = decode_message(json.dumps({"e": "depthUpdate", "U": 1, "u": 2, "b": [], "a": []}))

    assert isinstance(event, DiffEvent)
    assert event.bids == ()


def test_depth_stream_without_event_type():
    event = decode_message(_frame("btcusdt@depth", {"U": 5, "u": 6, "b": [], "a": []}))

    assert isinstance(event, DiffEvent)


@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        "[1, 2, 3]",
        _frame("btcusdt@kline_1m", {"e": "kline"}),
        _frame("btcusdt@depth@100ms", {"e": "depthUpdate", "u": 2}),
        _frame("btcusdt@depth@100ms", {"e": "depthUpdate", "U": 3, "u": 2}),
        _frame("btcusdt@depth@100ms", {"e": "depthUpdate", "U": 1, "u": 2, "b": [["x", "1"]]}),
        _frame("btcusdt@aggTrade", {"e": "aggTrade", "a": 1, "p": "1"}),
        json.dumps({"stream": "btcusdt@aggTrade", "data": [1]}),
    ],
)
def test_unrecognized_or_malformed_frames_fail_closed(raw):
    with pytest.raises(MessageDecodeError):
        decode_message(raw)


def test_decode_snapshot():
    snap = decode_snapshot({"lastUpdateId": "1027024", "bids": [["4.0", "431.0"]], "asks": [["4.000002", "12.0"]]})

    assert snap.cursor == 1027024
    assert snap.bids == ((4.0, 431.0),)
    assert snap.asks == ((4.000002, 12.0),)


@pytest.mark.parametrize(
    "payload",
    [
        None,
        {"bids": [], "asks": []},
        {"lastUpdateId": "abc", "bids": [], "asks": []},
        {"lastUpdateId": 1, "bids": "nope", "asks": []},
    ],
)
def test_decode_snapshot_rejects_bad_payloads(payload):
    with pytest.raises(MessageDecodeError):
        decode_snapshot(payload)


def test_stream_names_are_lower_cased():
    assert list(iter_stream_names("BTCUSDT")) == ["btcusdt@aggTrade", "btcusdt@depth@100ms"]

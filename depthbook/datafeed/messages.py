"""
Decoding of combined-stream frames into typed events.

Every inbound frame is classified by its event-type field ("e") before it is
dispatched. Anything that is not a depth diff or a trade raises
MessageDecodeError; the caller drops the frame and keeps the stream running.

Frame format: {"stream": "btcusdt@depth@100ms", "data": {...}}. A bare
payload (no envelope) is accepted too.
"""

from __future__ import annotations

from typing import Any, Iterable

import orjson

from ..errors import MessageDecodeError
from ..types import BUY, SELL, DepthSnapshot, DiffEvent, Trade

DEPTH_EVENT = "depthUpdate"
AGG_TRADE_EVENT = "aggTrade"
TRADE_EVENT = "trade"


def parse_levels(raw: Any) -> tuple[tuple[float, float], ...]:
    """Parse [[priceString, qtyString], ...] into float pairs."""
    if raw is None:
        return ()
    if not isinstance(raw, (list, tuple)):
        raise MessageDecodeError(f"price levels must be a list, got {type(raw).__name__}")
    try:
        return tuple((float(p), float(q)) for p, q in raw)
    except (TypeError, ValueError) as exc:
        raise MessageDecodeError(f"invalid price level: {exc}") from exc


def _classify(stream: str, data: dict) -> str | None:
    event_type = data.get('e')
    if event_type in (DEPTH_EVENT, AGG_TRADE_EVENT, TRADE_EVENT):
        return event_type
    # Some depth streams omit "e"; fall back to the stream name
    if '@depth' in stream:
        return DEPTH_EVENT
    if stream.endswith('@aggTrade'):
        return AGG_TRADE_EVENT
    if stream.endswith('@trade'):
        return TRADE_EVENT
    return None


def decode_diff(data: dict) -> DiffEvent:
    try:
        first_id = int(data['U'])
        final_id = int(data['u'])
    except (KeyError, TypeError, ValueError) as exc:
        raise MessageDecodeError(f"depth update missing sequence ids: {exc}") from exc
    if first_id > final_id:
        raise MessageDecodeError(f"depth update ids out of order: U={first_id} u={final_id}")
    return DiffEvent(
        first_id=first_id,
        final_id=final_id,
        bids=parse_levels(data.get('b')),
        asks=parse_levels(data.get('a')),
    )


def decode_trade(data: dict, event_type: str = AGG_TRADE_EVENT) -> Trade:
    id_field = 'a' if event_type == AGG_TRADE_EVENT else 't'
    try:
        # m=True: buyer is maker, so the aggressor sold
        return Trade(
            id=int(data[id_field]),
            price=float(data['p']),
            size=float(data['q']),
            timestamp_ms=int(data['T']),
            side=SELL if bool(data['m']) else BUY,
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise MessageDecodeError(f"invalid {event_type} payload: {exc}") from exc


def decode_message(raw: str | bytes) -> DiffEvent | Trade:
    """Decode one stream frame. Raises MessageDecodeError on anything unrecognized."""
    try:
        payload = orjson.loads(raw)
    except orjson.JSONDecodeError as exc:
        raise MessageDecodeError(f"invalid JSON: {exc}") from exc

    if not isinstance(payload, dict):
        raise MessageDecodeError("frame is not a JSON object")

    stream = payload.get('stream', '')
    data = payload.get('data', payload)
    if not isinstance(stream, str) or not isinstance(data, dict):
        raise MessageDecodeError("frame envelope has unexpected types")

    kind = _classify(stream, data)
    if kind == DEPTH_EVENT:
        return decode_diff(data)
    if kind in (AGG_TRADE_EVENT, TRADE_EVENT):
        return decode_trade(data, kind)
    raise MessageDecodeError(f"unrecognized frame (stream={stream!r}, e={data.get('e')!r})")


def decode_snapshot(payload: Any) -> DepthSnapshot:
    """Validate a REST depth payload {lastUpdateId, bids, asks}."""
    if not isinstance(payload, dict):
        raise MessageDecodeError("snapshot payload must be an object")
    if 'bids' not in payload or 'asks' not in payload or 'lastUpdateId' not in payload:
        raise MessageDecodeError("snapshot payload missing required keys")
    try:
        cursor = int(payload['lastUpdateId'])
    except (TypeError, ValueError) as exc:
        raise MessageDecodeError("snapshot lastUpdateId must be int-like") from exc
    return DepthSnapshot(
        cursor=cursor,
        bids=parse_levels(payload['bids']),
        asks=parse_levels(payload['asks']),
    )


def iter_stream_names(symbol: str) -> Iterable[str]:
    lower = symbol.lower()
    yield f"{lower}@aggTrade"
    yield f"{lower}@depth@100ms"

"""
REST depth snapshot fetcher.

One call = one request. The bounded retry around it lives in
SyncCoordinator, which also has to re-check the diff buffer between attempts.
"""

from __future__ import annotations

import asyncio
import logging

import aiohttp
import orjson

from ..errors import MessageDecodeError, SnapshotError
from ..types import DepthSnapshot
from .messages import decode_snapshot

log = logging.getLogger(__name__)


class SnapshotFetcher:
    """
    Fetches {lastUpdateId, bids, asks} for one symbol.

    Works against the exchange directly or against the forwarding proxy
    (depthbook.proxy); both speak the same query string and body format.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        symbol: str,
        url: str,
        limit: int = 1000,
        timeout_s: float = 10.0,
    ) -> None:
        self.session = session
        self.symbol = symbol.upper()
        self.url = url
        self.limit = limit
        self.timeout = aiohttp.ClientTimeout(total=timeout_s)

    async def fetch(self) -> DepthSnapshot:
        params = {'symbol': self.symbol, 'limit': str(self.limit)}
        try:
            async with self.session.get(self.url, params=params, timeout=self.timeout) as resp:
                if resp.status >= 400:
                    raise SnapshotError(f"Snapshot fetch failed: {resp.status}")
                data = await resp.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise SnapshotError(f"Snapshot fetch failed: {exc}") from exc

        try:
            snapshot = decode_snapshot(orjson.loads(data))
        except (orjson.JSONDecodeError, MessageDecodeError) as exc:
            raise SnapshotError(f"Invalid snapshot payload: {exc}") from exc

        log.debug(
            "Snapshot %s lastUpdateId=%d bids=%d asks=%d",
            self.symbol, snapshot.cursor, len(snapshot.bids), len(snapshot.asks),
        )
        return snapshot

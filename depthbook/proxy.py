#!/usr/bin/env python3
"""
Snapshot forwarding proxy.

Relays GET /api/depth?symbol=&limit= to the upstream REST depth endpoint and
returns the upstream JSON body verbatim. Stateless; responses are never
cached.

Usage:
    python -m depthbook.proxy --port 8080

    Then point the client at it:
    DEPTHBOOK_SNAPSHOT_URL=http://localhost:8080/api/depth python -m depthbook.main BTCUSDT
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from typing import AsyncIterator

import aiohttp
from aiohttp import web

from .config import DEFAULT_SYMBOL, SNAPSHOT_LIMIT, SNAPSHOT_TIMEOUT_S, SNAPSHOT_URL
from .logging_config import setup_logging

log = logging.getLogger(__name__)

NO_STORE = {"Cache-Control": "no-store"}

UPSTREAM_URL_KEY = web.AppKey("upstream_url", str)
SESSION_KEY = web.AppKey("session", aiohttp.ClientSession)


async def depth_handler(request: web.Request) -> web.Response:
    symbol = (request.query.get("symbol") or DEFAULT_SYMBOL).upper()
    limit = request.query.get("limit") or str(SNAPSHOT_LIMIT)

    session = request.app[SESSION_KEY]
    upstream = request.app[UPSTREAM_URL_KEY]
    try:
        async with session.get(upstream, params={"symbol": symbol, "limit": limit}) as resp:
            if resp.status >= 400:
                log.warning("Upstream %s returned %d for %s", upstream, resp.status, symbol)
                return web.json_response(
                    {"error": f"Upstream error {resp.status}"}, status=502, headers=NO_STORE
                )
            body = await resp.read()
    except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
        log.warning("Upstream request failed for %s: %s", symbol, exc)
        return web.json_response({"error": str(exc) or type(exc).__name__}, status=500, headers=NO_STORE)

    return web.Response(body=body, content_type="application/json", headers=NO_STORE)


def make_app(upstream_url: str = SNAPSHOT_URL, timeout_s: float = SNAPSHOT_TIMEOUT_S) -> web.Application:
    """Build the proxy application. One shared ClientSession per app."""
    app = web.Application()
    app[UPSTREAM_URL_KEY] = upstream_url

    async def client_session(app: web.Application) -> AsyncIterator[None]:
        async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=timeout_s)) as session:
            app[SESSION_KEY] = session
            yield

    app.cleanup_ctx.append(client_session)
    app.router.add_get("/api/depth", depth_handler)
    return app


def cli() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="depthbook proxy - forwards depth snapshot requests upstream",
    )

    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Bind address (default: 127.0.0.1)"
    )

    parser.add_argument(
        "--port",
        type=int,
        default=8080,
        help="Bind port (default: 8080)"
    )

    parser.add_argument(
        "--upstream",
        default=SNAPSHOT_URL,
        help=f"Upstream depth endpoint (default: {SNAPSHOT_URL})"
    )

    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (default: INFO)"
    )

    args = parser.parse_args()

    setup_logging(args.log_level)
    web.run_app(make_app(args.upstream), host=args.host, port=args.port)


if __name__ == "__main__":
    cli()

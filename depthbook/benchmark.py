#!/usr/bin/env python3
"""
Micro-benchmark for depthbook hot paths.

Tests:
1. Diff application throughput
2. Trade log ingestion throughput
3. Snapshot reconciliation with a full diff buffer
4. View derivation speed (what the UI pays per tick)

Usage:
    python -m depthbook.benchmark
"""

from __future__ import annotations

import random
import time
from statistics import mean, stdev

from .datafeed.orderbook import OrderBook
from .datafeed.sync import SyncCoordinator
from .engine.trades import TradeLog
from .engine.view import ViewDeriver
from .types import BUY, SELL, DepthSnapshot, DiffEvent, Trade


def generate_mock_snapshot(base_price: float = 60000.0, levels: int = 1000, cursor: int = 1_000_000) -> DepthSnapshot:
    """Generate a mock order book snapshot."""
    tick_size = 0.01

    bids = tuple(
        (round(base_price - (i + 1) * tick_size, 2), random.uniform(0.01, 5)) for i in range(levels)
    )
    asks = tuple(
        (round(base_price + (i + 1) * tick_size, 2), random.uniform(0.01, 5)) for i in range(levels)
    )
    return DepthSnapshot(cursor=cursor, bids=bids, asks=asks)


def generate_mock_diff(base_price: float, update_id: int, changes: int = 50) -> DiffEvent:
    """Generate a mock diff event covering exactly one sequence id."""
    tick_size = 0.01

    bids = []
    asks = []

    for _ in range(changes // 2):
        offset = random.randint(1, 500)
        # 20% of updates remove the level
        bid_qty = random.uniform(0.01, 5) if random.random() > 0.2 else 0.0
        ask_qty = random.uniform(0.01, 5) if random.random() > 0.2 else 0.0

        bids.append((round(base_price - offset * tick_size, 2), bid_qty))
        asks.append((round(base_price + offset * tick_size, 2), ask_qty))

    return DiffEvent(update_id, update_id, tuple(bids), tuple(asks))


def benchmark_diff_apply(iterations: int = 10000) -> None:
    """Benchmark diff application throughput."""
    print("\n=== Diff Apply Benchmark ===")

    snapshot = generate_mock_snapshot()
    book = OrderBook("BTCUSDT")
    book.load_snapshot(snapshot)

    diffs = [generate_mock_diff(60000.0, snapshot.cursor + i + 1) for i in range(iterations)]

    start = time.perf_counter()
    for d in diffs:
        book.apply_diff(d)
    elapsed = time.perf_counter() - start

    rate = iterations / elapsed
    print(f"  Diffs applied: {iterations:,}")
    print(f"  Time: {elapsed*1000:.1f}ms")
    print(f"  Rate: {rate:,.0f} diffs/sec")
    print(f"  Per diff: {elapsed/iterations*1_000_000:.1f}µs")


def benchmark_trade_log(iterations: int = 100000) -> None:
    """Benchmark trade ingestion."""
    print("\n=== Trade Log Benchmark ===")

    log = TradeLog()
    base_ts = int(time.time() * 1000)
    trades = [
        Trade(
            id=i,
            price=60000.0 + random.uniform(-5, 5),
            size=random.uniform(0.001, 1),
            timestamp_ms=base_ts + i * 10,
            side=BUY if random.random() > 0.5 else SELL,
        )
        for i in range(iterations)
    ]

    start = time.perf_counter()
    for t in trades:
        log.ingest(t)
    elapsed = time.perf_counter() - start

    print(f"  Trades ingested: {iterations:,}")
    print(f"  Time: {elapsed*1000:.1f}ms")
    print(f"  Rate: {iterations / elapsed:,.0f} trades/sec")


def benchmark_reconcile(buffered: int = 2000) -> None:
    """Benchmark snapshot load + bridge + buffered replay."""
    print("\n=== Snapshot Reconcile Benchmark ===")

    snapshot = generate_mock_snapshot()

    async def fetch_snapshot() -> DepthSnapshot:
        return snapshot

    coordinator = SyncCoordinator(OrderBook("BTCUSDT"), fetch_snapshot, buffer_max=buffered * 2)
    # Half the buffer predates the snapshot and gets discarded
    first = snapshot.cursor - buffered // 2 + 1
    for i in range(buffered):
        coordinator.on_diff(generate_mock_diff(60000.0, first + i))

    start = time.perf_counter()
    ok = coordinator.reconcile(snapshot)
    elapsed = time.perf_counter() - start

    print(f"  Buffered diffs: {buffered:,}")
    print(f"  Synced: {ok}")
    print(f"  Time: {elapsed*1000:.2f}ms")


def benchmark_view(iterations: int = 500) -> None:
    """Benchmark view derivation (what the UI needs per tick)."""
    print("\n=== View Derivation Benchmark ===")

    book = OrderBook("BTCUSDT")
    book.load_snapshot(generate_mock_snapshot())
    trades = TradeLog()
    deriver = ViewDeriver("BTCUSDT")

    # Warm up
    for _ in range(10):
        deriver.derive(book, trades)

    times = []
    for _ in range(iterations):
        start = time.perf_counter()
        deriver.derive(book, trades)
        times.append(time.perf_counter() - start)

    avg_time = mean(times) * 1000
    std_time = stdev(times) * 1000

    print(f"  Iterations: {iterations}")
    print(f"  Avg time: {avg_time:.3f}ms")
    print(f"  Std dev: {std_time:.3f}ms")
    print(f"  Max FPS possible: {1000/avg_time:,.0f}")


def main() -> None:
    """Run all benchmarks."""
    print("=" * 60)
    print("depthbook Performance Benchmark")
    print("=" * 60)

    benchmark_diff_apply()
    benchmark_trade_log()
    benchmark_reconcile()
    benchmark_view()

    print("\n" + "=" * 60)
    print("Benchmark complete.")
    print("=" * 60)


if __name__ == "__main__":
    main()

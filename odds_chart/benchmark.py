#!/usr/bin/env python3
"""
Micro-benchmark for Odds Chart performance.

Tests:
1. Frame decoding + reduction throughput (feed hot path)
2. Window query speed on a full day of samples
3. Full frame render speed (what the 500ms render tick needs)

Usage:
    python -m odds_chart.benchmark
"""

from __future__ import annotations

import random
import time
from statistics import mean, stdev

import orjson

from .datafeed.feed_client import FeedSupervisor
from .datafeed.reducer import SampleReducer
from .engine.series import SeriesStore
from .types import Sample

ASSET = "12345"
MS_PER_DAY = 86_400_000


def generate_mock_book(ts_ms: int, mid: float) -> dict:
    """Generate a mock "book" event around mid."""
    bids = [{"price": f"{mid - 0.01 * (i + 1):.2f}", "size": f"{random.uniform(1, 500):.2f}"}
            for i in range(20)]
    asks = [{"price": f"{mid + 0.01 * (i + 1):.2f}", "size": f"{random.uniform(1, 500):.2f}"}
            for i in range(20)]
    return {
        "event_type": "book",
        "market": "0xmarket",
        "asset_id": ASSET,
        "timestamp": str(ts_ms),
        "hash": "0x0",
        "bids": bids,
        "asks": asks,
        "last_trade_price": f"{mid:.2f}",
    }


def generate_mock_price_change(ts_ms: int, mid: float) -> dict:
    """Generate a mock "price_change" batch covering two assets."""
    changes = [
        {
            "asset_id": asset,
            "price": f"{mid:.2f}",
            "size": f"{random.uniform(1, 100):.2f}",
            "side": random.choice(["BUY", "SELL"]),
            "hash": "0x0",
            "best_bid": f"{mid - 0.01:.2f}",
            "best_ask": f"{mid + 0.01:.2f}",
        }
        for asset in ("99999", ASSET)
    ]
    return {
        "event_type": "price_change",
        "market": "0xmarket",
        "price_changes": changes,
        "timestamp": str(ts_ms),
    }


def mock_store(samples: int, now_ms: int) -> SeriesStore:
    """Store holding `samples` evenly spaced samples over the last day."""
    store = SeriesStore()
    step = MS_PER_DAY // samples
    mid = 0.5
    for i in range(samples):
        mid = min(0.95, max(0.05, mid + random.uniform(-0.005, 0.005)))
        store.append(Sample(
            timestamp=now_ms - MS_PER_DAY + i * step,
            mid=mid,
            spread=0.02,
            bid=mid - 0.01,
            ask=mid + 0.01,
            bid_size=random.uniform(1, 500),
            ask_size=random.uniform(1, 500),
        ))
    return store


class _NoConnect:
    """Placeholder connector; the benchmark never opens a socket."""

    def __call__(self, url: str):
        raise RuntimeError("benchmark does not connect")


def benchmark_message_handling(iterations: int = 20000) -> None:
    """Benchmark decode + reduce of raw feed frames."""
    print("\n=== Message Handling Benchmark ===")

    store = SeriesStore()
    supervisor = FeedSupervisor("ws://unused", ASSET, SampleReducer(ASSET, store), connect=_NoConnect())

    base_ts = int(time.time() * 1000)
    frames = []
    for i in range(iterations):
        mid = 0.3 + random.uniform(-0.05, 0.05)
        if i % 2:
            frames.append(orjson.dumps(generate_mock_price_change(base_ts + i, mid)))
        else:
            frames.append(orjson.dumps([generate_mock_book(base_ts + i, mid)]))

    start = time.perf_counter()
    for frame in frames:
        supervisor.handle_message(frame)
    elapsed = time.perf_counter() - start

    rate = iterations / elapsed
    print(f"  Frames handled: {iterations:,}")
    print(f"  Samples stored: {len(store):,}")
    print(f"  Time: {elapsed*1000:.1f}ms")
    print(f"  Rate: {rate:,.0f} frames/sec")
    print(f"  Per frame: {elapsed/iterations*1_000_000:.1f}µs")


def benchmark_window_query(samples: int = 200_000, iterations: int = 50) -> None:
    """Benchmark the 24h window scan."""
    print("\n=== Window Query Benchmark ===")

    now = int(time.time() * 1000)
    store = mock_store(samples, now)

    times = []
    for _ in range(iterations):
        start = time.perf_counter()
        store.window(now - MS_PER_DAY // 2)
        times.append(time.perf_counter() - start)

    avg_time = mean(times) * 1000
    std_time = stdev(times) * 1000

    print(f"  Samples: {samples:,}")
    print(f"  Avg time: {avg_time:.3f}ms")
    print(f"  Std dev: {std_time:.3f}ms")


def benchmark_render(samples: int = 200_000, iterations: int = 50) -> None:
    """Benchmark full frame rendering (what the render tick needs)."""
    print("\n=== Frame Render Benchmark ===")

    from .ui.chart import ChartRenderer

    now = int(time.time() * 1000)
    renderer = ChartRenderer(mock_store(samples, now), "Benchmark market")

    times = []
    for _ in range(iterations):
        start = time.perf_counter()
        renderer.render(now, 24, 180, 50)
        times.append(time.perf_counter() - start)

    avg_time = mean(times) * 1000
    std_time = stdev(times) * 1000

    print(f"  Samples: {samples:,}")
    print(f"  Avg time: {avg_time:.3f}ms")
    print(f"  Std dev: {std_time:.3f}ms")
    print(f"  Max FPS possible: {1000/avg_time:,.0f}")


def main() -> None:
    """Run all benchmarks."""
    print("=" * 60)
    print("Odds Chart Performance Benchmark")
    print("=" * 60)

    benchmark_message_handling()
    benchmark_window_query()
    benchmark_render()

    print("\n" + "=" * 60)
    print("Benchmark complete.")
    print("=" * 60)


if __name__ == "__main__":
    main()

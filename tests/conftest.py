"""Shared test fixtures and fakes for odds_chart tests."""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from typing import NamedTuple

import aiohttp
import pytest

from odds_chart.datafeed.reducer import SampleReducer
from odds_chart.engine.series import SeriesStore
from odds_chart.types import Sample

ASSET = "111"
OTHER_ASSET = "222"


def make_sample(timestamp: int, mid: float = 0.5, spread: float = 0.02,
                bid_size: float = 0.0, ask_size: float = 0.0) -> Sample:
    return Sample(
        timestamp=timestamp,
        mid=mid,
        spread=spread,
        bid=mid - spread / 2,
        ask=mid + spread / 2,
        bid_size=bid_size,
        ask_size=ask_size,
    )


def book_payload(asset_id=ASSET, bids=None, asks=None, timestamp="1700000000000"):
    return {
        "event_type": "book",
        "market": "0xmarket",
        "asset_id": asset_id,
        "timestamp": timestamp,
        "hash": "0xabc",
        "bids": bids if bids is not None else [{"price": "0.40", "size": "10"}],
        "asks": asks if asks is not None else [{"price": "0.42", "size": "8"}],
        "last_trade_price": "0.41",
    }


def price_change_payload(changes=None, timestamp="1700000000500"):
    return {
        "event_type": "price_change",
        "market": "0xmarket",
        "timestamp": timestamp,
        "price_changes": changes if changes is not None else [
            change_payload(OTHER_ASSET, best_bid="0.10", best_ask="0.90"),
            change_payload(ASSET),
        ],
    }


def change_payload(asset_id=ASSET, best_bid="0.33", best_ask="0.35", size="5",
                   price="0.34", side="BUY"):
    return {
        "asset_id": asset_id,
        "price": price,
        "size": size,
        "side": side,
        "hash": "0xdef",
        "best_bid": best_bid,
        "best_ask": best_ask,
    }


class FakeMessage(NamedTuple):
    type: aiohttp.WSMsgType
    data: object


class FakeWebSocket:
    """In-memory stand-in for aiohttp.ClientWebSocketResponse."""

    def __init__(self, frames=(), hold_open: bool = False) -> None:
        self.sent: list[str] = []
        self.closed = False
        self._queue: asyncio.Queue = asyncio.Queue()
        for frame in frames:
            self.feed(frame)
        if not hold_open:
            self.drop()

    def feed(self, frame: str) -> None:
        self._queue.put_nowait(FakeMessage(aiohttp.WSMsgType.TEXT, frame))

    def fail(self) -> None:
        self._queue.put_nowait(FakeMessage(aiohttp.WSMsgType.ERROR, None))

    def drop(self) -> None:
        """Simulate the server closing the connection."""
        self._queue.put_nowait(None)

    async def send_str(self, data: str) -> None:
        if self.closed:
            raise ConnectionResetError("socket closed")
        self.sent.append(data)

    async def close(self) -> None:
        self.closed = True
        self.drop()

    def exception(self):
        return None

    def __aiter__(self):
        return self

    async def __anext__(self) -> FakeMessage:
        msg = await self._queue.get()
        if msg is None:
            self.closed = True
            raise StopAsyncIteration
        return msg


class FakeConnector:
    """
    Replaces session.ws_connect. Hands out the given sockets (or raises the
    given exceptions) in order, then refuses every further attempt.
    """

    def __init__(self, *outcomes) -> None:
        self._outcomes = list(outcomes)
        self.calls: list[tuple[str, float]] = []

    def __call__(self, url: str):
        self.calls.append((url, time.monotonic()))
        return self._connect()

    @asynccontextmanager
    async def _connect(self):
        if not self._outcomes:
            raise aiohttp.ClientConnectionError("connection refused")
        outcome = self._outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        yield outcome


async def wait_until(predicate, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def store():
    return SeriesStore()


@pytest.fixture
def reducer(store):
    return SampleReducer(ASSET, store)

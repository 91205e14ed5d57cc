"""
Reduce feed events to time-series samples.

Two event shapes feed one series:
1. "book" snapshots: top of book on each side, wide spreads rejected
2. "price_change" batches: best bid/ask carried by the matching change

book_to_sample() and price_change_to_sample() are pure; SampleReducer wraps
them with the tracked asset and appends successful reductions to the store.
"""

from __future__ import annotations

import math

from ..config import MAX_SPREAD
from ..engine.series import SeriesStore
from ..log import get_logger
from ..types import FeedEvent, OrderBookSnapshot, PriceChangeEvent, Sample

logger = get_logger("reducer")


def parse_number(value: str | float) -> float:
    """float() that rejects NaN and infinities."""
    number = float(value)
    if not math.isfinite(number):
        raise ValueError(f"non-finite number: {value!r}")
    return number


def book_to_sample(book: OrderBookSnapshot, asset_id: str) -> Sample | None:
    """
    Top-of-book sample from a full snapshot.

    Empty bid side counts as 0, empty ask side as 1. Returns None for other
    assets and for spreads above MAX_SPREAD (crossed or one-sided books).
    """
    if book.asset_id != asset_id:
        return None

    best_bid = parse_number(book.bids[0].price) if book.bids else 0.0
    best_ask = parse_number(book.asks[0].price) if book.asks else 1.0
    bid_size = parse_number(book.bids[0].size) if book.bids else 0.0
    ask_size = parse_number(book.asks[0].size) if book.asks else 0.0

    mid = (best_bid + best_ask) / 2
    spread = best_ask - best_bid

    logger.debug(
        "book update: bid=%s (%s) ask=%s (%s) mid=%.4f spread=%.4f last=%s",
        best_bid, bid_size, best_ask, ask_size, mid, spread, book.last_trade_price,
    )

    if spread > MAX_SPREAD:
        logger.debug("skipping book: spread too wide (%.1f%%)", spread * 100)
        return None

    return Sample(
        timestamp=int(book.timestamp),
        mid=mid,
        spread=spread,
        bid=best_bid,
        ask=best_ask,
        bid_size=bid_size,
        ask_size=ask_size,
    )


def price_change_to_sample(event: PriceChangeEvent, asset_id: str) -> Sample | None:
    """
    Sample from the first change in the batch that concerns asset_id.

    Only the traded size is known here, so it stands in for both sides.
    No spread filter on this path.
    """
    change = next((pc for pc in event.price_changes if pc.asset_id == asset_id), None)
    if change is None:
        return None

    best_bid = parse_number(change.best_bid)
    best_ask = parse_number(change.best_ask)
    size = parse_number(change.size)

    logger.debug(
        "trade: %s %s @ %s, best bid=%s best ask=%s",
        change.side.value, change.size, change.price, change.best_bid, change.best_ask,
    )

    return Sample(
        timestamp=int(event.timestamp),
        mid=(best_bid + best_ask) / 2,
        spread=best_ask - best_bid,
        bid=best_bid,
        ask=best_ask,
        bid_size=size,
        ask_size=size,
    )


class SampleReducer:
    """Filters events to one asset and appends the resulting samples."""

    def __init__(self, asset_id: str, store: SeriesStore) -> None:
        self.asset_id = asset_id
        self.store = store

    def reduce_book(self, book: OrderBookSnapshot) -> Sample | None:
        sample = book_to_sample(book, self.asset_id)
        if sample is not None:
            self.store.append(sample)
        return sample

    def reduce_price_change(self, event: PriceChangeEvent) -> Sample | None:
        sample = price_change_to_sample(event, self.asset_id)
        if sample is not None:
            self.store.append(sample)
        return sample

    def reduce(self, event: FeedEvent) -> Sample | None:
        """Dispatch on the event variant."""
        if isinstance(event, OrderBookSnapshot):
            return self.reduce_book(event)
        if isinstance(event, PriceChangeEvent):
            return self.reduce_price_change(event)
        raise TypeError(f"unsupported event: {type(event).__name__}")

"""
Data types for Odds Chart.

Wire shapes mirror the market channel payloads: prices and sizes stay strings
on the wire and are parsed by the reducer. Sample is the only type that is
stored, and the only one the UI consumes.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, NamedTuple, Union


class Side(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


class OrderLevel(NamedTuple):
    """Single price level quote. Strings as transmitted."""
    price: str
    size: str


class OrderBookSnapshot(NamedTuple):
    """Full book for one asset at one instant (event_type == "book")."""
    market: str
    asset_id: str
    timestamp: str                # epoch ms, as a string
    hash: str
    bids: tuple[OrderLevel, ...]  # Best price first
    asks: tuple[OrderLevel, ...]  # Best price first
    last_trade_price: str = ""


class PriceChange(NamedTuple):
    """One incremental trade / level update inside a price_change batch."""
    asset_id: str
    price: str
    size: str
    side: Side
    hash: str
    best_bid: str
    best_ask: str


class PriceChangeEvent(NamedTuple):
    """Batch of price changes sharing a timestamp (event_type == "price_change")."""
    market: str
    price_changes: tuple[PriceChange, ...]
    timestamp: str


class Sample(NamedTuple):
    """
    One point of the time series.

    mid == (bid + ask) / 2 and spread == ask - bid for every sample.
    """
    timestamp: int  # epoch ms
    mid: float
    spread: float
    bid: float
    ask: float
    bid_size: float
    ask_size: float


FeedEvent = Union[OrderBookSnapshot, PriceChangeEvent]


class EventParseError(ValueError):
    """Raised when a recognised event is missing fields or has the wrong shape."""


def _levels(raw: Any) -> tuple[OrderLevel, ...]:
    return tuple(OrderLevel(str(level["price"]), str(level["size"])) for level in raw)


def _price_change(raw: dict) -> PriceChange:
    return PriceChange(
        asset_id=str(raw["asset_id"]),
        price=str(raw["price"]),
        size=str(raw["size"]),
        side=Side(raw["side"]),
        hash=str(raw.get("hash", "")),
        best_bid=str(raw["best_bid"]),
        best_ask=str(raw["best_ask"]),
    )


def _tracked(raw: Any, asset_id: str | None) -> bool:
    if asset_id is None:
        return True
    return isinstance(raw, dict) and str(raw.get("asset_id")) == asset_id


def parse_event(obj: Any, asset_id: str | None = None) -> FeedEvent | None:
    """
    Decode one JSON object from the feed into a typed event.

    Returns None for event types we don't track (tick_size_change,
    last_trade_price, ...). Raises EventParseError for a "book" or
    "price_change" payload that doesn't match its shape.

    With asset_id set, price_change entries for other assets are dropped
    before decoding, so their shape never matters.
    """
    if not isinstance(obj, dict):
        raise EventParseError(f"expected an object, got {type(obj).__name__}")

    event_type = obj.get("event_type")
    try:
        if event_type == "book":
            return OrderBookSnapshot(
                market=str(obj.get("market", "")),
                asset_id=str(obj["asset_id"]),
                timestamp=str(obj["timestamp"]),
                hash=str(obj.get("hash", "")),
                bids=_levels(obj.get("bids") or ()),
                asks=_levels(obj.get("asks") or ()),
                last_trade_price=str(obj.get("last_trade_price", "")),
            )
        if event_type == "price_change":
            return PriceChangeEvent(
                market=str(obj.get("market", "")),
                price_changes=tuple(
                    _price_change(pc) for pc in obj["price_changes"] if _tracked(pc, asset_id)
                ),
                timestamp=str(obj["timestamp"]),
            )
    except (KeyError, TypeError, ValueError) as e:
        raise EventParseError(f"malformed {event_type} event: {e!r}") from e

    return None

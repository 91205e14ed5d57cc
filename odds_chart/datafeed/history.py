"""
One-shot REST backfill of the price history.

Best effort: any failure is logged and yields zero samples so the live feed
still starts. Historical points carry no book, so each becomes a sample with
a fixed synthetic spread around the price and zero sizes.
"""

from __future__ import annotations

import asyncio
import time

import aiohttp
import orjson

from ..config import HISTORY_FIDELITY, HISTORY_SPREAD, HISTORY_URL
from ..engine.series import SeriesStore
from ..log import get_logger
from ..types import Sample
from .reducer import parse_number

logger = get_logger("history")


def history_to_samples(points: list[dict]) -> list[Sample]:
    """Convert [{t: epoch_sec, p: price}, ...] to samples, keeping order."""
    half = HISTORY_SPREAD / 2
    samples = []
    for point in points:
        price = parse_number(point['p'])
        samples.append(Sample(
            timestamp=int(point['t']) * 1000,
            mid=price,
            spread=HISTORY_SPREAD,
            bid=price - half,
            ask=price + half,
            bid_size=0.0,
            ask_size=0.0,
        ))
    return samples


async def _fetch_history(
    session: aiohttp.ClientSession,
    url: str,
    asset_id: str,
    start_ts: int,
) -> list[dict] | None:
    """GET the history window. Returns None on a non-success status."""
    params = {
        'startTs': str(start_ts),
        'market': asset_id,
        'fidelity': str(HISTORY_FIDELITY),
    }
    async with session.get(url, params=params) as resp:
        if not 200 <= resp.status < 300:
            logger.error("failed to fetch history: HTTP %s", resp.status)
            return None
        data = orjson.loads(await resp.read())
    if not isinstance(data, dict):
        raise ValueError(f"unexpected history payload: {type(data).__name__}")
    return data.get('history') or []


async def backfill(
    session: aiohttp.ClientSession,
    store: SeriesStore,
    asset_id: str,
    hours_back: float = 24.0,
    url: str = HISTORY_URL,
    now: float | None = None,
) -> int:
    """
    Seed the store with `hours_back` hours of history for asset_id.

    Returns the number of samples appended (0 on any failure). Never raises
    except for cancellation.
    """
    now_sec = int(time.time() if now is None else now)
    start_ts = now_sec - int(hours_back * 3600)

    logger.info("backfilling %sh of history...", hours_back)

    try:
        points = await _fetch_history(session, url, asset_id, start_ts)
    except asyncio.CancelledError:
        raise
    except (aiohttp.ClientError, asyncio.TimeoutError, OSError, ValueError) as e:
        logger.error("error fetching history: %r", e)
        return 0

    if points is None:
        return 0

    try:
        samples = history_to_samples(points)
    except (KeyError, TypeError, ValueError) as e:
        logger.error("malformed history payload: %r", e)
        return 0

    store.extend(samples)
    logger.info("loaded %d historical data points", len(samples))
    return len(samples)

"""
ASCII price chart rasterizer.

Turns the time window of samples into a fixed-size character grid plus a
header (title, odds, scale) and a footer (time axis). Pure with respect to
the store: rendering the same window twice gives the same frame.

Layout (terminal rows):
    title
    yes/no odds | window | price-axis bounds
    points | top-of-book sizes | spread
    <blank>
    height x (price label + grid row)
    axis line
    oldest ... newest time
"""

from __future__ import annotations

from datetime import datetime
from typing import NamedTuple

import numpy as np

from ..engine.series import SeriesStore
from ..log import get_logger
from ..types import Sample

logger = get_logger("chart")

MS_PER_HOUR = 3_600_000

POINT_CHAR = "●"
NO_DATA_TEXT = "no data yet"

# Terminal rows/columns reserved around the grid
HEADER_ROWS = 8
LABEL_COLS = 13
MIN_GRID_HEIGHT = 4
MIN_GRID_WIDTH = 10

# Scale
MIN_RANGE = 0.1
PADDING_RATIO = 0.1
PLACEHOLDER_MID = 0.5  # Uninitialized mid the feed sometimes emits last


class ChartFrame(NamedTuple):
    """One rendered frame, ready to be written line by line."""
    lines: tuple[str, ...]
    points: int
    min_mid: float
    max_mid: float

    @property
    def text(self) -> str:
        return "\n".join(self.lines)


class NoData(NamedTuple):
    """Placeholder frame. reason is "empty" (store) or "out_of_window"."""
    reason: str

    @property
    def lines(self) -> tuple[str, ...]:
        return (NO_DATA_TEXT,)

    @property
    def text(self) -> str:
        return NO_DATA_TEXT


def grid_size(columns: int, rows: int) -> tuple[int, int]:
    """(width, height) of the plot area for a terminal of columns x rows."""
    width = max(MIN_GRID_WIDTH, columns - LABEL_COLS)
    height = max(MIN_GRID_HEIGHT, rows - HEADER_ROWS)
    return width, height


def price_bounds(mids: np.ndarray) -> tuple[float, float]:
    """Padded, [0, 1]-clamped axis bounds for a non-empty array of mids."""
    data_min = float(mids.min())
    data_max = float(mids.max())
    data_range = max(data_max - data_min, MIN_RANGE)

    padding = data_range * PADDING_RATIO
    min_mid = max(0.0, data_min - padding)
    max_mid = min(1.0, data_max + padding)
    return min_mid, max_mid


def plot_grid(
    mids: np.ndarray,
    min_mid: float,
    max_mid: float,
    width: int,
    height: int,
) -> list[list[str]]:
    """
    Rasterize mids into a height x width grid, row 0 = max_mid.

    Column i shows the sample at floor(i * n / width): with fewer samples
    than columns points repeat, with more they are decimated.
    """
    grid = [[" "] * width for _ in range(height)]
    n = len(mids)
    span = max_mid - min_mid

    indices = (np.arange(width) * n) // width
    for col, idx in enumerate(indices):
        if idx >= n:
            break
        normalized = (mids[idx] - min_mid) / span if span > 0 else 0.5
        row = int(np.floor((1 - normalized) * (height - 1)))
        row = min(height - 1, max(0, row))
        grid[row][col] = POINT_CHAR

    return grid


def headline_sample(window: list[Sample]) -> Sample:
    """Latest sample, skipping a trailing placeholder mid of exactly 0.5."""
    latest = window[-1]
    if latest.mid == PLACEHOLDER_MID and len(window) > 1:
        return window[-2]
    return latest


def format_time(timestamp_ms: int) -> str:
    return datetime.fromtimestamp(timestamp_ms / 1000).strftime("%H:%M:%S")


def _format_hours(hours: float) -> str:
    return f"{hours:g}h"


class ChartRenderer:
    """Renders the store's recent window as an ASCII chart."""

    def __init__(self, store: SeriesStore, title: str) -> None:
        self.store = store
        self.title = title

    def render(
        self,
        now_ms: int,
        window_hours: float,
        width: int,
        height: int,
    ) -> ChartFrame | NoData:
        cutoff = now_ms - int(window_hours * MS_PER_HOUR)
        window = self.store.window(cutoff)

        if not window:
            if len(self.store) == 0:
                logger.debug("no data yet")
                return NoData("empty")
            logger.debug("no data in the last %s", _format_hours(window_hours))
            return NoData("out_of_window")

        mids = np.fromiter((s.mid for s in window), dtype=np.float64, count=len(window))
        min_mid, max_mid = price_bounds(mids)
        grid = plot_grid(mids, min_mid, max_mid, width, height)

        latest = headline_sample(window)
        yes_chance = latest.mid * 100
        no_chance = (1 - latest.mid) * 100

        lines = [
            self.title,
            f"yes: {yes_chance:.1f}% | no: {no_chance:.1f}% | last {_format_hours(window_hours)}"
            f" | mid: ${min_mid:.3f} - ${max_mid:.3f}",
            f"{len(window)} data points | vol: {latest.bid_size:.0f} bid / {latest.ask_size:.0f} ask"
            f" | spread: ${latest.spread:.4f}",
            "",
        ]

        # Price labels, linearly interpolated from max (top) to min (bottom)
        span = max_mid - min_mid
        for row in range(height):
            fraction = (height - 1 - row) / (height - 1) if height > 1 else 1.0
            price = min_mid + fraction * span
            lines.append(f"${price:.3f}".ljust(8) + "│ " + "".join(grid[row]))

        # Time axis
        oldest = format_time(window[0].timestamp)
        newest = format_time(window[-1].timestamp)
        gap = max(1, width + 2 - len(oldest) - len(newest))
        lines.append(" " * 8 + "└" + "─" * (width + 1))
        lines.append(" " * 8 + oldest + " " * gap + newest)

        return ChartFrame(
            lines=tuple(lines),
            points=len(window),
            min_mid=min_mid,
            max_mid=max_mid,
        )

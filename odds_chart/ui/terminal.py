"""
Fixed-interval terminal driver for the chart.

Every tick clears the console and writes a fresh frame sized to the current
terminal. Runs until cancelled. Render failures are logged and the next
tick tries again.
"""

from __future__ import annotations

import asyncio
import time

from rich.console import Console
from rich.text import Text

from ..config import DEFAULT_WINDOW_HOURS, RENDER_INTERVAL_SEC
from ..log import get_logger
from .chart import POINT_CHAR, ChartFrame, ChartRenderer, NoData, grid_size

logger = get_logger("terminal")

# Color scheme
TITLE_STYLE = "bold"
STATS_STYLE = "#94a3b8"
GRID_STYLE = "#22c55e"
NO_DATA_STYLE = "dim"


def now_ms() -> int:
    return int(time.time() * 1000)


def frame_to_text(frame: ChartFrame | NoData) -> Text:
    """Styled rich Text for a frame. The characters are exactly frame.text."""
    if isinstance(frame, NoData):
        return Text(frame.text, style=NO_DATA_STYLE)

    text = Text(no_wrap=True, overflow="crop")
    for i, line in enumerate(frame.lines):
        if i:
            text.append("\n")
        if i == 0:
            text.append(line, style=TITLE_STYLE)
        elif i < 3:
            text.append(line, style=STATS_STYLE)
        elif POINT_CHAR in line:
            label, _, plot = line.partition("│")
            text.append(label + "│")
            text.append(plot, style=GRID_STYLE)
        else:
            text.append(line)
    return text


class RenderLoop:
    """
    Redraws the chart every `interval` seconds.

    Usage:
        loop = RenderLoop(renderer, console)
        task = asyncio.create_task(loop.run())
        ...
        task.cancel()
    """

    def __init__(
        self,
        renderer: ChartRenderer,
        console: Console,
        interval: float = RENDER_INTERVAL_SEC,
        window_hours: float = DEFAULT_WINDOW_HOURS,
    ) -> None:
        self.renderer = renderer
        self.console = console
        self.interval = interval
        self.window_hours = window_hours
        self.ticks: int = 0
        self.last_frame: ChartFrame | NoData | None = None

    def tick(self, now: int | None = None) -> ChartFrame | NoData:
        """Render one frame and replace the screen contents with it."""
        width, height = grid_size(self.console.size.width, self.console.size.height)
        frame = self.renderer.render(
            now_ms() if now is None else now,
            self.window_hours,
            width,
            height,
        )
        self.console.clear()
        self.console.print(frame_to_text(frame), markup=False, highlight=False, crop=True)
        self.ticks += 1
        self.last_frame = frame
        return frame

    async def run(self) -> None:
        while True:
            try:
                self.tick()
            except Exception:
                logger.exception("render failed")
            await asyncio.sleep(self.interval)

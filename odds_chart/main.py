#!/usr/bin/env python3
"""
Odds Chart - Live terminal price chart for one prediction-market instrument.

Usage:
    python -m odds_chart.main
    python -m odds_chart.main --window-hours 6 --log-level DEBUG

    POLYMARKET_WS_URL overrides the feed endpoint.

Controls:
    Ctrl+C / SIGTERM - Quit
"""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys
from contextlib import suppress

import aiohttp
from rich.console import Console

from .config import Settings
from .log import get_logger, setup_logging

logger = get_logger("main")


async def main(settings: Settings, console: Console | None = None) -> None:
    """Backfill, then run feed and chart concurrently until SIGINT/SIGTERM."""

    # Import here to avoid slow startup for --help
    from .datafeed.feed_client import FeedSupervisor
    from .datafeed.history import backfill
    from .datafeed.reducer import SampleReducer
    from .engine.series import SeriesStore
    from .ui.chart import ChartRenderer
    from .ui.terminal import RenderLoop

    console = console or Console()

    logger.info("tracking asset: %s", settings.asset_id)
    logger.info("market: %s", settings.market_id)

    store = SeriesStore()
    reducer = SampleReducer(settings.asset_id, store)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    async with aiohttp.ClientSession() as session:
        # History first, so every live sample lands after it
        await backfill(
            session,
            store,
            settings.asset_id,
            hours_back=settings.backfill_hours,
            url=settings.history_url,
        )

        supervisor = FeedSupervisor(
            settings.ws_url,
            settings.asset_id,
            reducer,
            session=session,
        )
        render_loop = RenderLoop(
            ChartRenderer(store, settings.market_label),
            console,
            window_hours=settings.window_hours,
        )

        feed_task = asyncio.create_task(supervisor.run())
        try:
            with console.screen(hide_cursor=True):
                render_task = asyncio.create_task(render_loop.run())
                try:
                    await stop.wait()
                finally:
                    render_task.cancel()
                    with suppress(asyncio.CancelledError):
                        await render_task
        finally:
            logger.info("shutdown requested")
            await supervisor.shutdown()
            feed_task.cancel()
            with suppress(asyncio.CancelledError):
                await feed_task
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(sig)


def cli() -> None:
    """CLI entry point."""
    settings = Settings.from_env()

    parser = argparse.ArgumentParser(
        description="Odds Chart - Live terminal price chart for a prediction-market outcome",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python -m odds_chart.main
    python -m odds_chart.main --window-hours 6
    POLYMARKET_WS_URL=wss://example/ws/market python -m odds_chart.main
        """
    )

    parser.add_argument(
        "--ws-url",
        default=settings.ws_url,
        help=f"Market channel WebSocket URL (default: {settings.ws_url})"
    )

    parser.add_argument(
        "--window-hours",
        type=float,
        default=settings.window_hours,
        help=f"Hours of data shown on the chart (default: {settings.window_hours:g})"
    )

    parser.add_argument(
        "--backfill-hours",
        type=float,
        default=settings.backfill_hours,
        help=f"Hours of history loaded at startup (default: {settings.backfill_hours:g})"
    )

    parser.add_argument(
        "--log-file",
        default=settings.log_file,
        help=f"Log file path (default: {settings.log_file})"
    )

    parser.add_argument(
        "--log-level",
        default=settings.log_level,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help=f"Log level (default: {settings.log_level})"
    )

    args = parser.parse_args()

    settings.ws_url = args.ws_url
    settings.window_hours = args.window_hours
    settings.backfill_hours = args.backfill_hours
    settings.log_file = args.log_file
    settings.log_level = args.log_level

    setup_logging(settings.log_file, settings.log_level)

    # Run
    try:
        asyncio.run(main(settings))
    except KeyboardInterrupt:
        sys.exit(0)
    except Exception:
        logger.exception("fatal error")
        print("Fatal error, see log: " + settings.log_file, file=sys.stderr)
        sys.exit(1)
    sys.exit(0)


if __name__ == "__main__":
    cli()

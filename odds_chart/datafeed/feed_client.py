"""
Market channel WebSocket client with connection supervision.

Handles:
1. Subscription to the tracked asset on every (re)connect
2. Application-level heartbeat while connected
3. Decoding and dispatching inbound frames to the reducer
4. Fixed-delay reconnect until shutdown

State machine:
    DISCONNECTED -> CONNECTING -> CONNECTED -> DISCONNECTED -> ... -> CLOSED

Failure isolation: transport and parse errors are logged and never escape
run(); only cancellation does.
"""

from __future__ import annotations

import asyncio
from contextlib import suppress
from enum import Enum, auto
from typing import Any, AsyncContextManager, Callable

import aiohttp
import orjson

from ..config import HEARTBEAT_INTERVAL_SEC, RECONNECT_DELAY_SEC
from ..log import get_logger
from ..types import parse_event
from .reducer import SampleReducer

logger = get_logger("feed")

PING_MESSAGE = orjson.dumps({"type": "ping"}).decode()

# Text keepalive replies the server may send back
_PONG_REPLIES = {"PONG", "pong"}

Connector = Callable[[str], AsyncContextManager[Any]]


class ConnectionState(Enum):
    DISCONNECTED = auto()
    CONNECTING = auto()
    CONNECTED = auto()
    CLOSED = auto()  # Terminal


def subscription_message(asset_id: str) -> str:
    return orjson.dumps({"assets_ids": [asset_id], "type": "market"}).decode()


class FeedSupervisor:
    """
    Keeps the market feed alive and pushes every frame through the reducer.

    Usage:
        supervisor = FeedSupervisor(url, asset_id, reducer, session=session)
        task = asyncio.create_task(supervisor.run())
        ...
        await supervisor.shutdown()

    `connect` may replace session.ws_connect; it must return an async context
    manager yielding an aiohttp-like websocket (send_str, close, closed,
    exception, async iteration of messages).
    """

    def __init__(
        self,
        ws_url: str,
        asset_id: str,
        reducer: SampleReducer,
        session: aiohttp.ClientSession | None = None,
        connect: Connector | None = None,
        heartbeat_interval: float = HEARTBEAT_INTERVAL_SEC,
        reconnect_delay: float = RECONNECT_DELAY_SEC,
    ) -> None:
        if connect is None:
            if session is None:
                raise ValueError("either session or connect is required")
            connect = session.ws_connect

        self.ws_url = ws_url
        self.asset_id = asset_id
        self.reducer = reducer
        self.heartbeat_interval = heartbeat_interval
        self.reconnect_delay = reconnect_delay
        self._connect = connect

        # State
        self._state = ConnectionState.DISCONNECTED
        self._ws: Any = None
        self._heartbeat_task: asyncio.Task | None = None
        self._shutdown = asyncio.Event()

        # Diagnostics
        self.connect_attempts: int = 0
        self.reconnects: int = 0
        self.messages_received: int = 0
        self.parse_errors: int = 0

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def heartbeat_task(self) -> asyncio.Task | None:
        return self._heartbeat_task

    @property
    def is_closing(self) -> bool:
        return self._shutdown.is_set()

    async def run(self) -> None:
        """Connect, read until the transport closes, wait, repeat until shutdown."""
        while not self.is_closing:
            await self._run_session()

            if self.is_closing:
                break

            self.reconnects += 1
            logger.info("reconnecting in %s seconds...", self.reconnect_delay)
            # Wakes early on shutdown
            with suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self._shutdown.wait(), timeout=self.reconnect_delay)

        self._state = ConnectionState.CLOSED
        logger.info("feed supervisor closed")

    async def _run_session(self) -> None:
        """One connection lifetime. Returns once the transport is gone."""
        self._state = ConnectionState.CONNECTING
        self.connect_attempts += 1
        logger.info("connecting to %s...", self.ws_url)

        try:
            async with self._connect(self.ws_url) as ws:
                self._ws = ws
                await self._on_open(ws)
                await self._read_loop(ws)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # Connect failures, mid-stream transport errors, bad URLs: all retried
            logger.error("connection failed: %r", e)
        finally:
            await self._on_close()

    async def _on_open(self, ws: Any) -> None:
        self._state = ConnectionState.CONNECTED
        logger.info("connected to feed")

        message = subscription_message(self.asset_id)
        logger.info("sending subscription: %s", message)
        await ws.send_str(message)

        self._heartbeat_task = asyncio.create_task(self._heartbeat(ws))

    async def _read_loop(self, ws: Any) -> None:
        async for msg in ws:
            if msg.type == aiohttp.WSMsgType.TEXT:
                self.handle_message(msg.data)
            elif msg.type == aiohttp.WSMsgType.BINARY:
                self.handle_message(msg.data)
            elif msg.type == aiohttp.WSMsgType.ERROR:
                logger.error("websocket error: %r", ws.exception())
                break

    async def _on_close(self) -> None:
        was_connected = self._state == ConnectionState.CONNECTED
        await self._stop_heartbeat()
        self._ws = None
        if self._state != ConnectionState.CLOSED:
            self._state = ConnectionState.DISCONNECTED
        if was_connected:
            logger.info("disconnected from feed")

    async def _heartbeat(self, ws: Any) -> None:
        """Send a ping every heartbeat_interval while the socket is open."""
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            if ws.closed:
                return
            try:
                await ws.send_str(PING_MESSAGE)
            except (aiohttp.ClientError, ConnectionError) as e:
                # The read loop sees the close and drives the reconnect
                logger.warning("heartbeat failed: %r", e)
                return

    async def _stop_heartbeat(self) -> None:
        task, self._heartbeat_task = self._heartbeat_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception:
            # Teardown never raises
            logger.exception("heartbeat task failed")

    def handle_message(self, raw: str | bytes) -> int:
        """
        Decode one frame (object or array of objects) and reduce each event.

        Returns the number of events handed to the reducer. Bad frames and
        bad events are logged and dropped.
        """
        self.messages_received += 1

        try:
            data = orjson.loads(raw)
        except orjson.JSONDecodeError:
            text = raw.decode(errors='replace') if isinstance(raw, bytes) else raw
            if text.strip() in _PONG_REPLIES:
                logger.debug("keepalive reply: %s", text.strip())
            else:
                self.parse_errors += 1
                logger.warning("error parsing message: %r", text[:200])
            return 0

        items = data if isinstance(data, list) else [data]
        dispatched = 0
        for item in items:
            try:
                event = parse_event(item, self.asset_id)
                if event is None:
                    logger.debug("ignoring event type %r", item.get("event_type"))
                    continue
                self.reducer.reduce(event)
                dispatched += 1
            except ValueError as e:
                self.parse_errors += 1
                logger.warning("dropping malformed event: %s", e)
        return dispatched

    async def shutdown(self) -> None:
        """Stop reconnecting, cancel the heartbeat and close the transport."""
        if self._state == ConnectionState.CLOSED:
            return

        logger.info("shutting down feed supervisor")
        self._shutdown.set()
        await self._stop_heartbeat()

        ws = self._ws
        if ws is not None and not ws.closed:
            await ws.close()

        self._state = ConnectionState.CLOSED

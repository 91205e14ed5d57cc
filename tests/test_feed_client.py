"""Tests for FeedSupervisor: subscription, dispatch, heartbeat, reconnect, shutdown."""

import asyncio
import math

import aiohttp
import orjson
import pytest

from odds_chart.datafeed.feed_client import (
    PING_MESSAGE,
    ConnectionState,
    FeedSupervisor,
    subscription_message,
)
from odds_chart.datafeed.history import backfill
from odds_chart.ui.chart import ChartFrame, ChartRenderer

from conftest import (
    ASSET,
    OTHER_ASSET,
    FakeConnector,
    FakeWebSocket,
    book_payload,
    change_payload,
    price_change_payload,
    wait_until,
)


def make_supervisor(reducer, connector, **kwargs):
    kwargs.setdefault("heartbeat_interval", 30.0)
    kwargs.setdefault("reconnect_delay", 0.05)
    return FeedSupervisor("wss://feed", ASSET, reducer, connect=connector, **kwargs)


def running_heartbeats() -> int:
    return sum(
        1 for task in asyncio.all_tasks()
        if not task.done() and getattr(task.get_coro(), "__name__", "") == "_heartbeat"
    )


class TestHandleMessage:
    def test_single_object(self, reducer, store):
        supervisor = make_supervisor(reducer, FakeConnector())
        assert supervisor.handle_message(orjson.dumps(book_payload())) == 1
        assert len(store) == 1

    def test_array_of_events(self, reducer, store):
        supervisor = make_supervisor(reducer, FakeConnector())
        frame = orjson.dumps([book_payload(), price_change_payload()]).decode()
        assert supervisor.handle_message(frame) == 2
        assert [s.timestamp for s in store.window(0)] == [1700000000000, 1700000000500]

    def test_malformed_json_is_dropped(self, reducer, store):
        supervisor = make_supervisor(reducer, FakeConnector())
        assert supervisor.handle_message("{not json") == 0
        assert supervisor.parse_errors == 1
        assert len(store) == 0

    def test_pong_is_not_an_error(self, reducer):
        supervisor = make_supervisor(reducer, FakeConnector())
        assert supervisor.handle_message("PONG") == 0
        assert supervisor.parse_errors == 0

    def test_unknown_event_type_is_ignored(self, reducer, store):
        supervisor = make_supervisor(reducer, FakeConnector())
        frame = orjson.dumps([{"event_type": "last_trade_price", "asset_id": ASSET}, book_payload()])
        assert supervisor.handle_message(frame) == 1
        assert supervisor.parse_errors == 0
        assert len(store) == 1

    def test_bad_event_does_not_stop_the_batch(self, reducer, store):
        supervisor = make_supervisor(reducer, FakeConnector())
        bad = book_payload(timestamp="yesterday")
        frame = orjson.dumps([bad, {"event_type": "book"}, price_change_payload()])
        assert supervisor.handle_message(frame) == 1
        assert supervisor.parse_errors == 2
        assert len(store) == 1
        assert supervisor.messages_received == 1

    def test_bad_entry_for_other_asset_keeps_tracked_change(self, reducer, store):
        supervisor = make_supervisor(reducer, FakeConnector())
        broken = change_payload(OTHER_ASSET)
        del broken["best_bid"]
        frame = orjson.dumps(price_change_payload(changes=[broken, change_payload(ASSET)]))

        assert supervisor.handle_message(frame) == 1
        assert supervisor.parse_errors == 0
        assert store.latest().mid == pytest.approx(0.34)

    def test_non_finite_quote_is_a_parse_error(self, reducer, store):
        supervisor = make_supervisor(reducer, FakeConnector())
        nan_change = price_change_payload(changes=[change_payload(ASSET, best_bid="NaN")])
        frame = orjson.dumps([nan_change, book_payload()])

        assert supervisor.handle_message(frame) == 1
        assert supervisor.parse_errors == 1
        assert all(math.isfinite(s.mid) for s in store.window(0))

        renderer = ChartRenderer(store, "market")
        frame = renderer.render(1700000000000, 24, 20, 5)
        assert isinstance(frame, ChartFrame)

    def test_requires_session_or_connector(self, reducer):
        with pytest.raises(ValueError):
            FeedSupervisor("wss://feed", ASSET, reducer)


class TestSession:
    @pytest.mark.asyncio
    async def test_subscribes_on_connect(self, reducer):
        ws = FakeWebSocket(hold_open=True)
        connector = FakeConnector(ws)
        supervisor = make_supervisor(reducer, connector)
        assert supervisor.state is ConnectionState.DISCONNECTED

        task = asyncio.create_task(supervisor.run())
        await wait_until(lambda: supervisor.state is ConnectionState.CONNECTED)

        assert connector.calls[0][0] == "wss://feed"
        assert orjson.loads(ws.sent[0]) == {"assets_ids": [ASSET], "type": "market"}
        assert ws.sent[0] == subscription_message(ASSET)

        await supervisor.shutdown()
        await asyncio.wait_for(task, timeout=1.0)
        assert supervisor.state is ConnectionState.CLOSED
        assert ws.closed

    @pytest.mark.asyncio
    async def test_live_messages_reach_the_store(self, reducer, store):
        ws = FakeWebSocket(
            frames=[orjson.dumps([book_payload()]).decode(), orjson.dumps(price_change_payload()).decode()],
            hold_open=True,
        )
        supervisor = make_supervisor(reducer, FakeConnector(ws))

        task = asyncio.create_task(supervisor.run())
        await wait_until(lambda: len(store) == 2)

        await supervisor.shutdown()
        await asyncio.wait_for(task, timeout=1.0)
        assert supervisor.messages_received == 2

    @pytest.mark.asyncio
    async def test_heartbeat(self, reducer):
        ws = FakeWebSocket(hold_open=True)
        supervisor = make_supervisor(reducer, FakeConnector(ws), heartbeat_interval=0.01)

        task = asyncio.create_task(supervisor.run())
        await wait_until(lambda: ws.sent.count(PING_MESSAGE) >= 2)
        assert orjson.loads(PING_MESSAGE) == {"type": "ping"}

        await supervisor.shutdown()
        await asyncio.wait_for(task, timeout=1.0)
        assert supervisor.heartbeat_task is None
        assert running_heartbeats() == 0


class TestReconnect:
    @pytest.mark.asyncio
    async def test_reconnects_after_close_without_duplicate_heartbeats(self, reducer):
        first = FakeWebSocket(hold_open=True)
        second = FakeWebSocket(hold_open=True)
        connector = FakeConnector(first, second)
        supervisor = make_supervisor(reducer, connector, reconnect_delay=0.05)

        task = asyncio.create_task(supervisor.run())
        await wait_until(lambda: supervisor.state is ConnectionState.CONNECTED)
        assert running_heartbeats() == 1

        first.drop()
        await wait_until(lambda: len(connector.calls) == 2 and supervisor.state is ConnectionState.CONNECTED)

        delay = connector.calls[1][1] - connector.calls[0][1]
        assert delay >= 0.04
        assert supervisor.reconnects == 1
        assert running_heartbeats() == 1
        # Subscription is sent again on the new socket
        assert second.sent[0] == subscription_message(ASSET)

        await supervisor.shutdown()
        await asyncio.wait_for(task, timeout=1.0)

    @pytest.mark.asyncio
    async def test_heartbeat_crash_does_not_stop_reconnects(self, reducer):
        class BrokenPingSocket(FakeWebSocket):
            async def send_str(self, data):
                if data == PING_MESSAGE:
                    raise RuntimeError("encoder blew up")
                await super().send_str(data)

        first = BrokenPingSocket(hold_open=True)
        second = FakeWebSocket(hold_open=True)
        connector = FakeConnector(first, second)
        supervisor = make_supervisor(reducer, connector, heartbeat_interval=0.01, reconnect_delay=0.01)

        task = asyncio.create_task(supervisor.run())
        await wait_until(lambda: supervisor.heartbeat_task is not None and supervisor.heartbeat_task.done())

        first.drop()
        await wait_until(lambda: len(connector.calls) == 2 and supervisor.state is ConnectionState.CONNECTED)
        assert not task.done()

        await supervisor.shutdown()
        await asyncio.wait_for(task, timeout=1.0)
        assert supervisor.state is ConnectionState.CLOSED

    @pytest.mark.asyncio
    async def test_connect_failure_is_retried(self, reducer):
        ws = FakeWebSocket(hold_open=True)
        connector = FakeConnector(aiohttp.ClientConnectionError("refused"), ws)
        supervisor = make_supervisor(reducer, connector, reconnect_delay=0.01)

        task = asyncio.create_task(supervisor.run())
        await wait_until(lambda: supervisor.state is ConnectionState.CONNECTED)
        assert supervisor.connect_attempts == 2

        await supervisor.shutdown()
        await asyncio.wait_for(task, timeout=1.0)

    @pytest.mark.asyncio
    async def test_transport_error_triggers_reconnect(self, reducer):
        first = FakeWebSocket(hold_open=True)
        second = FakeWebSocket(hold_open=True)
        connector = FakeConnector(first, second)
        supervisor = make_supervisor(reducer, connector, reconnect_delay=0.01)

        task = asyncio.create_task(supervisor.run())
        await wait_until(lambda: supervisor.state is ConnectionState.CONNECTED)
        first.fail()
        await wait_until(lambda: len(connector.calls) == 2 and supervisor.state is ConnectionState.CONNECTED)

        await supervisor.shutdown()
        await asyncio.wait_for(task, timeout=1.0)

    @pytest.mark.asyncio
    async def test_shutdown_during_reconnect_delay(self, reducer):
        connector = FakeConnector(FakeWebSocket())
        supervisor = make_supervisor(reducer, connector, reconnect_delay=30.0)

        task = asyncio.create_task(supervisor.run())
        await wait_until(lambda: supervisor.reconnects == 1)
        assert supervisor.state is ConnectionState.DISCONNECTED

        await supervisor.shutdown()
        await asyncio.wait_for(task, timeout=1.0)

        assert supervisor.state is ConnectionState.CLOSED
        assert len(connector.calls) == 1

    @pytest.mark.asyncio
    async def test_shutdown_is_idempotent(self, reducer):
        supervisor = make_supervisor(reducer, FakeConnector())
        await supervisor.shutdown()
        await supervisor.shutdown()
        assert supervisor.state is ConnectionState.CLOSED

        # A closed supervisor never connects
        await asyncio.wait_for(supervisor.run(), timeout=1.0)
        assert supervisor.connect_attempts == 0


class TestStartup:
    @pytest.mark.asyncio
    async def test_failed_backfill_does_not_block_the_feed(self, reducer, store):
        class FailingSession:
            def get(self, url, params=None):
                raise aiohttp.ClientConnectionError("history down")

        loaded = await backfill(FailingSession(), store, ASSET)
        assert loaded == 0
        assert len(store) == 0

        ws = FakeWebSocket(hold_open=True)
        supervisor = make_supervisor(reducer, FakeConnector(ws))
        task = asyncio.create_task(supervisor.run())
        await wait_until(lambda: supervisor.state is ConnectionState.CONNECTED)

        await supervisor.shutdown()
        await asyncio.wait_for(task, timeout=1.0)

"""
Unit tests for RealtimeHub.

Tests the one-slot-per-recipient registry, stream replacement, publishing
from other threads and SSE encoding.
"""

import asyncio
import json
import threading

import pytest

from backend.src.models.notification import Recipient
from backend.src.utils.realtime import RealtimeHub, format_sse


USER = Recipient.user(1)


async def next_item(connection, timeout=1):
    return await asyncio.wait_for(connection.queue.get(), timeout=timeout)


class TestFormatSse:
    def test_encodes_event(self):
        text = format_sse("notification", {"guid": "ntf_1"})

        assert text.startswith("event: notification\n")
        assert text.endswith("\n\n")
        data_line = text.splitlines()[1]
        assert json.loads(data_line[len("data: "):]) == {"guid": "ntf_1"}


class TestConnections:
    """Tests for connect, replace and disconnect."""

    @pytest.mark.asyncio
    async def test_connect_sends_connected_event(self):
        hub = RealtimeHub()
        connection = hub.connect(USER)

        event, data = await next_item(connection)

        assert event == "connected"
        assert data["recipient"] == "user:1"
        assert data["connection_id"] == connection.connection_id
        assert hub.is_connected(USER)
        assert hub.connection_count == 1

    @pytest.mark.asyncio
    async def test_new_connection_replaces_old(self):
        hub = RealtimeHub()
        old = hub.connect(USER)
        new = hub.connect(USER)

        await next_item(old)  # connected
        assert await next_item(old) is None
        assert hub.connection_count == 1

        hub.publish(USER, "notification", {"n": 1})
        await next_item(new)  # connected
        assert await next_item(new) == ("notification", {"n": 1})
        assert old.queue.empty()

    @pytest.mark.asyncio
    async def test_stale_disconnect_keeps_new_connection(self):
        hub = RealtimeHub()
        old = hub.connect(USER)
        hub.connect(USER)

        hub.disconnect(old)

        assert hub.is_connected(USER)

    @pytest.mark.asyncio
    async def test_user_and_client_slots_are_separate(self):
        hub = RealtimeHub()
        hub.connect(Recipient.user(5))
        hub.connect(Recipient.client(5))

        assert hub.connection_count == 2

    @pytest.mark.asyncio
    async def test_close_all(self):
        hub = RealtimeHub()
        connection = hub.connect(USER)

        hub.close_all()

        await next_item(connection)  # connected
        assert await next_item(connection) is None
        assert hub.connection_count == 0


class TestPublish:
    """Tests for RealtimeHub.publish."""

    def test_offline_recipient(self):
        assert RealtimeHub().publish(USER, "notification", {}) is False

    @pytest.mark.asyncio
    async def test_publish_from_another_thread(self):
        hub = RealtimeHub()
        connection = hub.connect(USER)
        await next_item(connection)

        results = []
        worker = threading.Thread(
            target=lambda: results.append(hub.publish(USER, "notification", {"from": "worker"}))
        )
        worker.start()
        await asyncio.to_thread(worker.join)

        assert results == [True]
        assert await next_item(connection) == ("notification", {"from": "worker"})

    @pytest.mark.asyncio
    async def test_full_queue_drops_events(self):
        hub = RealtimeHub(queue_size=2)
        connection = hub.connect(USER)

        for i in range(5):
            hub.publish(USER, "notification", {"n": i})
        await asyncio.sleep(0.01)

        assert connection.queue.qsize() == 2

    @pytest.mark.asyncio
    async def test_close_marker_gets_through_full_queue(self):
        hub = RealtimeHub(queue_size=1)
        old = hub.connect(USER)
        hub.publish(USER, "notification", {"n": 1})
        await asyncio.sleep(0.01)

        hub.connect(USER)
        await asyncio.sleep(0.01)

        assert old.queue.qsize() == 1
        assert await next_item(old) is None

    def test_closed_loop_disconnects(self):
        hub = RealtimeHub()
        loop = asyncio.new_event_loop()

        async def _connect():
            return hub.connect(USER)

        loop.run_until_complete(_connect())
        loop.close()

        assert hub.publish(USER, "notification", {}) is False
        assert not hub.is_connected(USER)


class TestStream:
    """Tests for the SSE stream generator."""

    @pytest.mark.asyncio
    async def test_yields_events_until_replaced(self):
        hub = RealtimeHub()
        connection = hub.connect(USER)
        hub.publish(USER, "notification", {"n": 1})

        stream = hub.stream(connection, keepalive=5)
        first = await stream.__anext__()
        second = await stream.__anext__()
        hub.connect(USER)

        with pytest.raises(StopAsyncIteration):
            await stream.__anext__()
        assert first.startswith("event: connected")
        assert second.startswith("event: notification")

    @pytest.mark.asyncio
    async def test_keepalive_comment(self):
        hub = RealtimeHub()
        connection = hub.connect(USER)
        stream = hub.stream(connection, keepalive=0.05)

        await stream.__anext__()  # connected
        assert await stream.__anext__() == ": keepalive\n\n"
        await stream.aclose()

        assert not hub.is_connected(USER)

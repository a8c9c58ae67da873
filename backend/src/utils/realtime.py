"""
Real-time notification hub for Server-Sent Events streams.

Keeps at most one live stream per recipient. Opening a new stream for a
recipient replaces the previous one, which is told to finish. Events can be
published from any thread or event loop (the overdue scan runs in its own
worker thread); they are handed to the stream's loop with
``call_soon_threadsafe``.

Usage:
    from backend.src.utils.realtime import RealtimeHub

    hub = RealtimeHub(queue_size=100)

    # In the SSE endpoint
    connection = hub.connect(recipient)
    return StreamingResponse(hub.stream(connection), media_type="text/event-stream")

    # From the delivery channel
    hub.publish(recipient, "notification", payload)
"""

import asyncio
import json
import threading
import uuid
from typing import Any, AsyncIterator, Dict, Optional, Tuple

from backend.src.models.notification import Recipient
from backend.src.utils.logging_config import get_logger

logger = get_logger("realtime")

# Seconds between SSE comment lines that keep idle proxies from closing the stream
KEEPALIVE_INTERVAL = 15.0

_Event = Optional[Tuple[str, Dict[str, Any]]]


class RealtimeConnection:
    """One open stream: the loop it lives on and its bounded event queue."""

    def __init__(self, recipient: Recipient, loop: asyncio.AbstractEventLoop, queue_size: int):
        self.recipient = recipient
        self.loop = loop
        self.queue: "asyncio.Queue[_Event]" = asyncio.Queue(maxsize=queue_size)
        self.connection_id = uuid.uuid4().hex

    def offer(self, item: _Event) -> None:
        """Enqueue on the owning loop. Must run on ``self.loop``."""
        if item is None:
            # Close marker must get through even when the queue is full
            while True:
                try:
                    self.queue.put_nowait(None)
                    return
                except asyncio.QueueFull:
                    self.queue.get_nowait()
        try:
            self.queue.put_nowait(item)
        except asyncio.QueueFull:
            logger.warning(
                "Realtime queue full, dropping event",
                extra={"recipient": self.recipient.key, "event": item[0]}
            )

    def __repr__(self) -> str:
        return f"<RealtimeConnection(recipient={self.recipient.key}, id={self.connection_id})>"


def format_sse(event: str, data: Dict[str, Any]) -> str:
    """Encode one Server-Sent Event."""
    return f"event: {event}\ndata: {json.dumps(data, default=str)}\n\n"


class RealtimeHub:
    """
    Registry of live SSE streams, one slot per recipient.

    The registry is guarded by a threading lock because publishers may run
    on other threads than the API event loop.
    """

    def __init__(self, queue_size: int = 100):
        self._queue_size = queue_size
        self._connections: Dict[Recipient, RealtimeConnection] = {}
        self._lock = threading.Lock()

    def connect(self, recipient: Recipient) -> RealtimeConnection:
        """
        Register a new stream for ``recipient`` on the running event loop.

        Any previous stream of the same recipient is closed.
        """
        connection = RealtimeConnection(
            recipient, asyncio.get_running_loop(), self._queue_size
        )
        with self._lock:
            previous = self._connections.get(recipient)
            self._connections[recipient] = connection

        if previous is not None:
            logger.info(
                "Replacing realtime connection",
                extra={"recipient": recipient.key, "replaced": previous.connection_id}
            )
            self._dispatch(previous, None)
        else:
            logger.debug("Realtime connection opened", extra={"recipient": recipient.key})

        connection.offer(("connected", {
            "recipient": recipient.key,
            "connection_id": connection.connection_id,
        }))
        return connection

    def disconnect(self, connection: RealtimeConnection) -> None:
        """Remove ``connection`` if it still owns its recipient's slot."""
        with self._lock:
            if self._connections.get(connection.recipient) is connection:
                del self._connections[connection.recipient]
                logger.debug(
                    "Realtime connection closed",
                    extra={"recipient": connection.recipient.key}
                )

    def is_connected(self, recipient: Recipient) -> bool:
        with self._lock:
            return recipient in self._connections

    @property
    def connection_count(self) -> int:
        with self._lock:
            return len(self._connections)

    def publish(self, recipient: Recipient, event: str, data: Dict[str, Any]) -> bool:
        """
        Send an event to the recipient's live stream.

        Safe to call from any thread.

        Returns:
            True if a live stream accepted the event, False if the recipient
            has no stream (or its loop has gone away)
        """
        with self._lock:
            connection = self._connections.get(recipient)
        if connection is None:
            return False
        if not self._dispatch(connection, (event, data)):
            self.disconnect(connection)
            return False
        return True

    def close_all(self) -> None:
        """Ask every open stream to finish (used at shutdown)."""
        with self._lock:
            connections = list(self._connections.values())
            self._connections.clear()
        for connection in connections:
            self._dispatch(connection, None)

    def _dispatch(self, connection: RealtimeConnection, item: _Event) -> bool:
        try:
            connection.loop.call_soon_threadsafe(connection.offer, item)
            return True
        except RuntimeError:
            # Loop already closed
            logger.debug(
                "Realtime connection loop is closed",
                extra={"recipient": connection.recipient.key}
            )
            return False

    async def stream(
        self,
        connection: RealtimeConnection,
        keepalive: float = KEEPALIVE_INTERVAL,
    ) -> AsyncIterator[str]:
        """
        Yield SSE-encoded events for ``connection`` until it is replaced,
        closed, or the client goes away.
        """
        try:
            while True:
                try:
                    item = await asyncio.wait_for(connection.queue.get(), timeout=keepalive)
                except asyncio.TimeoutError:
                    yield ": keepalive\n\n"
                    continue
                if item is None:
                    break
                event, data = item
                yield format_sse(event, data)
        finally:
            self.disconnect(connection)

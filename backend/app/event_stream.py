"""Server-push (SSE) channel management.

Each GET on the stream endpoint opens a Channel: a bounded asyncio.Queue of
pending events plus a per-connection event counter.  The EventBroker owns the
set of open channels and

- forwards every new LogStore entry to all channels as a ``log`` event,
- delivers targeted ``message`` events and best-effort ``broadcast`` fan-out,
- turns a channel's queue into ``data: <json>`` frames with ``: heartbeat``
  comments during silence,
- runs a background sweep that drops bookkeeping for idle connections.

Frames (Server → Client):
    data: {"id": 3, "timestamp": "...", "type": "message", "data": {...}, "source": "server"}
    data: {"id": 4, ..., "type": "broadcast", "broadcast": true}
    : heartbeat
    retry: 5000
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import time
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable, Iterator
from datetime import UTC, datetime
from typing import Any

from pydantic_core import to_jsonable_python

from app.log_store import LogEntry, LogMetadata, LogStore

logger = logging.getLogger(__name__)

HEARTBEAT_FRAME = ": heartbeat\n\n"

EVENT_MESSAGE = "message"
EVENT_BROADCAST = "broadcast"
EVENT_LOG = "log"


class UnknownConnection(LookupError):
    """No open channel with the given connection id."""

    def __init__(self, connection_id: str) -> None:
        super().__init__(f"Connection {connection_id!r} is not open")
        self.connection_id = connection_id


class DeliveryError(RuntimeError):
    """An event could not be queued on a channel."""


def _new_connection_id() -> str:
    return f"sse_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def encode_event(event: dict[str, Any]) -> str:
    return f"data: {json.dumps(event)}\n\n"


class Channel:
    """One open push connection."""

    def __init__(
        self,
        connection_id: str,
        endpoint: str,
        queue_size: int,
        user_agent: str = "unknown",
        ip: str = "unknown",
    ) -> None:
        self.id = connection_id
        self.endpoint = endpoint
        self.user_agent = user_agent
        self.ip = ip
        self.opened_at = datetime.now(UTC)
        self.retry_count = 0
        self.closed = asyncio.Event()
        # None is the wake-up sentinel pushed by close().
        self.queue: asyncio.Queue[dict[str, Any] | None] = asyncio.Queue(maxsize=queue_size)
        self._last_event_id = 0

    @property
    def is_closed(self) -> bool:
        return self.closed.is_set()

    def push(self, event_type: str, data: Any) -> dict[str, Any]:
        """Queue an event without blocking and return it.  Raises DeliveryError."""
        if self.is_closed:
            raise DeliveryError(f"Connection {self.id} is closed")
        if self.queue.full():
            raise DeliveryError(f"Connection {self.id} queue is full")

        self._last_event_id += 1
        event: dict[str, Any] = {
            "id": self._last_event_id,
            "timestamp": datetime.now(UTC).isoformat(),
            "type": event_type,
            "data": data,
            "source": "server",
        }
        if event_type == EVENT_BROADCAST:
            event["broadcast"] = True
        self.queue.put_nowait(event)
        return event

    def shut(self) -> None:
        self.closed.set()
        try:
            self.queue.put_nowait(None)
        except asyncio.QueueFull:
            pass  # the reader is busy draining and will see the closed flag


class EventBroker:
    """Owns every open Channel and the idle-sweep task."""

    def __init__(
        self,
        store: LogStore,
        *,
        heartbeat_interval: float = 30.0,
        idle_timeout: float = 300.0,
        sweep_interval: float = 60.0,
        queue_size: int = 256,
        retry_delay_ms: int = 5000,
    ) -> None:
        self.store = store
        self.heartbeat_interval = heartbeat_interval
        self.idle_timeout = idle_timeout
        self.sweep_interval = sweep_interval
        self.queue_size = queue_size
        self.retry_delay_ms = retry_delay_ms
        self._channels: dict[str, Channel] = {}
        self._sweeper: asyncio.Task[None] | None = None
        self._forwarding_paused = 0
        store.subscribe(self._forward_log)

    # ── Channel lifecycle ─────────────────────────────────────────────────────

    @property
    def active_ids(self) -> list[str]:
        return list(self._channels)

    def get(self, connection_id: str) -> Channel | None:
        return self._channels.get(connection_id)

    def open(self, endpoint: str, user_agent: str = "unknown", ip: str = "unknown") -> Channel:
        connection_id = _new_connection_id()
        self.store.update_connection_metrics(connection_id, connected_at=datetime.now(UTC))
        self.store.add_log(
            "connection",
            "New SSE connection established",
            None,
            LogMetadata(connection_id=connection_id, endpoint=endpoint, user_agent=user_agent, ip=ip),
        )

        channel = Channel(connection_id, endpoint, self.queue_size, user_agent=user_agent, ip=ip)
        self._channels[connection_id] = channel
        self.store.log_connection("connected", endpoint, 0, None, connection_id)
        return channel

    def close(self, connection_id: str, reason: str = "closed") -> bool:
        """Tear down one channel.  Safe to call repeatedly; only the first call acts."""
        channel = self._channels.pop(connection_id, None)
        if channel is None:
            return False

        channel.shut()
        if connection_id in self.store.connections:
            self.store.connections.mark_disconnected(connection_id)
        self.store.log_connection("disconnected", channel.endpoint, channel.retry_count, None, connection_id)
        logger.debug("SSE connection %s closed (%s)", connection_id, reason)
        return True

    async def close_all(self) -> None:
        for connection_id in list(self._channels):
            self.close(connection_id, reason="shutdown")

    # ── Delivery ──────────────────────────────────────────────────────────────

    def send(self, connection_id: str, data: Any, event_type: str = EVENT_MESSAGE) -> dict[str, Any]:
        channel = self._channels.get(connection_id)
        if channel is None:
            raise UnknownConnection(connection_id)
        event = channel.push(event_type, data)
        self.store.add_log(
            "info",
            f"Message queued for connection {connection_id}",
            event,
            LogMetadata(connection_id=connection_id, event_id=str(event["id"]), endpoint=channel.endpoint),
        )
        return event

    def broadcast(self, data: Any, endpoint: str | None = None) -> int:
        """Best-effort fan-out to every open channel.  Returns how many accepted the event.

        Per-connection entries written during the fan-out stay in the store but
        are not forwarded; only the closing summary entry reaches the channels.
        """
        channels = list(self._channels.items())
        delivered = 0
        with self._forwarding_paused_for_fanout():
            for connection_id, channel in channels:
                try:
                    event = channel.push(EVENT_BROADCAST, data)
                except DeliveryError as exc:
                    if connection_id in self.store.connections:
                        self.store.connections.record_error(connection_id)
                    self.store.add_log(
                        "error",
                        f"Failed to broadcast to connection {connection_id}",
                        {"error": str(exc)},
                        LogMetadata(connection_id=connection_id, endpoint=endpoint),
                    )
                    continue
                delivered += 1
                self.store.add_log(
                    "info",
                    f"Broadcast message sent to connection {connection_id}",
                    event,
                    LogMetadata(connection_id=connection_id, event_id=str(event["id"]), endpoint=endpoint),
                )

        if channels:
            self.store.add_log(
                "info" if delivered == len(channels) else "warn",
                f"Broadcast delivered to {delivered} of {len(channels)} connections",
                None,
                LogMetadata(endpoint=endpoint),
            )
        return delivered

    @contextlib.contextmanager
    def _forwarding_paused_for_fanout(self) -> Iterator[None]:
        self._forwarding_paused += 1
        try:
            yield
        finally:
            self._forwarding_paused -= 1

    def _forward_log(self, entry: LogEntry[Any]) -> None:
        if not self._channels or self._forwarding_paused:
            return
        payload = to_jsonable_python(entry, fallback=str)
        for connection_id, channel in list(self._channels.items()):
            try:
                channel.push(EVENT_LOG, payload)
            except DeliveryError:
                # Logging here would feed straight back into this method.
                if connection_id in self.store.connections:
                    self.store.connections.record_error(connection_id)

    # ── Streaming ─────────────────────────────────────────────────────────────

    async def stream(
        self,
        channel: Channel,
        is_disconnected: Callable[[], Awaitable[bool]] | None = None,
    ) -> AsyncIterator[str]:
        """Yield SSE frames for *channel* until it is closed or the client goes away."""
        try:
            while not channel.is_closed:
                if is_disconnected is not None and await is_disconnected():
                    break

                try:
                    event = await asyncio.wait_for(channel.queue.get(), timeout=self.heartbeat_interval)
                except TimeoutError:
                    self.store.connections.touch(channel.id)
                    yield HEARTBEAT_FRAME
                    continue

                if event is None:
                    break

                try:
                    frame = encode_event(event)
                except (TypeError, ValueError) as exc:
                    self._report_transport_error(channel, exc)
                    yield f"retry: {self.retry_delay_ms}\n\n"
                    continue

                yield frame
                if channel.id in self.store.connections:
                    self.store.connections.record_event(channel.id)
                if event["type"] != EVENT_LOG:
                    logger.debug("SSE event %s sent to %s: %s", event["id"], channel.id, event["type"])
        finally:
            self.close(channel.id, reason="stream ended")

    def _report_transport_error(self, channel: Channel, exc: Exception) -> None:
        channel.retry_count += 1
        if channel.id in self.store.connections:
            self.store.connections.record_error(channel.id)
            self.store.connections.record_retry(channel.id)
        self.store.add_log(
            "error",
            "Failed to process SSE event",
            {"error": str(exc), "type": type(exc).__name__},
            LogMetadata(connection_id=channel.id, endpoint=channel.endpoint),
        )
        self.store.log_retry(channel.endpoint, channel.retry_count, exc, self.retry_delay_ms, channel.id)

    # ── Idle sweep ────────────────────────────────────────────────────────────

    def sweep_idle(self, now: datetime | None = None) -> list[str]:
        """Drop bookkeeping for idle connections.  The transport itself is left alone."""
        stale = self.store.connections.sweep_idle(self.idle_timeout, now)
        for connection_id, idle_seconds in stale.items():
            channel = self._channels.pop(connection_id, None)
            self.store.add_log(
                "warn",
                f"Closing inactive connection: {connection_id}",
                {"inactive_time": idle_seconds},
                LogMetadata(
                    connection_id=connection_id,
                    endpoint=channel.endpoint if channel else "unknown",
                ),
            )
        return list(stale)

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            try:
                self.sweep_idle()
            except Exception:
                logger.exception("Idle connection sweep failed")

    def start(self) -> None:
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep_loop(), name="sse-idle-sweep")

    async def stop(self) -> None:
        task, self._sweeper = self._sweeper, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        await self.close_all()

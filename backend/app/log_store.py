"""Bounded in-memory store of structured stream log entries.

Entries are kept newest-first and the buffer never grows beyond *max_entries*;
once full, the oldest entries fall off the end.  Every entry is mirrored to the
stdlib ``logging`` tree and handed to synchronous subscribers (the event broker
uses this to forward new entries to open stream connections).

Nothing here survives a process restart.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections import Counter, deque
from collections.abc import Callable, Collection, Mapping
from datetime import UTC, datetime
from typing import Any, Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict

from app.connections import ConnectionMetrics, ConnectionRegistry

logger = logging.getLogger(__name__)

LogLevel = Literal["info", "warn", "error", "success", "debug", "connection"]
LogSource = Literal["client", "server"]
ConnectionStatus = Literal["connecting", "connected", "disconnected", "error"]

LOG_LEVELS: tuple[str, ...] = ("info", "warn", "error", "success", "debug", "connection")

PayloadT = TypeVar("PayloadT")

_STDLIB_LEVELS = {
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "debug": logging.DEBUG,
}

_CONNECTION_MESSAGES: dict[str, str] = {
    "connecting": "Connecting to SSE endpoint: {endpoint}",
    "connected": "Connected to SSE endpoint: {endpoint}",
    "disconnected": "Disconnected from SSE endpoint: {endpoint}",
    "error": "Connection error for endpoint: {endpoint}",
}


class LogMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    connection_id: str | None = None
    event_id: str | None = None
    retry_count: int | None = None
    latency: float | None = None
    endpoint: str | None = None
    user_agent: str | None = None
    ip: str | None = None


class LogEntry(BaseModel, Generic[PayloadT]):
    """One immutable log record.  ``data`` is carried through untouched."""

    model_config = ConfigDict(frozen=True)

    id: str
    timestamp: datetime
    level: LogLevel
    source: LogSource
    message: str
    data: PayloadT | None = None
    metadata: LogMetadata | None = None


class LogStats(BaseModel):
    total_logs: int
    level_counts: dict[str, int]
    source_counts: dict[str, int]
    connections: int
    oldest_log: datetime | None = None
    newest_log: datetime | None = None


LogSubscriber = Callable[[LogEntry[Any]], None]


def _new_log_id() -> str:
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"


def _error_data(error: BaseException | None, *, with_type: bool = True) -> dict[str, str] | None:
    if error is None:
        return None
    data = {"error": str(error)}
    if with_type:
        data["type"] = type(error).__name__
    return data


class LogStore:
    """Append-only, size-bounded log buffer with per-connection metrics."""

    def __init__(
        self,
        max_entries: int = 1000,
        source: LogSource = "server",
        connections: ConnectionRegistry | None = None,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be positive")
        self.max_entries = max_entries
        self.source: LogSource = source
        self.connections = connections or ConnectionRegistry()
        # appendleft keeps index 0 as the newest entry; maxlen drops the oldest.
        self._entries: deque[LogEntry[Any]] = deque(maxlen=max_entries)
        self._subscribers: list[LogSubscriber] = []

    def __len__(self) -> int:
        return len(self._entries)

    # ── Writing ───────────────────────────────────────────────────────────────

    def add_log(
        self,
        level: LogLevel,
        message: str,
        data: Any = None,
        metadata: LogMetadata | Mapping[str, Any] | None = None,
        *,
        source: LogSource | None = None,
    ) -> LogEntry[Any]:
        if metadata is not None and not isinstance(metadata, LogMetadata):
            metadata = LogMetadata.model_validate(dict(metadata))

        entry: LogEntry[Any] = LogEntry(
            id=_new_log_id(),
            timestamp=datetime.now(UTC),
            level=level,
            source=source or self.source,
            message=message,
            data=data,
            metadata=metadata,
        )
        self._entries.appendleft(entry)
        self._mirror(entry)

        for callback in list(self._subscribers):
            try:
                callback(entry)
            except Exception:
                logger.exception("Log subscriber %r failed", callback)

        return entry

    def log_connection(
        self,
        status: ConnectionStatus,
        endpoint: str,
        retry_count: int = 0,
        error: BaseException | None = None,
        connection_id: str | None = None,
    ) -> LogEntry[Any]:
        return self.add_log(
            "error" if status == "error" else "info",
            _CONNECTION_MESSAGES[status].format(endpoint=endpoint),
            _error_data(error),
            LogMetadata(connection_id=connection_id, retry_count=retry_count, endpoint=endpoint),
        )

    def log_event(
        self,
        event_type: str,
        data: Any,
        event_id: str | None = None,
        latency: float | None = None,
        endpoint: str | None = None,
    ) -> LogEntry[Any]:
        return self.add_log(
            "info",
            f"Received SSE event: {event_type}",
            data,
            LogMetadata(event_id=event_id, latency=latency, endpoint=endpoint),
        )

    def log_retry(
        self,
        endpoint: str,
        retry_count: int,
        error: BaseException | None = None,
        delay_ms: int = 5000,
        connection_id: str | None = None,
    ) -> LogEntry[Any]:
        return self.add_log(
            "warn",
            f"Retrying SSE connection ({retry_count}) to {endpoint} in {delay_ms}ms",
            _error_data(error, with_type=False),
            LogMetadata(connection_id=connection_id, retry_count=retry_count, endpoint=endpoint),
        )

    def clear(self) -> None:
        """Drop every entry and all connection metrics, then leave a marker entry."""
        self._entries.clear()
        self.connections.clear()
        self.add_log("info", "Logs cleared")

    # ── Reading ───────────────────────────────────────────────────────────────

    def get_logs(
        self,
        level: Collection[str] | None = None,
        source: LogSource | None = None,
        since: datetime | None = None,
        endpoint: str | None = None,
        limit: int | None = None,
    ) -> list[LogEntry[Any]]:
        """Return entries newest-first, keeping those that match every supplied filter.

        A naive *since* is taken to be UTC.
        """
        if since is not None and since.tzinfo is None:
            since = since.replace(tzinfo=UTC)
        out: list[LogEntry[Any]] = []
        for entry in list(self._entries):
            if level is not None and entry.level not in level:
                continue
            if source is not None and entry.source != source:
                continue
            if since is not None and entry.timestamp < since:
                continue
            if endpoint is not None and (entry.metadata is None or entry.metadata.endpoint != endpoint):
                continue
            out.append(entry)
            if limit and len(out) >= limit:
                break
        return out

    def get_stats(self) -> LogStats:
        entries = list(self._entries)
        return LogStats(
            total_logs=len(entries),
            level_counts=dict(Counter(e.level for e in entries)),
            source_counts=dict(Counter(e.source for e in entries)),
            connections=len(self.connections),
            oldest_log=entries[-1].timestamp if entries else None,
            newest_log=entries[0].timestamp if entries else None,
        )

    # ── Connection metrics ────────────────────────────────────────────────────

    def update_connection_metrics(self, connection_id: str, **changes: Any) -> ConnectionMetrics:
        return self.connections.update(connection_id, **changes)

    def get_connection_metrics(
        self, connection_id: str | None = None
    ) -> ConnectionMetrics | dict[str, ConnectionMetrics] | None:
        if connection_id is not None:
            return self.connections.get(connection_id)
        return self.connections.snapshot()

    # ── Subscribers ───────────────────────────────────────────────────────────

    def subscribe(self, callback: LogSubscriber) -> None:
        if callback not in self._subscribers:
            self._subscribers.append(callback)

    def unsubscribe(self, callback: LogSubscriber) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    # ── Internals ─────────────────────────────────────────────────────────────

    def _mirror(self, entry: LogEntry[Any]) -> None:
        stdlib_level = _STDLIB_LEVELS.get(entry.level, logging.INFO)
        if not logger.isEnabledFor(stdlib_level):
            return
        if entry.data is None:
            logger.log(stdlib_level, "[%s] [%s] %s", entry.source.upper(), entry.level.upper(), entry.message)
        else:
            logger.log(
                stdlib_level,
                "[%s] [%s] %s %r",
                entry.source.upper(),
                entry.level.upper(),
                entry.message,
                entry.data,
            )

"""Per-connection bookkeeping for the server-push log stream.

The registry maps a connection id to its ConnectionMetrics.  Records are
created lazily by the first update and only disappear through an explicit
``remove`` / ``clear`` or the idle sweep.  All mutations are synchronous, so
on a single event loop they never interleave.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel


def _now() -> datetime:
    return datetime.now(UTC)


class ConnectionMetrics(BaseModel):
    connected_at: datetime
    disconnected_at: datetime | None = None
    retry_count: int = 0
    total_events_received: int = 0
    connection_duration: float | None = None  # seconds, set on disconnect
    last_event_time: datetime | None = None
    error_count: int = 0
    last_activity_at: datetime


class ConnectionRegistry:
    """Mapping of connection id -> ConnectionMetrics with idle reclamation."""

    def __init__(self) -> None:
        self._metrics: dict[str, ConnectionMetrics] = {}

    def __len__(self) -> int:
        return len(self._metrics)

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._metrics

    def update(self, connection_id: str, **changes: Any) -> ConnectionMetrics:
        """Create the record if missing, then shallow-merge *changes* into it.

        Overlapping fields are last-write-wins.  ``last_activity_at`` is bumped
        to now unless the caller supplies it explicitly.
        """
        now = _now()
        current = self._metrics.get(connection_id) or ConnectionMetrics(
            connected_at=now,
            last_activity_at=now,
        )
        changes.setdefault("last_activity_at", now)
        updated = current.model_copy(update=changes)
        self._metrics[connection_id] = updated
        return updated

    def get(self, connection_id: str) -> ConnectionMetrics | None:
        return self._metrics.get(connection_id)

    def snapshot(self) -> dict[str, ConnectionMetrics]:
        """Shallow copy of the whole mapping; records themselves are replaced, never mutated."""
        return dict(self._metrics)

    def record_event(self, connection_id: str) -> ConnectionMetrics:
        current = self._metrics.get(connection_id)
        total = current.total_events_received if current else 0
        now = _now()
        return self.update(connection_id, total_events_received=total + 1, last_event_time=now)

    def record_error(self, connection_id: str) -> ConnectionMetrics:
        current = self._metrics.get(connection_id)
        errors = current.error_count if current else 0
        return self.update(connection_id, error_count=errors + 1)

    def record_retry(self, connection_id: str) -> ConnectionMetrics:
        current = self._metrics.get(connection_id)
        retries = current.retry_count if current else 0
        return self.update(connection_id, retry_count=retries + 1)

    def touch(self, connection_id: str) -> bool:
        """Bump activity for a tracked connection.  Untracked ids are not recreated."""
        if connection_id not in self._metrics:
            return False
        self.update(connection_id)
        return True

    def mark_disconnected(self, connection_id: str) -> ConnectionMetrics:
        now = _now()
        current = self._metrics.get(connection_id)
        duration = (now - current.connected_at).total_seconds() if current else 0.0
        return self.update(connection_id, disconnected_at=now, connection_duration=duration)

    def remove(self, connection_id: str) -> ConnectionMetrics | None:
        return self._metrics.pop(connection_id, None)

    def clear(self) -> None:
        self._metrics.clear()

    def idle_for(self, connection_id: str, now: datetime | None = None) -> float | None:
        metrics = self._metrics.get(connection_id)
        if metrics is None:
            return None
        return ((now or _now()) - metrics.last_activity_at).total_seconds()

    def sweep_idle(self, timeout: float, now: datetime | None = None) -> dict[str, float]:
        """Remove every connection idle for longer than *timeout* seconds.

        Returns the removed ids mapped to how long (seconds) each had been idle.

        Bookkeeping only: the caller decides what to log and whether to touch
        the underlying transport.
        """
        now = now or _now()
        stale: dict[str, float] = {}
        for connection_id, metrics in self._metrics.items():
            idle = (now - metrics.last_activity_at).total_seconds()
            if idle > timeout:
                stale[connection_id] = idle
        for connection_id in stale:
            del self._metrics[connection_id]
        return stale

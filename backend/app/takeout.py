"""Takeout: point-in-time export of the log store plus activity data.

Exports read whatever the store holds at the moment they run; nothing is
locked, so an entry appended mid-export may or may not be included.
"""

from __future__ import annotations

import csv
import io
import json
import time
from datetime import UTC, datetime
from typing import Any, Literal, Protocol, runtime_checkable

from pydantic_core import to_jsonable_python

from app.log_store import LogEntry, LogStore
from app.notion.schemas import Activity

ExportFormat = Literal["json", "csv"]

EXPORT_FORMATS: tuple[str, ...] = ("json", "csv")
EXPORT_VERSION = "1.0.0"

CSV_COLUMNS = [
    "id",
    "timestamp",
    "level",
    "source",
    "message",
    "endpoint",
    "connection_id",
    "retry_count",
    "latency",
    "event_id",
]

_MEDIA_TYPES = {"json": "application/json", "csv": "text/csv"}


class UnsupportedFormat(ValueError):
    def __init__(self, fmt: str) -> None:
        super().__init__(f"Unsupported export format {fmt!r}; expected one of: {', '.join(EXPORT_FORMATS)}")
        self.format = fmt


class ActivitySource(Protocol):
    """Read-only access to the activity records embedded in a takeout."""

    async def get_activities(self) -> list[str]: ...

    async def get_current_activity(self) -> Activity | None: ...


@runtime_checkable
class ActivityManager(ActivitySource, Protocol):
    """An ActivitySource that can also switch the running activity."""

    async def update_activity(
        self,
        new_activity_name: str,
        current_activity_id: str | None = None,
        notes: str | None = None,
    ) -> Activity: ...


def check_format(fmt: str) -> ExportFormat:
    fmt = (fmt or "json").lower()
    if fmt not in EXPORT_FORMATS:
        raise UnsupportedFormat(fmt)
    return fmt  # type: ignore[return-value]


def media_type(fmt: ExportFormat) -> str:
    return _MEDIA_TYPES[fmt]


def export_filename(prefix: str, fmt: ExportFormat) -> str:
    return f"{prefix}-{int(time.time() * 1000)}.{fmt}"


def _csv_row(entry: LogEntry[Any]) -> list[str]:
    meta = entry.metadata

    def field(value: Any) -> str:
        return "" if value is None else str(value)

    return [
        entry.id,
        entry.timestamp.isoformat(),
        entry.level,
        entry.source,
        entry.message,
        field(meta.endpoint if meta else None),
        field(meta.connection_id if meta else None),
        field(meta.retry_count if meta else None),
        field(meta.latency if meta else None),
        field(meta.event_id if meta else None),
    ]


def logs_to_csv(entries: list[LogEntry[Any]]) -> str:
    """Header row then one row per entry.  Quotes inside fields are doubled."""
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(CSV_COLUMNS)
    writer.writerows(_csv_row(entry) for entry in entries)
    return buf.getvalue()


class TakeoutService:
    def __init__(
        self,
        store: LogStore,
        activity_source: ActivitySource | None = None,
        log_cap: int = 1000,
    ) -> None:
        self.store = store
        self.activity_source = activity_source
        self.log_cap = log_cap

    def _metadata(self, fmt: ExportFormat) -> dict[str, str]:
        return {
            "generated_at": datetime.now(UTC).isoformat(),
            "format": fmt,
            "version": EXPORT_VERSION,
        }

    def build_log_document(self, fmt: ExportFormat = "json") -> dict[str, Any]:
        return {
            "metadata": self._metadata(fmt),
            "logs": self.store.get_logs(limit=self.log_cap),
            "connection_metrics": self.store.connections.snapshot(),
            "stats": self.store.get_stats(),
        }

    def export_logs(self, fmt: str = "json") -> str:
        """Serialize the log store (and connection metrics, for JSON) in *fmt*."""
        fmt = check_format(fmt)
        if fmt == "csv":
            return logs_to_csv(self.store.get_logs(limit=self.log_cap))
        return _dump(self.build_log_document(fmt))

    async def export_snapshot(self, fmt: str = "json") -> str:
        """Full takeout: log document plus activity data from the activity source.

        CSV carries only the log table; activity data has no row shape.
        Upstream failures from the activity source propagate to the caller.
        """
        fmt = check_format(fmt)
        if fmt == "csv":
            return logs_to_csv(self.store.get_logs(limit=self.log_cap))

        document = self.build_log_document(fmt)
        if self.activity_source is not None:
            document["activities"] = await self.activity_source.get_activities()
            document["current_activity"] = await self.activity_source.get_current_activity()
        return _dump(document)


def _dump(document: dict[str, Any]) -> str:
    return json.dumps(to_jsonable_python(document, fallback=str), indent=2)

from typing import Any

from pydantic import BaseModel

from app.log_store import LogEntry, LogLevel, LogMetadata, LogStats


class LogsResponse(BaseModel):
    logs: list[LogEntry]
    stats: LogStats


class ClientLogIn(BaseModel):
    level: LogLevel = "info"
    message: str
    data: Any = None
    metadata: LogMetadata | None = None


class ClearResponse(BaseModel):
    success: bool
    message: str

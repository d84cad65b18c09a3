"""REST endpoints for the stream log store.

GET    /api/logs                 — recent entries + stats, or a download with ?format=json|csv
POST   /api/logs                 — record a client-side entry
DELETE /api/logs?confirm=true    — clear every entry and connection metric
"""

from datetime import datetime
from typing import Any, Literal

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status

from app.dependencies import get_log_store, get_takeout, read_json, validate_body
from app.log_store import LOG_LEVELS, LogEntry, LogStore
from app.schemas.logs import ClearResponse, ClientLogIn, LogsResponse
from app.takeout import TakeoutService, UnsupportedFormat, check_format, export_filename, media_type

router = APIRouter(prefix="/logs", tags=["logs"])


# ── Helpers ──────────────────────────────────────────────────────────────────


def _parse_levels(level: list[str] | None) -> list[str] | None:
    """Accept ?level=error&level=warn as well as ?level=error,warn."""
    if not level:
        return None
    levels = [part.strip().lower() for item in level for part in item.split(",") if part.strip()]
    unknown = sorted(set(levels) - set(LOG_LEVELS))
    if unknown:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown log level(s): {', '.join(unknown)}",
        )
    return levels


# ── Endpoints ────────────────────────────────────────────────────────────────


@router.get("", response_model=LogsResponse)
async def get_logs(
    limit: int = Query(100, ge=1, le=1000),
    level: list[str] | None = Query(None),
    source: Literal["client", "server"] | None = Query(None),
    since: datetime | None = Query(None),
    endpoint: str | None = Query(None),
    fmt: str | None = Query(None, alias="format"),
    store: LogStore = Depends(get_log_store),
    takeout: TakeoutService = Depends(get_takeout),
) -> Any:
    """Return the newest entries (newest first) with aggregate stats.

    With ``format=json|csv`` the whole store is returned as an attachment instead.
    """
    if fmt:
        try:
            fmt = check_format(fmt)
        except UnsupportedFormat as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
        return Response(
            content=takeout.export_logs(fmt),
            media_type=media_type(fmt),
            headers={"Content-Disposition": f'attachment; filename="{export_filename("sse-logs", fmt)}"'},
        )

    logs = store.get_logs(
        level=_parse_levels(level),
        source=source,
        since=since,
        endpoint=endpoint,
        limit=limit,
    )
    return LogsResponse(logs=logs, stats=store.get_stats())


@router.post("", response_model=LogEntry, status_code=status.HTTP_201_CREATED)
async def add_client_log(request: Request, store: LogStore = Depends(get_log_store)) -> LogEntry:
    body = validate_body(ClientLogIn, await read_json(request), "Invalid log entry")
    return store.add_log(body.level, body.message, body.data, body.metadata, source="client")


@router.delete("", response_model=ClearResponse)
async def clear_logs(
    confirm: bool = Query(False),
    store: LogStore = Depends(get_log_store),
) -> ClearResponse:
    if not confirm:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Pass confirm=true to clear all logs",
        )
    store.clear()
    return ClearResponse(success=True, message="All logs cleared")

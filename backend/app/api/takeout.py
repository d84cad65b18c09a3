"""Takeout export.

GET  /api/export?format=json|csv   — logs, connection metrics, stats and activities as an attachment
POST /api/export                   — {"action": "cleanup"}: sweep idle connections and expired subscriptions
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings
from app.database import get_db
from app.dependencies import get_broker, get_settings, get_takeout, read_json, upstream_error
from app.event_stream import EventBroker
from app.notifications import cleanup_expired
from app.notion import NotionClientError
from app.schemas.takeout import CleanupResponse
from app.takeout import TakeoutService, UnsupportedFormat, check_format, export_filename, media_type

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/export", tags=["takeout"])


@router.get("")
async def export_takeout(
    fmt: str = Query("json", alias="format"),
    takeout: TakeoutService = Depends(get_takeout),
    settings: Settings = Depends(get_settings),
) -> Response:
    try:
        fmt = check_format(fmt)
    except UnsupportedFormat as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))

    try:
        content = await takeout.export_snapshot(fmt)
    except NotionClientError as exc:
        logger.exception("Takeout request failed")
        raise upstream_error(settings, "Failed to generate takeout data", exc)

    return Response(
        content=content,
        media_type=media_type(fmt),
        headers={"Content-Disposition": f'attachment; filename="{export_filename("takeout", fmt)}"'},
    )


@router.post("", response_model=CleanupResponse)
async def takeout_action(
    request: Request,
    broker: EventBroker = Depends(get_broker),
    db: AsyncSession = Depends(get_db),
) -> CleanupResponse:
    body = await read_json(request)
    action = body.get("action") if isinstance(body, dict) else None
    if action != "cleanup":
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unknown action")

    closed = broker.sweep_idle()
    expired = await cleanup_expired(db)
    logger.info("Cleanup removed %d idle connections and %d expired subscriptions", len(closed), expired)
    return CleanupResponse(
        success=True,
        message="Cleanup completed",
        closed_connections=closed,
        expired_subscriptions=expired,
    )

"""Activity endpoints backed by the Notion activities database.

GET  /api/activities   — names of every activity kind
POST /api/activities   — end the running activity and start a new one
GET  /api/current      — the activity currently running, or null
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status

from app.config import Settings
from app.dependencies import get_activity_source, get_settings, read_json, upstream_error, validate_body
from app.notion import NotionClientError
from app.notion.schemas import (
    ActivitiesResponse,
    ActivityUpdate,
    ActivityUpdateResponse,
    CurrentActivityResponse,
)
from app.takeout import ActivityManager

logger = logging.getLogger(__name__)

router = APIRouter(tags=["activities"])


@router.get("/activities", response_model=ActivitiesResponse)
async def list_activities(
    source: ActivityManager = Depends(get_activity_source),
    settings: Settings = Depends(get_settings),
) -> ActivitiesResponse:
    try:
        activities = await source.get_activities()
    except NotionClientError as exc:
        logger.exception("Error fetching activities")
        raise upstream_error(settings, "Failed to fetch activities", exc)
    return ActivitiesResponse(activities=activities)


@router.post("/activities", response_model=ActivityUpdateResponse)
async def start_activity(
    request: Request,
    source: ActivityManager = Depends(get_activity_source),
    settings: Settings = Depends(get_settings),
) -> ActivityUpdateResponse:
    body = validate_body(ActivityUpdate, await read_json(request), "Invalid activity update")
    if not body.new_activity_name.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Activity name is required")

    try:
        activity = await source.update_activity(
            new_activity_name=body.new_activity_name,
            current_activity_id=body.current_activity_id,
            notes=body.notes,
        )
    except NotionClientError as exc:
        logger.exception("Error updating activity")
        raise upstream_error(settings, "Failed to update activity", exc)
    return ActivityUpdateResponse(success=True, activity=activity)


@router.get("/current", response_model=CurrentActivityResponse)
async def current_activity(
    source: ActivityManager = Depends(get_activity_source),
    settings: Settings = Depends(get_settings),
) -> CurrentActivityResponse:
    try:
        activity = await source.get_current_activity()
    except NotionClientError as exc:
        logger.exception("Error fetching current activity")
        raise upstream_error(settings, "Failed to fetch current activity", exc)
    return CurrentActivityResponse(activity=activity)

"""Push notification subscription endpoints.

POST   /api/notifications/subscribe       — save (or refresh) a browser push subscription
DELETE /api/notifications/subscribe       — remove a subscription by endpoint
GET    /api/notifications/subscriptions   — list stored subscriptions
"""

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import read_json, validate_body
from app.notifications import list_subscriptions, remove_subscription, save_subscription
from app.notifications.schemas import (
    SubscribeResponse,
    SubscriptionCreate,
    SubscriptionListResponse,
    SubscriptionResponse,
    UnsubscribeRequest,
)

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.post("/subscribe", response_model=SubscribeResponse)
async def subscribe(request: Request, db: AsyncSession = Depends(get_db)) -> SubscribeResponse:
    body = validate_body(SubscriptionCreate, await read_json(request), "Invalid subscription object")
    stored = await save_subscription(db, body, user_agent=request.headers.get("user-agent"))
    return SubscribeResponse(
        success=True,
        message="Subscription saved successfully",
        subscription=SubscriptionResponse.model_validate(stored),
    )


@router.delete("/subscribe")
async def unsubscribe(request: Request, db: AsyncSession = Depends(get_db)) -> dict:
    body = validate_body(UnsubscribeRequest, await read_json(request), "Invalid unsubscribe request")
    if not body.endpoint:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Endpoint is required")

    if not await remove_subscription(db, body.endpoint):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Subscription not found")
    return {"success": True, "message": "Subscription removed successfully"}


@router.get("/subscriptions", response_model=SubscriptionListResponse)
async def get_subscriptions(db: AsyncSession = Depends(get_db)) -> SubscriptionListResponse:
    rows = await list_subscriptions(db)
    return SubscriptionListResponse(
        total=len(rows),
        subscriptions=[SubscriptionResponse.model_validate(row) for row in rows],
    )

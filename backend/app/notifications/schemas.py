from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class NotificationPayload(BaseModel):
    """Validated shape of a notification, shared by push and stream broadcasts."""

    title: str = Field(..., min_length=1)
    body: str = Field(..., min_length=1)
    icon: str | None = None
    badge: str | None = None
    url: str | None = None
    data: dict[str, Any] | None = None


class SubscriptionKeys(BaseModel):
    p256dh: str
    auth: str


class SubscriptionCreate(BaseModel):
    endpoint: str = Field(..., min_length=1)
    expiration_time: int | None = Field(None, alias="expirationTime")
    keys: SubscriptionKeys

    model_config = ConfigDict(populate_by_name=True)


class UnsubscribeRequest(BaseModel):
    endpoint: str | None = None


class SubscriptionResponse(BaseModel):
    id: str
    endpoint: str
    expiration_time: int | None
    user_agent: str | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class SubscribeResponse(BaseModel):
    success: bool
    message: str
    subscription: SubscriptionResponse


class SubscriptionListResponse(BaseModel):
    total: int
    subscriptions: list[SubscriptionResponse]

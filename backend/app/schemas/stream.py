from typing import Literal

from pydantic import BaseModel, Field

from app.connections import ConnectionMetrics
from app.notifications.schemas import NotificationPayload


class BroadcastRequest(BaseModel):
    type: Literal["broadcast"]
    data: NotificationPayload
    target_connection: str | None = Field(None, alias="targetConnection")

    model_config = {"populate_by_name": True}


class BroadcastResponse(BaseModel):
    success: bool
    message: str
    broadcast_count: int


class CloseResponse(BaseModel):
    success: bool
    message: str


class ConnectionOut(BaseModel):
    connection_id: str
    endpoint: str
    metrics: ConnectionMetrics | None

from pydantic import BaseModel


class CleanupResponse(BaseModel):
    success: bool
    message: str
    closed_connections: list[str]
    expired_subscriptions: int

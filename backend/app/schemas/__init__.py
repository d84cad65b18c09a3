from app.schemas.logs import ClearResponse, ClientLogIn, LogsResponse
from app.schemas.stream import BroadcastRequest, BroadcastResponse, CloseResponse, ConnectionOut
from app.schemas.takeout import CleanupResponse

__all__ = [
    "LogsResponse",
    "ClientLogIn",
    "ClearResponse",
    "BroadcastRequest",
    "BroadcastResponse",
    "CloseResponse",
    "ConnectionOut",
    "CleanupResponse",
]

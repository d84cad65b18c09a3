"""FastAPI dependencies exposing the services built in ``create_app``.

Services live on ``app.state`` rather than as module globals, so every
application instance (and every test) gets its own store and broker.
"""

from typing import Any, TypeVar

from fastapi import HTTPException, Request, status
from pydantic import BaseModel, ValidationError

from app.config import Settings
from app.event_stream import EventBroker
from app.log_store import LogStore
from app.takeout import ActivityManager, TakeoutService

ModelT = TypeVar("ModelT", bound=BaseModel)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_log_store(request: Request) -> LogStore:
    return request.app.state.log_store


def get_broker(request: Request) -> EventBroker:
    return request.app.state.broker


def get_takeout(request: Request) -> TakeoutService:
    return request.app.state.takeout


def get_activity_source(request: Request) -> ActivityManager:
    return request.app.state.activity_source


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.headers.get("x-real-ip") or (request.client.host if request.client else "unknown")


async def read_json(request: Request) -> Any:
    """Request body as JSON, or 400 when it is missing or malformed."""
    try:
        return await request.json()
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Request body must be valid JSON")


def validate_body(model: type[ModelT], payload: Any, detail: str) -> ModelT:
    """Validate *payload* against *model*, turning failures into a 400 with *detail*."""
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) or "body" for err in exc.errors())
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"{detail} ({fields})")


def upstream_error(settings: Settings, message: str, exc: Exception) -> HTTPException:
    """500 with a generic message, plus the cause when running in debug mode."""
    detail: Any = message
    if settings.debug:
        detail = {"message": message, "debug": str(exc)}
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)

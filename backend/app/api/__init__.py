from fastapi import APIRouter

from app.api.activities import router as activities_router
from app.api.logs import router as logs_router
from app.api.notifications import router as notifications_router
from app.api.stream import router as stream_router
from app.api.takeout import router as takeout_router

api_router = APIRouter(prefix="/api")
api_router.include_router(stream_router)
api_router.include_router(logs_router)
api_router.include_router(takeout_router)
api_router.include_router(activities_router)
api_router.include_router(notifications_router)

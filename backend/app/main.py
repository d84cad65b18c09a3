import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api import api_router
from app.config import Settings, settings as default_settings, warn_optional_settings
from app.database import build_engine, build_sessionmaker, ensure_sqlite_dir
from app.event_stream import EventBroker
from app.log_store import LogStore
from app.notion import NotionClient
from app.takeout import ActivityManager, TakeoutService

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    """Root logger setup.  Store entries are mirrored to ``app.log_store`` from here on."""
    logging.basicConfig(format="%(levelname)s %(name)s: %(message)s")
    logging.getLogger().setLevel(logging.DEBUG if settings.debug else logging.INFO)
    # Quiet down noisy third-party loggers
    for name in ("httpcore", "httpx", "multipart", "aiosqlite"):
        logging.getLogger(name).setLevel(logging.WARNING)


def create_app(
    settings: Settings | None = None,
    activity_source: ActivityManager | None = None,
) -> FastAPI:
    """Build the application and its services.

    Every call gets a fresh LogStore / EventBroker / TakeoutService and a
    database engine for ``settings.database_url``, all stored on ``app.state``;
    handlers reach them through ``app.dependencies`` and ``app.database.get_db``.
    """
    settings = settings or default_settings
    configure_logging(settings)

    store = LogStore(max_entries=settings.log_max_entries, source="server")
    broker = EventBroker(
        store,
        heartbeat_interval=settings.sse_heartbeat_interval,
        idle_timeout=settings.sse_idle_timeout,
        sweep_interval=settings.sse_sweep_interval,
        queue_size=settings.sse_queue_size,
        retry_delay_ms=settings.sse_retry_delay_ms,
    )
    source = activity_source or NotionClient(settings)
    takeout = TakeoutService(store, source, log_cap=settings.export_log_cap)
    engine = build_engine(settings.database_url)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        ensure_sqlite_dir(settings.database_url)
        warn_optional_settings(settings)
        broker.start()
        logger.info("Event stream sweeper started (every %ss)", settings.sse_sweep_interval)
        try:
            yield
        finally:
            await broker.stop()
            await engine.dispose()
            logger.info("Event stream stopped")

    app = FastAPI(
        title=settings.app_name,
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.log_store = store
    app.state.broker = broker
    app.state.activity_source = source
    app.state.takeout = takeout
    app.state.engine = engine
    app.state.sessionmaker = build_sessionmaker(engine)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


# uvicorn app.main:app
app = create_app()

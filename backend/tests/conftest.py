"""
Shared pytest fixtures.

Each test gets its own application instance (fresh log store, broker and
takeout service) and an in-memory SQLite database (via aiosqlite) for the
push subscription tables.  Notion is replaced by FakeActivitySource.
"""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from app.config import Settings
from app.database import Base, build_sessionmaker
from app.event_stream import EventBroker
from app.log_store import LogStore
from app.main import create_app
from app.notion import NotionAPIError
from app.notion.schemas import Activity

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"


# ── Fake Notion ───────────────────────────────────────────────────────────────


class FakeActivitySource:
    """In-memory stand-in for NotionClient."""

    def __init__(self) -> None:
        self.activities = ["Reading", "Coding", "Sleep"]
        self.current: Activity | None = Activity(
            id="page-1",
            name="Coding",
            notes="backend work",
            start_time="2026-10-19T08:00:00.000Z",
        )
        self.fail = False
        self.updates: list[dict] = []

    def _check(self) -> None:
        if self.fail:
            raise NotionAPIError("Notion API error: 502 upstream unavailable")

    async def get_activities(self) -> list[str]:
        self._check()
        return sorted(self.activities)

    async def get_current_activity(self) -> Activity | None:
        self._check()
        return self.current

    async def update_activity(
        self,
        new_activity_name: str,
        current_activity_id: str | None = None,
        notes: str | None = None,
    ) -> Activity:
        self._check()
        self.updates.append(
            {"name": new_activity_name, "current_activity_id": current_activity_id, "notes": notes}
        )
        self.current = Activity(id=f"page-{len(self.updates) + 1}", name=new_activity_name, notes=notes or "")
        return self.current


# ── Services ──────────────────────────────────────────────────────────────────


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        database_url=TEST_DB_URL,
        notion_api_key="",
        notion_activities_database_id="",
        log_max_entries=200,
        sse_heartbeat_interval=0.05,
        sse_idle_timeout=300.0,
        export_log_cap=200,
    )


@pytest.fixture
def store() -> LogStore:
    return LogStore(max_entries=50)


@pytest.fixture
def broker(store: LogStore) -> EventBroker:
    return EventBroker(store, heartbeat_interval=0.05, idle_timeout=300.0, queue_size=64)


@pytest.fixture
def activity_source() -> FakeActivitySource:
    return FakeActivitySource()


@pytest.fixture
def app(settings: Settings, activity_source: FakeActivitySource):
    return create_app(settings, activity_source=activity_source)


# ── Database engine (one per test) ────────────────────────────────────────────


@pytest_asyncio.fixture
async def engine():
    _engine = create_async_engine(
        TEST_DB_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        # One shared connection, otherwise every connection sees its own empty :memory: DB
        poolclass=StaticPool,
    )
    async with _engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield _engine
    await _engine.dispose()


@pytest_asyncio.fixture
async def db(engine) -> AsyncSession:
    async with build_sessionmaker(engine)() as session:
        yield session


# ── HTTP test client ──────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def client(app, engine) -> AsyncClient:
    # Point the app at the shared in-memory engine that holds the tables
    await app.state.engine.dispose()
    app.state.engine = engine
    app.state.sessionmaker = build_sessionmaker(engine)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine

from app.database import Base, build_sessionmaker
from app.main import create_app
from app.notifications import cleanup_expired, list_subscriptions

pytestmark = pytest.mark.asyncio

SUBSCRIBE = "/api/notifications/subscribe"

SUBSCRIPTION = {
    "endpoint": "https://push.example/sub/abc",
    "expirationTime": None,
    "keys": {"p256dh": "BPk-key", "auth": "auth-secret"},
}


async def test_subscribe(client: AsyncClient):
    resp = await client.post(SUBSCRIBE, json=SUBSCRIPTION, headers={"User-Agent": "pytest-browser"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    sub = body["subscription"]
    assert sub["endpoint"] == SUBSCRIPTION["endpoint"]
    assert sub["id"].startswith("sub_")
    assert sub["user_agent"] == "pytest-browser"


async def test_subscribe_same_endpoint_refreshes(client: AsyncClient):
    first = (await client.post(SUBSCRIBE, json=SUBSCRIPTION)).json()["subscription"]
    second = (
        await client.post(SUBSCRIBE, json={**SUBSCRIPTION, "expirationTime": 1_900_000_000_000})
    ).json()["subscription"]

    assert second["id"] == first["id"]
    assert second["expiration_time"] == 1_900_000_000_000

    listing = (await client.get("/api/notifications/subscriptions")).json()
    assert listing["total"] == 1


async def test_subscribe_invalid(client: AsyncClient):
    resp = await client.post(SUBSCRIBE, json={"endpoint": "https://push.example/x"})
    assert resp.status_code == 400
    assert resp.json()["detail"].startswith("Invalid subscription object")


async def test_unsubscribe(client: AsyncClient, db):
    await client.post(SUBSCRIBE, json=SUBSCRIPTION)

    resp = await client.request("DELETE", SUBSCRIBE, json={"endpoint": SUBSCRIPTION["endpoint"]})

    assert resp.status_code == 200
    assert resp.json()["success"] is True
    assert await list_subscriptions(db) == []


async def test_unsubscribe_errors(client: AsyncClient):
    missing = await client.request("DELETE", SUBSCRIBE, json={})
    assert missing.status_code == 400

    unknown = await client.request("DELETE", SUBSCRIBE, json={"endpoint": "https://push.example/none"})
    assert unknown.status_code == 404


async def test_cleanup_expired_keeps_unexpiring(client: AsyncClient, db):
    await client.post(SUBSCRIBE, json=SUBSCRIPTION)
    await client.post(
        SUBSCRIBE,
        json={**SUBSCRIPTION, "endpoint": "https://push.example/sub/old", "expirationTime": 1000},
    )

    assert await cleanup_expired(db, now_ms=2000) == 1
    remaining = await list_subscriptions(db)
    assert [row.endpoint for row in remaining] == [SUBSCRIPTION["endpoint"]]


async def test_subscriptions_use_the_configured_database(settings, activity_source, tmp_path):
    url = f"sqlite+aiosqlite:///{tmp_path / 'subs.db'}"
    app = create_app(settings.model_copy(update={"database_url": url}), activity_source=activity_source)
    assert app.state.engine.url.database == str(tmp_path / "subs.db")

    async with app.state.engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        resp = await c.post(SUBSCRIBE, json=SUBSCRIPTION)
    assert resp.status_code == 200
    await app.state.engine.dispose()

    other = create_async_engine(url)
    try:
        async with build_sessionmaker(other)() as session:
            rows = await list_subscriptions(session)
    finally:
        await other.dispose()
    assert [row.endpoint for row in rows] == [SUBSCRIPTION["endpoint"]]

import time
from datetime import UTC, datetime, timedelta

import pytest
from httpx import AsyncClient

from app.models.push_subscription import PushSubscription

pytestmark = pytest.mark.asyncio

EXPORT = "/api/export"


async def test_export_json(client: AsyncClient, app):
    app.state.log_store.add_log("success", "exported")

    resp = await client.get(EXPORT)

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("application/json")
    assert 'filename="takeout-' in resp.headers["content-disposition"]
    body = resp.json()
    assert body["logs"][0]["message"] == "exported"
    assert body["activities"] == ["Coding", "Reading", "Sleep"]
    assert body["current_activity"]["id"] == "page-1"


async def test_export_csv(client: AsyncClient, app):
    app.state.log_store.add_log("info", "row")
    resp = await client.get(EXPORT, params={"format": "csv"})
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/csv")
    assert resp.text.splitlines()[0].startswith("id,timestamp,level")


async def test_export_unsupported_format(client: AsyncClient):
    resp = await client.get(EXPORT, params={"format": "yaml"})
    assert resp.status_code == 400


async def test_export_upstream_failure(client: AsyncClient, activity_source):
    activity_source.fail = True
    resp = await client.get(EXPORT)
    assert resp.status_code == 500
    assert resp.json()["detail"] == "Failed to generate takeout data"


# ── Cleanup action ────────────────────────────────────────────────────────────


async def test_cleanup_sweeps_idle_connections_and_expired_subscriptions(client: AsyncClient, app, db):
    broker = app.state.broker
    stale = broker.open("/api/stream")
    fresh = broker.open("/api/stream")
    app.state.log_store.update_connection_metrics(
        stale.id, last_activity_at=datetime.now(UTC) - timedelta(hours=1)
    )

    now = datetime.now(UTC)
    now_ms = int(time.time() * 1000)
    db.add_all(
        [
            PushSubscription(
                id="sub_old", endpoint="https://push.example/old", expiration_time=now_ms - 1000,
                p256dh="k", auth="a", created_at=now, updated_at=now,
            ),
            PushSubscription(
                id="sub_new", endpoint="https://push.example/new", expiration_time=now_ms + 3_600_000,
                p256dh="k", auth="a", created_at=now, updated_at=now,
            ),
        ]
    )
    await db.commit()

    resp = await client.post(EXPORT, json={"action": "cleanup"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["closed_connections"] == [stale.id]
    assert body["expired_subscriptions"] == 1
    assert broker.active_ids == [fresh.id]


async def test_unknown_action(client: AsyncClient):
    resp = await client.post(EXPORT, json={"action": "explode"})
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Unknown action"

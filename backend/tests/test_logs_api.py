import csv
import io

import pytest
from httpx import AsyncClient

from app.takeout import CSV_COLUMNS

pytestmark = pytest.mark.asyncio

LOGS = "/api/logs"


@pytest.fixture
def store(app):
    return app.state.log_store


# ── Listing ───────────────────────────────────────────────────────────────────


async def test_get_logs_newest_first_with_stats(client: AsyncClient, store):
    store.add_log("info", "first")
    store.add_log("error", "second")

    resp = await client.get(LOGS)

    assert resp.status_code == 200
    body = resp.json()
    assert [e["message"] for e in body["logs"]] == ["second", "first"]
    assert body["stats"]["total_logs"] == 2
    assert body["stats"]["level_counts"] == {"info": 1, "error": 1}
    assert body["logs"][0]["source"] == "server"


async def test_get_logs_filters(client: AsyncClient, store):
    store.add_log("info", "a", metadata={"endpoint": "/x"})
    store.add_log("error", "b", metadata={"endpoint": "/x"})
    store.add_log("warn", "c", metadata={"endpoint": "/y"})

    by_level = (await client.get(LOGS, params={"level": "error,warn"})).json()["logs"]
    assert [e["message"] for e in by_level] == ["c", "b"]

    repeated = (await client.get(LOGS, params=[("level", "error"), ("level", "info")])).json()["logs"]
    assert [e["message"] for e in repeated] == ["b", "a"]

    by_endpoint = (await client.get(LOGS, params={"endpoint": "/x", "limit": 1})).json()["logs"]
    assert [e["message"] for e in by_endpoint] == ["b"]


async def test_get_logs_since_without_offset_is_utc(client: AsyncClient, store):
    store.add_log("info", "recent")

    resp = await client.get(LOGS, params={"since": "2020-01-01T00:00:00"})
    assert resp.status_code == 200
    assert [e["message"] for e in resp.json()["logs"]] == ["recent"]

    future = await client.get(LOGS, params={"since": "2999-01-01T00:00:00"})
    assert future.status_code == 200
    assert future.json()["logs"] == []


async def test_get_logs_unknown_level(client: AsyncClient):
    resp = await client.get(LOGS, params={"level": "fatal"})
    assert resp.status_code == 400
    assert "fatal" in resp.json()["detail"]


async def test_get_logs_limit_bounds(client: AsyncClient):
    assert (await client.get(LOGS, params={"limit": 0})).status_code == 422
    assert (await client.get(LOGS, params={"limit": 1001})).status_code == 422


# ── Download ──────────────────────────────────────────────────────────────────


async def test_download_csv(client: AsyncClient, store):
    store.add_log("info", 'quoted "value"')

    resp = await client.get(LOGS, params={"format": "csv"})

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/csv")
    disposition = resp.headers["content-disposition"]
    assert disposition.startswith('attachment; filename="sse-logs-') and disposition.endswith('.csv"')
    rows = list(csv.reader(io.StringIO(resp.text)))
    assert rows[0] == CSV_COLUMNS
    assert rows[1][4] == 'quoted "value"'


async def test_download_json(client: AsyncClient, store):
    store.add_log("info", "hello")
    resp = await client.get(LOGS, params={"format": "json"})
    assert resp.status_code == 200
    assert resp.json()["logs"][0]["message"] == "hello"


async def test_download_unsupported_format(client: AsyncClient):
    resp = await client.get(LOGS, params={"format": "xml"})
    assert resp.status_code == 400


# ── Client entries ────────────────────────────────────────────────────────────


async def test_post_client_log(client: AsyncClient, store):
    resp = await client.post(
        LOGS,
        json={"level": "warn", "message": "EventSource reconnecting", "metadata": {"retry_count": 2}},
    )

    assert resp.status_code == 201
    body = resp.json()
    assert body["source"] == "client"
    assert body["metadata"]["retry_count"] == 2
    assert store.get_logs(source="client")[0].message == "EventSource reconnecting"


async def test_post_client_log_invalid_level(client: AsyncClient):
    resp = await client.post(LOGS, json={"level": "fatal", "message": "x"})
    assert resp.status_code == 400
    assert resp.json()["detail"].startswith("Invalid log entry")


# ── Clear ─────────────────────────────────────────────────────────────────────


async def test_clear_requires_confirmation(client: AsyncClient, store):
    store.add_log("info", "keep me")
    resp = await client.delete(LOGS)
    assert resp.status_code == 400
    assert len(store) == 1


async def test_clear(client: AsyncClient, store):
    store.add_log("info", "gone")
    store.update_connection_metrics("sse_1")

    resp = await client.delete(LOGS, params={"confirm": "true"})

    assert resp.status_code == 200
    assert resp.json()["success"] is True
    assert [e.message for e in store.get_logs()] == ["Logs cleared"]
    assert store.get_connection_metrics() == {}

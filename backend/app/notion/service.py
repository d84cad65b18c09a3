"""Mapping between raw Notion page objects and Activity models."""

from datetime import datetime
from typing import Any

from app.notion.schemas import Activity

# Property names in the activities database
KIND = "Kind"
NOTE = "Note"
STARTED_TIME = "Started Time"
END_TIME = "End Time"


def _select_name(prop: dict[str, Any] | None) -> str | None:
    select = (prop or {}).get("select")
    if isinstance(select, dict) and isinstance(select.get("name"), str):
        return select["name"]
    return None


def _plain_text(prop: dict[str, Any] | None) -> str | None:
    for key in ("rich_text", "title"):
        items = (prop or {}).get(key)
        if isinstance(items, list) and items and isinstance(items[0], dict):
            text = items[0].get("plain_text")
            if isinstance(text, str):
                return text
    return None


def _date_start(prop: dict[str, Any] | None) -> str | None:
    date = (prop or {}).get("date")
    if isinstance(date, dict) and isinstance(date.get("start"), str):
        return date["start"]
    return None


def parse_activity(page: dict[str, Any]) -> Activity:
    properties: dict[str, Any] = page.get("properties") or {}
    return Activity(
        id=page.get("id", ""),
        name=_select_name(properties.get(KIND)) or "",
        notes=_plain_text(properties.get(NOTE)) or "",
        start_time=_date_start(properties.get(STARTED_TIME)) or "",
        end_time=_date_start(properties.get(END_TIME)),
    )


def activity_kinds(database: dict[str, Any]) -> list[str]:
    """Sorted option names of the database's ``Kind`` select property."""
    kind = (database.get("properties") or {}).get(KIND) or {}
    options = (kind.get("select") or {}).get("options") or []
    return sorted(opt["name"] for opt in options if isinstance(opt, dict) and isinstance(opt.get("name"), str))


def current_activity_query() -> dict[str, Any]:
    return {
        "filter": {"property": END_TIME, "date": {"is_empty": True}},
        "sorts": [{"property": STARTED_TIME, "direction": "descending"}],
        "page_size": 1,
    }


def end_activity_properties(now: datetime) -> dict[str, Any]:
    return {END_TIME: {"date": {"start": now.isoformat()}}}


def new_activity_properties(name: str, notes: str | None, now: datetime) -> dict[str, Any]:
    return {
        "Name": {"title": []},
        KIND: {"select": {"name": name}},
        NOTE: {"rich_text": [{"text": {"content": notes}}] if notes else []},
        STARTED_TIME: {"date": {"start": now.isoformat()}},
    }

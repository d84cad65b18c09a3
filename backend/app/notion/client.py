"""Thin async wrapper over the Notion REST API for the activities database."""

import logging
from datetime import UTC, datetime
from typing import Any

import httpx

from app.config import NotionConfigError, Settings, validate_notion_settings
from app.notion.schemas import Activity
from app.notion.service import (
    activity_kinds,
    current_activity_query,
    end_activity_properties,
    new_activity_properties,
    parse_activity,
)

logger = logging.getLogger(__name__)


class NotionClientError(RuntimeError):
    """Base class for every Notion failure (config, transport, API)."""


class NotionAuthError(NotionClientError):
    """401/403 from Notion."""


class NotionAPIError(NotionClientError):
    """Any other error response or unexpected payload."""


class NotionClient:
    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.settings = settings
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.settings.notion_api_key}",
            "Notion-Version": self.settings.notion_api_version,
            "Content-Type": "application/json",
        }

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        if response.status_code == 401:
            raise NotionAuthError("Unauthorized. Check NOTION_API_KEY.")
        if response.status_code == 403:
            raise NotionAuthError("Forbidden. Check Notion integration permissions.")
        if response.status_code >= 400:
            raise NotionAPIError(f"Notion API error: {response.status_code} {response.text}")

    async def _request(self, method: str, path: str, json: dict[str, Any] | None = None) -> dict[str, Any]:
        try:
            validate_notion_settings(self.settings)
        except NotionConfigError as exc:
            raise NotionClientError(str(exc)) from exc

        base_url = self.settings.notion_api_base_url.rstrip("/")
        try:
            async with httpx.AsyncClient(
                base_url=base_url,
                timeout=self.settings.notion_timeout,
                transport=self._transport,
            ) as client:
                response = await client.request(method, path, headers=self._headers(), json=json)
        except httpx.RequestError as exc:
            raise NotionClientError(f"Failed to call Notion API: {exc}") from exc

        self._raise_for_status(response)
        data = response.json()
        if not isinstance(data, dict):
            raise NotionAPIError("Unexpected Notion API response format.")
        return data

    @property
    def _database_id(self) -> str:
        return self.settings.notion_activities_database_id

    async def get_activities(self) -> list[str]:
        database = await self._request("GET", f"/databases/{self._database_id}")
        return activity_kinds(database)

    async def get_current_activity(self) -> Activity | None:
        data = await self._request("POST", f"/databases/{self._database_id}/query", json=current_activity_query())
        results = data.get("results", [])
        if not isinstance(results, list):
            raise NotionAPIError("Unexpected Notion API response format: 'results' is not a list.")
        if not results:
            return None
        return parse_activity(results[0])

    async def update_activity(
        self,
        new_activity_name: str,
        current_activity_id: str | None = None,
        notes: str | None = None,
    ) -> Activity:
        """End the running activity (if any) and start a new one of kind *new_activity_name*."""
        now = datetime.now(UTC)
        if current_activity_id:
            await self._request(
                "PATCH",
                f"/pages/{current_activity_id}",
                json={"properties": end_activity_properties(now)},
            )
            logger.info("Ended activity %s", current_activity_id)

        page = await self._request(
            "POST",
            "/pages",
            json={
                "parent": {"database_id": self._database_id},
                "properties": new_activity_properties(new_activity_name, notes, now),
            },
        )
        return parse_activity(page)

from app.notion.client import NotionAPIError, NotionAuthError, NotionClient, NotionClientError
from app.notion.schemas import Activity

__all__ = [
    "Activity",
    "NotionClient",
    "NotionClientError",
    "NotionAuthError",
    "NotionAPIError",
]

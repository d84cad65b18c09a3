import logging

from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class NotionConfigError(RuntimeError):
    """Raised when a required Notion setting is missing."""

    def __init__(self, missing: list[str]) -> None:
        super().__init__(f"Missing required environment variables: {', '.join(missing)}")
        self.missing = missing


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # App
    app_name: str = "Notion Manager"
    debug: bool = False

    # CORS: comma-separated list of allowed origins
    cors_origins: str = "http://localhost:3000"

    # Database (push subscriptions)
    database_url: str = "sqlite+aiosqlite:///./data/notion_manager.db"

    # Notion
    notion_api_key: str = ""
    notion_activities_database_id: str = ""
    notion_transactions_database_id: str = ""
    notion_api_base_url: str = "https://api.notion.com/v1"
    notion_api_version: str = "2022-06-28"
    notion_timeout: float = 10.0

    # Log store / event stream
    log_max_entries: int = 1000
    sse_heartbeat_interval: float = 30.0
    sse_idle_timeout: float = 300.0
    sse_sweep_interval: float = 60.0
    sse_queue_size: int = 256
    sse_retry_delay_ms: int = 5000

    # Takeout
    export_log_cap: int = 1000

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


def validate_notion_settings(settings: Settings) -> None:
    """Raise NotionConfigError naming every missing required Notion variable."""
    required = {
        "NOTION_API_KEY": settings.notion_api_key,
        "NOTION_ACTIVITIES_DATABASE_ID": settings.notion_activities_database_id,
    }
    missing = [name for name, value in required.items() if not value]
    if missing:
        raise NotionConfigError(missing)


def warn_optional_settings(settings: Settings) -> list[str]:
    optional = {"NOTION_TRANSACTIONS_DATABASE_ID": settings.notion_transactions_database_id}
    missing = [name for name, value in optional.items() if not value]
    if missing:
        logger.warning("Missing optional environment variables: %s", ", ".join(missing))
    return missing


settings = Settings()

"""
Application Configuration

Reads every setting from environment variables once and exposes them as a
frozen ``Settings`` object that is passed explicitly into each component.

Notion credentials are optional at startup. Routes that need them call
``Settings.require_notion()`` which raises ``ConfigurationError``.
"""

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


class ConfigurationError(RuntimeError):
    """Raised when a required setting is missing."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Required environment variable '{name}' is not set.")
        self.name = name


def _get_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    """All runtime settings."""

    # Notion
    notion_api_key: Optional[str] = None
    notion_database_id: Optional[str] = None
    notion_api_base_url: str = "https://api.notion.com/v1"
    notion_api_version: str = "2022-06-28"
    notion_timeout_seconds: float = 10.0

    # Public URL prefix for cached images ("" keeps URLs host-relative)
    public_url: str = ""

    # Durable image store
    image_store_backend: str = "file"
    image_store_dir: str = "./image_store"
    s3_bucket: Optional[str] = None
    s3_endpoint_url: Optional[str] = None
    s3_access_key: Optional[str] = None
    s3_secret_key: Optional[str] = None
    s3_region: Optional[str] = None

    # Origin fetch
    image_fetch_timeout_seconds: float = 30.0
    image_fetch_retries: int = 1
    image_cache_wait_seconds: float = 20.0
    image_max_size_mb: int = 10

    # Image serving
    image_resize_enabled: bool = True
    image_memory_cache_entries: int = 256
    image_memory_cache_mb: int = 64

    # Metadata cache TTLs (seconds)
    collections_cache_ttl: int = 300
    collection_cache_ttl: int = 600

    log_level: str = "INFO"

    def require_notion(self) -> None:
        """Raise ConfigurationError unless the Notion credentials are set."""
        if not self.notion_api_key:
            raise ConfigurationError("NOTION_API_KEY")
        if not self.notion_database_id:
            raise ConfigurationError("NOTION_DATABASE_ID")

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            notion_api_key=os.getenv("NOTION_API_KEY") or None,
            notion_database_id=os.getenv("NOTION_DATABASE_ID") or None,
            notion_api_base_url=os.getenv("NOTION_API_BASE_URL", "https://api.notion.com/v1"),
            notion_api_version=os.getenv("NOTION_API_VERSION", "2022-06-28"),
            notion_timeout_seconds=float(os.getenv("NOTION_TIMEOUT_SECONDS", "10")),
            public_url=os.getenv("PUBLIC_URL", "").rstrip("/"),
            image_store_backend=os.getenv("IMAGE_STORE_BACKEND", "file").lower(),
            image_store_dir=os.getenv("IMAGE_STORE_DIR", "./image_store"),
            s3_bucket=os.getenv("S3_BUCKET") or None,
            s3_endpoint_url=os.getenv("S3_ENDPOINT_URL") or None,
            s3_access_key=os.getenv("S3_ACCESS_KEY") or None,
            s3_secret_key=os.getenv("S3_SECRET_KEY") or None,
            s3_region=os.getenv("S3_REGION") or None,
            image_fetch_timeout_seconds=float(os.getenv("IMAGE_FETCH_TIMEOUT_SECONDS", "30")),
            image_fetch_retries=int(os.getenv("IMAGE_FETCH_RETRIES", "1")),
            image_cache_wait_seconds=float(os.getenv("IMAGE_CACHE_WAIT_SECONDS", "20")),
            image_max_size_mb=int(os.getenv("IMAGE_MAX_SIZE_MB", "10")),
            image_resize_enabled=_get_bool("IMAGE_RESIZE_ENABLED", True),
            image_memory_cache_entries=int(os.getenv("IMAGE_MEMORY_CACHE_ENTRIES", "256")),
            image_memory_cache_mb=int(os.getenv("IMAGE_MEMORY_CACHE_MB", "64")),
            collections_cache_ttl=int(os.getenv("COLLECTIONS_CACHE_TTL", "300")),
            collection_cache_ttl=int(os.getenv("COLLECTION_CACHE_TTL", "600")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )


@lru_cache()
def get_settings() -> Settings:
    """Settings built from the process environment (cached)."""
    return Settings.from_env()

"""
Notion Source Module

Reads the gallery database from the Notion API and exposes pages as
records with normalised property access.
"""

from .client import (
    NotionClient,
    NotionClientError,
    NotionAuthError,
    NotionNotFoundError,
    NotionAPIError,
)
from .records import NotionRecord, BlockImage, extract_block_images, normalize_properties

__all__ = [
    "NotionClient",
    "NotionClientError",
    "NotionAuthError",
    "NotionNotFoundError",
    "NotionAPIError",
    "NotionRecord",
    "BlockImage",
    "extract_block_images",
    "normalize_properties",
]

"""
Notion page -> record mapping.

Property names in a Notion database are free-form ("Images", "images",
"Image" ...). They are normalised once, when a page is ingested, into a
lowercase mapping with aliases resolved, so the rest of the code reads
fields by one canonical name.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

# canonical name -> other accepted names (already lowercase)
FIELD_ALIASES: Dict[str, tuple] = {
    "name": ("title",),
    "images": ("image",),
}


def normalize_properties(properties: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """Lowercase property names and resolve aliases to canonical names."""
    normalized: Dict[str, Dict[str, Any]] = {}
    for name, value in (properties or {}).items():
        if isinstance(value, dict):
            normalized.setdefault(name.strip().lower(), value)

    for canonical, aliases in FIELD_ALIASES.items():
        if canonical in normalized:
            continue
        for alias in aliases:
            if alias in normalized:
                normalized[canonical] = normalized[alias]
                break
    return normalized


def _plain_text(items: Any) -> str:
    if not isinstance(items, list):
        return ""
    parts = []
    for item in items:
        if isinstance(item, dict) and isinstance(item.get("plain_text"), str):
            parts.append(item["plain_text"])
    return "".join(parts)


def _file_url(item: Dict[str, Any]) -> str:
    # "file" = Notion-hosted signed URL, "external" = static URL
    kind = item.get("type")
    if kind in ("file", "external"):
        payload = item.get(kind)
        if isinstance(payload, dict) and isinstance(payload.get("url"), str):
            return payload["url"]
    return ""


@dataclass
class NotionRecord:
    """A database page with normalised property access."""
    id: str
    properties: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    @classmethod
    def from_page(cls, page: Dict[str, Any]) -> "NotionRecord":
        return cls(
            id=str(page.get("id", "")),
            properties=normalize_properties(page.get("properties") or {}),
        )

    def text(self, name: str) -> str:
        """Plain text of a title / rich_text / url property, "" if absent."""
        prop = self.properties.get(name.lower())
        if not prop:
            return ""
        if isinstance(prop.get("url"), str):
            return prop["url"]
        for key in ("title", "rich_text"):
            if key in prop:
                return _plain_text(prop[key])
        return ""

    def number(self, name: str) -> Optional[float]:
        prop = self.properties.get(name.lower())
        if not prop:
            return None
        value = prop.get("number")
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        return value

    def file_urls(self, name: str = "images") -> List[str]:
        """URLs of a files property, in property order, empty ones skipped."""
        prop = self.properties.get(name.lower())
        if not prop or not isinstance(prop.get("files"), list):
            return []
        urls = [_file_url(item) for item in prop["files"] if isinstance(item, dict)]
        urls = [url for url in urls if url]
        logger.debug(f"[Notion] {self.id}: {len(urls)} file URLs in '{name}'")
        return urls


@dataclass
class BlockImage:
    url: str
    block_id: str = ""
    caption: str = ""


def extract_block_images(blocks: List[Dict[str, Any]]) -> List[BlockImage]:
    """Image blocks (Notion-hosted or external) from a page body."""
    images: List[BlockImage] = []
    for block in blocks or []:
        if not isinstance(block, dict) or block.get("type") != "image":
            continue
        image = block.get("image") or {}
        url = _file_url(image) if "type" in image else (
            (image.get("file") or {}).get("url") or (image.get("external") or {}).get("url") or ""
        )
        if url:
            images.append(BlockImage(
                url=url,
                block_id=str(block.get("id", "")),
                caption=_plain_text(image.get("caption")),
            ))
    return images

"""
Gallery Service

Builds the public collection projections from Notion records. On a cache
miss every image reference of a record is copied into the durable store
concurrently and the projection embeds the stable URLs.

Projections are cached as serialized JSON strings, so a hit returns exactly
the bytes the miss produced.
"""

import asyncio
import dataclasses
import json
import logging
import re
from datetime import date
from typing import List, Optional, Tuple

from cache import COLLECTION_POLICY, COLLECTIONS_POLICY, CacheResult, ResponseCacheGateway
from config import Settings
from image_cache import ImageCacher, ImageReference, derive_stable_id
from notion_source import (
    NotionClient,
    NotionNotFoundError,
    NotionRecord,
    extract_block_images,
)

from .schemas import CollectionDetail, CollectionImage, CollectionSummary

logger = logging.getLogger(__name__)

COLLECTIONS_CACHE_KEY = "collections:all:v2"
COLLECTION_CACHE_KEY = "collection:{id}:v2"

# Images cached per record in the listing, and how many are previewed
LISTING_IMAGE_LIMIT = 4
PREVIEW_IMAGE_LIMIT = 3

_COLLECTION_ID_PATTERN = re.compile(r"^[A-Za-z0-9-]{1,64}$")


def _year(record: NotionRecord) -> int:
    value = record.number("year")
    if not value:
        return date.today().year
    return int(value)


class GalleryService:
    """Collection listing and detail, read through the metadata cache."""

    def __init__(
        self,
        notion: NotionClient,
        cacher: ImageCacher,
        gateway: ResponseCacheGateway,
        settings: Settings,
    ):
        self.notion = notion
        self.cacher = cacher
        self.gateway = gateway
        self.wait_seconds = settings.image_cache_wait_seconds
        self.collections_policy = dataclasses.replace(
            COLLECTIONS_POLICY, ttl_seconds=settings.collections_cache_ttl
        )
        self.collection_policy = dataclasses.replace(
            COLLECTION_POLICY, ttl_seconds=settings.collection_cache_ttl
        )

    # ============================================
    # Listing
    # ============================================

    async def list_collections(self) -> CacheResult:
        """``CacheResult`` whose value is the JSON array of summaries."""
        return await self.gateway.read_through(
            COLLECTIONS_CACHE_KEY,
            self.collections_policy,
            self._build_collections,
        )

    async def _build_collections(self) -> str:
        logger.info("[Gallery] Building collections from Notion")
        pages = await self.notion.query_database()
        records = [NotionRecord.from_page(page) for page in pages]
        summaries = await asyncio.gather(*(self._summarize(r) for r in records))
        return json.dumps(
            [s.model_dump(mode="json", by_alias=True) for s in summaries],
            ensure_ascii=False,
        )

    async def _summarize(self, record: NotionRecord) -> CollectionSummary:
        urls = record.file_urls("images")
        logger.info(f"[Gallery] [{record.id}] Found {len(urls)} images")

        references = [
            ImageReference(url, derive_stable_id(url, f"{record.id}-{i}"))
            for i, url in enumerate(urls[:LISTING_IMAGE_LIMIT])
        ]
        cached = [u for u in await self.cacher.cache_many(references, self.wait_seconds) if u]

        return CollectionSummary(
            id=record.id,
            title=record.text("name") or "Untitled",
            subtitle=record.text("subtitle"),
            location=record.text("location"),
            year=_year(record),
            description=record.text("description"),
            count=len(urls),
            cover=cached[0] if cached else "",
            preview_images=cached[:PREVIEW_IMAGE_LIMIT],
        )

    # ============================================
    # Detail
    # ============================================

    async def get_collection(self, collection_id: str) -> CacheResult:
        """
        ``CacheResult`` whose value is the JSON object of one collection.

        Raises:
            NotionNotFoundError: malformed id or page unknown to Notion
        """
        if not _COLLECTION_ID_PATTERN.match(collection_id or ""):
            raise NotionNotFoundError(f"Invalid collection id: {collection_id!r}")

        return await self.gateway.read_through(
            COLLECTION_CACHE_KEY.format(id=collection_id),
            self.collection_policy,
            lambda: self._build_collection(collection_id),
        )

    async def _build_collection(self, collection_id: str) -> str:
        logger.info(f"[Gallery] Building collection {collection_id} from Notion")
        page, blocks = await asyncio.gather(
            self.notion.get_page(collection_id),
            self.notion.get_block_children(collection_id),
        )
        record = NotionRecord.from_page(page)
        record_id = record.id or collection_id

        sources = self._detail_sources(record, record_id, blocks)
        references = [ImageReference(url, stable_id) for url, stable_id, _ in sources]
        urls = await self.cacher.cache_many(references, self.wait_seconds)

        images = [
            CollectionImage(url=url, title=f"Image {i + 1}", description=caption)
            for i, (url, (_, _, caption)) in enumerate(zip(urls, sources))
        ]
        detail = CollectionDetail(
            id=collection_id,
            title=record.text("name") or "Untitled",
            subtitle=record.text("subtitle"),
            location=record.text("location"),
            year=_year(record),
            description=record.text("description"),
            count=len(images),
            cover=images[0].url if images else "",
            images=images,
        )
        return detail.model_dump_json()

    @staticmethod
    def _detail_sources(
        record: NotionRecord,
        record_id: str,
        blocks: Optional[List[dict]],
    ) -> List[Tuple[str, str, str]]:
        """(source_url, stable_id, caption) for every image of a collection."""
        urls = record.file_urls("images")
        if urls:
            return [
                (url, derive_stable_id(url, f"{record_id}-{i}"), "")
                for i, url in enumerate(urls)
            ]

        # No files property: fall back to image blocks in the page body
        return [
            (img.url, derive_stable_id(img.url, img.block_id or None), img.caption)
            for img in extract_block_images(blocks or [])
        ]

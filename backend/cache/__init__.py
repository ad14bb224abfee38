"""
Response Cache Module
响应缓存模块

In-memory key/value storage with TTL and a read-through gateway used for
both collection metadata and served image bytes.
"""

from .memory_store import MemoryStore, CacheEntry
from .gateway import (
    ResponseCacheGateway,
    CacheResult,
    CachePolicy,
    COLLECTIONS_POLICY,
    COLLECTION_POLICY,
    IMAGE_POLICY,
)

__all__ = [
    "MemoryStore",
    "CacheEntry",
    "ResponseCacheGateway",
    "CacheResult",
    "CachePolicy",
    "COLLECTIONS_POLICY",
    "COLLECTION_POLICY",
    "IMAGE_POLICY",
]

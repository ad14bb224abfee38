"""
Response Cache Gateway
响应缓存网关

Read-through / write-through wrapper over a key/value store.

- Hit: the stored value is returned as-is with ``hit=True``
- Miss: ``compute()`` runs, its result is stored with the policy TTL and
  returned with ``hit=False``
- Failures inside ``compute()`` propagate and nothing is stored
- Entries are never invalidated here, staleness is bounded by TTL only
"""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Protocol

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    """Anything with ``get(key)`` and ``put(key, value, ttl)``."""

    def get(self, key: str) -> Optional[Any]: ...

    def put(self, key: str, value: Any, ttl: Optional[float] = None) -> None: ...


@dataclass(frozen=True)
class CachePolicy:
    """Named TTL policy. ``ttl_seconds=None`` means immutable."""
    name: str
    ttl_seconds: Optional[int]

    @property
    def cache_control(self) -> str:
        """Cache-Control header value for responses served under this policy."""
        if self.ttl_seconds is None:
            return "public, max-age=31536000, immutable"
        return f"public, max-age={self.ttl_seconds}"


# Metadata listings: short TTL. Image bytes: never change once written.
COLLECTIONS_POLICY = CachePolicy("collections", 300)
COLLECTION_POLICY = CachePolicy("collection", 600)
IMAGE_POLICY = CachePolicy("image", None)


@dataclass
class CacheResult:
    """Value returned by the gateway plus how it was obtained."""
    value: Any
    hit: bool

    @property
    def status(self) -> str:
        """Value for the ``X-Cache`` response header."""
        return "HIT" if self.hit else "MISS"


class ResponseCacheGateway:
    """
    Read-through cache in front of an expensive computation.

    The store is injected so each gateway can sit on its own backend
    (metadata JSON vs. image bytes).
    """

    def __init__(self, store: KeyValueStore, name: str = "cache"):
        self.store = store
        self.name = name

    async def read_through(
        self,
        key: str,
        policy: CachePolicy,
        compute: Callable[[], Awaitable[Any]],
    ) -> CacheResult:
        """
        Return the cached value for ``key`` or compute and store it.

        Args:
            key: Cache key (versioned, e.g. ``collections:all:v2``)
            policy: TTL policy applied on write
            compute: Coroutine factory producing the value on a miss

        Returns:
            CacheResult with the value and hit flag
        """
        cached = self.store.get(key)
        if cached is not None:
            logger.debug(f"[{self.name}] Cache hit: {key}")
            return CacheResult(value=cached, hit=True)

        logger.info(f"[{self.name}] Cache miss: {key}")
        value = await compute()
        self.store.put(key, value, ttl=policy.ttl_seconds)
        return CacheResult(value=value, hit=False)

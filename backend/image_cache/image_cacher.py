"""
Image Cacher

Copies images from transient origin URLs (Notion signed storage links) into
the durable object store, at most once per stable id, and hands back a
long-lived public URL.

Failure policy: anything that goes wrong while fetching or storing is logged
and the original URL is returned instead. A broken image link is acceptable,
a broken collection response is not. Bodies larger than ``max_bytes`` are
abandoned mid-stream and count as a failure.

No cross-request locking: two requests racing on a new stable id may both
download it. Store writes are idempotent, so the duplicate is only wasted work.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import AsyncIterator, List, Optional, Sequence, Set

import httpx

from .object_store import DEFAULT_CONTENT_TYPE, ObjectStore, ObjectStoreError
from .stable_key import image_key

logger = logging.getLogger(__name__)

USER_AGENT = "NotionGalleryProxy/1.0 (image cache)"

# Content types some origins send for image bodies
_GENERIC_CONTENT_TYPES = {"", "application/octet-stream", "binary/octet-stream"}


class ImageFetchError(RuntimeError):
    """Origin returned a non-success status or could not be reached."""


class ImageTooLargeError(ImageFetchError):
    """Origin body exceeds the configured size limit."""


@dataclass(frozen=True)
class ImageReference:
    """One image attached to a record: where to fetch it, what to call it."""
    source_url: str
    stable_id: str


def _short(url: str) -> str:
    # Signed query strings stay out of the logs
    return url.split("?", 1)[0][:80]


class ImageCacher:
    """
    Fetch-and-persist for record images.

    Usage:
        cacher = ImageCacher(store, public_url="https://cdn.example.com")
        url = await cacher.ensure_cached(notion_url, stable_id)
        urls = await cacher.cache_many(references, wait_seconds=20)
    """

    def __init__(
        self,
        store: ObjectStore,
        http_client: Optional[httpx.AsyncClient] = None,
        public_url: str = "",
        retries: int = 1,
        timeout: float = 30.0,
        max_bytes: Optional[int] = None,
    ):
        self.store = store
        self.public_url = public_url.rstrip("/")
        self.retries = max(0, retries)
        self.max_bytes = max_bytes

        self._owns_client = http_client is None
        self.http_client = http_client if http_client is not None else httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            headers={
                "User-Agent": USER_AGENT,
                "Accept": "image/*,*/*;q=0.8",
            },
        )

        # Caching tasks that outlived the request that started them
        self._background: Set[asyncio.Task] = set()

    async def close(self) -> None:
        """Close the HTTP client if this cacher created it."""
        if self._owns_client:
            await self.http_client.aclose()

    def public_url_for(self, stable_id: str) -> str:
        return f"{self.public_url}/{image_key(stable_id)}"

    async def ensure_cached(self, source_url: str, stable_id: str) -> str:
        """
        Make sure the image is in the durable store.

        Args:
            source_url: Current (possibly signed) origin URL
            stable_id: Identifier from ``derive_stable_id``

        Returns:
            Public URL of the stored copy, or ``source_url`` if caching failed
        """
        if not source_url:
            logger.warning("[ImageCache] Empty source URL, nothing to cache")
            return source_url

        key = image_key(stable_id)
        public_url = self.public_url_for(stable_id)

        try:
            existing = await self.store.head(key)
        except ObjectStoreError as e:
            logger.warning(f"[ImageCache] head failed for {key}, fetching anyway: {e}")
            existing = None

        if existing is not None:
            logger.debug(f"[ImageCache] Already stored: {key}")
            return public_url

        try:
            await self._fetch_and_store(source_url, key)
        except Exception as e:  # noqa: BLE001
            logger.error(f"[ImageCache] Failed to cache {key} from {_short(source_url)}: {e}")
            return source_url

        logger.info(f"[ImageCache] Cached: {key}")
        return public_url

    async def _fetch_and_store(self, source_url: str, key: str) -> None:
        """Stream the origin body into the store, retrying transient network errors."""
        attempts = self.retries + 1

        for attempt in range(1, attempts + 1):
            try:
                logger.info(f"[ImageCache] Downloading {_short(source_url)} -> {key}")
                async with self.http_client.stream(
                    "GET", source_url, headers={"User-Agent": USER_AGENT}
                ) as response:
                    if not response.is_success:
                        raise ImageFetchError(
                            f"Failed to fetch image: {response.status_code}"
                        )
                    content_type = (
                        response.headers.get("content-type", "").split(";")[0].strip().lower()
                    )
                    if content_type in _GENERIC_CONTENT_TYPES:
                        content_type = DEFAULT_CONTENT_TYPE
                    self._check_declared_size(response)
                    await self.store.put(key, self._limited(response.aiter_bytes()), content_type)
                return
            except httpx.TransportError as e:
                if attempt >= attempts:
                    raise ImageFetchError(f"Network error after {attempt} attempt(s): {e}") from e
                logger.warning(
                    f"[ImageCache] Transient error on attempt {attempt}/{attempts} "
                    f"for {key}: {e}, retrying"
                )

    def _check_declared_size(self, response: httpx.Response) -> None:
        if self.max_bytes is None:
            return
        declared = response.headers.get("content-length", "")
        if declared.isdigit() and int(declared) > self.max_bytes:
            raise ImageTooLargeError(
                f"Image too large ({declared} bytes, max {self.max_bytes})"
            )

    async def _limited(self, chunks: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
        """Pass chunks through, aborting once the running total passes max_bytes."""
        received = 0
        async for chunk in chunks:
            received += len(chunk)
            if self.max_bytes is not None and received > self.max_bytes:
                raise ImageTooLargeError(
                    f"Image too large (over {self.max_bytes} bytes)"
                )
            yield chunk

    async def cache_many(
        self,
        references: Sequence[ImageReference],
        wait_seconds: Optional[float] = None,
    ) -> List[str]:
        """
        Cache several images concurrently.

        Args:
            references: Images to cache, in output order
            wait_seconds: Upper bound on waiting; None waits for all

        Returns:
            One URL per reference. Images still in flight at the deadline get
            their original URL and finish in the background.
        """
        if not references:
            return []

        tasks = [
            asyncio.create_task(self.ensure_cached(ref.source_url, ref.stable_id))
            for ref in references
        ]
        _, pending = await asyncio.wait(tasks, timeout=wait_seconds)

        results: List[str] = []
        for ref, task in zip(references, tasks):
            if task in pending:
                self._track_background(task)
                results.append(ref.source_url)
            elif task.cancelled() or task.exception() is not None:
                results.append(ref.source_url)
            else:
                results.append(task.result())

        if pending:
            logger.info(
                f"[ImageCache] {len(pending)}/{len(tasks)} images still caching "
                f"after {wait_seconds}s, serving origin URLs for now"
            )
        return results

    def _track_background(self, task: asyncio.Task) -> None:
        self._background.add(task)
        task.add_done_callback(self._on_background_done)

    def _on_background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"[ImageCache] Background caching failed: {error}")

    @property
    def background_count(self) -> int:
        return len(self._background)

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for background caching tasks, e.g. on shutdown."""
        if not self._background:
            return
        await asyncio.wait(set(self._background), timeout=timeout)

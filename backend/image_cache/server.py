"""
Image serving path: durable store -> immutable in-process byte cache ->
optional resize.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from cache import IMAGE_POLICY, ResponseCacheGateway

from .object_store import ObjectNotFound, ObjectStore
from .resizer import ImageResizer, ResizeParams
from .stable_key import image_key, is_valid_stable_id

logger = logging.getLogger(__name__)


@dataclass
class ServedImage:
    data: bytes
    content_type: str
    cache_status: str


class ImageServer:
    """Reads cached images by stable id."""

    def __init__(
        self,
        store: ObjectStore,
        gateway: ResponseCacheGateway,
        resizer: Optional[ImageResizer] = None,
    ):
        self.store = store
        self.gateway = gateway
        self.resizer = resizer

    async def _load_original(self, stable_id: str) -> Tuple[bytes, str]:
        obj = await self.store.get(image_key(stable_id))
        return obj.data, obj.content_type

    async def serve(
        self,
        stable_id: str,
        params: Optional[ResizeParams] = None,
    ) -> ServedImage:
        """
        Return image bytes for ``stable_id``.

        Raises:
            ObjectNotFound: unknown or malformed id
            ObjectStoreError: store unreachable
        """
        if not is_valid_stable_id(stable_id):
            raise ObjectNotFound(stable_id)

        original = await self.gateway.read_through(
            f"image:{stable_id}",
            IMAGE_POLICY,
            lambda: self._load_original(stable_id),
        )
        data, content_type = original.value

        if params is None or not params.requested or self.resizer is None:
            return ServedImage(data, content_type, original.status)

        async def compute_variant() -> Tuple[bytes, str]:
            resized = await self.resizer.resize(data, params)
            if resized is None:
                return data, content_type
            return resized.data, resized.content_type

        variant = await self.gateway.read_through(
            f"image:{stable_id}:{params.cache_suffix()}",
            IMAGE_POLICY,
            compute_variant,
        )
        variant_data, variant_type = variant.value
        return ServedImage(variant_data, variant_type, variant.status)

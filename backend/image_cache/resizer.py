"""
Image Resizer

Optional width/quality passthrough for served images. Never required for a
response to succeed: if resizing is disabled or the bytes cannot be decoded
(SVG, truncated data, unknown format) the caller serves the original.
"""

import asyncio
import logging
from dataclasses import dataclass
from io import BytesIO
from typing import Optional, Union

from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

MAX_WIDTH = 4000
DEFAULT_QUALITY = 85


@dataclass(frozen=True)
class ResizeParams:
    """Requested output size/quality. Either may be None."""
    width: Optional[int] = None
    quality: Optional[int] = None

    @property
    def requested(self) -> bool:
        return self.width is not None or self.quality is not None

    def cache_suffix(self) -> str:
        return f"w{self.width or 0}:q{self.quality or 0}"


@dataclass
class ResizedImage:
    data: bytes
    content_type: str
    width: int
    height: int


class ImageResizer:
    """
    Pillow-backed resize.

    - Keeps aspect ratio, never upscales
    - JPEG output for opaque images, PNG when there is an alpha channel
    """

    def __init__(self, enabled: bool = True):
        self.enabled = enabled

    def _resize_sync(self, data: bytes, params: ResizeParams) -> Optional[ResizedImage]:
        if data[:500].lstrip().startswith((b"<svg", b"<?xml")):
            logger.debug("[ImageResizer] SVG detected, skipping resize")
            return None

        try:
            img = Image.open(BytesIO(data))
            img.load()
        except (UnidentifiedImageError, OSError) as e:
            logger.warning(f"[ImageResizer] Cannot decode image, serving original: {e}")
            return None

        original_width, original_height = img.size
        if params.width and params.width < original_width:
            ratio = params.width / original_width
            new_size = (params.width, max(1, int(original_height * ratio)))
            img = img.resize(new_size, Image.Resampling.LANCZOS)
            logger.debug(
                f"[ImageResizer] Resized {original_width}x{original_height} -> "
                f"{new_size[0]}x{new_size[1]}"
            )

        has_alpha = img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info)
        output = BytesIO()
        if has_alpha:
            img.save(output, format="PNG", optimize=True)
            content_type = "image/png"
        else:
            if img.mode != "RGB":
                img = img.convert("RGB")
            img.save(output, format="JPEG", quality=params.quality or DEFAULT_QUALITY)
            content_type = "image/jpeg"

        width, height = img.size
        return ResizedImage(
            data=output.getvalue(),
            content_type=content_type,
            width=width,
            height=height,
        )

    async def resize(self, data: bytes, params: ResizeParams) -> Optional[ResizedImage]:
        """
        Resize ``data`` off the event loop.

        Returns:
            ResizedImage, or None when the original bytes should be served
        """
        if not self.enabled or not params.requested:
            return None
        return await asyncio.to_thread(self._resize_sync, data, params)


def _to_int(value: Union[int, str, None]) -> Optional[int]:
    if value is None or isinstance(value, int):
        return value
    try:
        return int(value.strip())
    except ValueError:
        return None


def parse_resize_params(
    width: Union[int, str, None],
    quality: Union[int, str, None],
) -> ResizeParams:
    """Clamp query parameters into a usable range. Invalid values are ignored."""
    width = _to_int(width)
    quality = _to_int(quality)
    if width is not None and width <= 0:
        width = None
    if width is not None:
        width = min(width, MAX_WIDTH)
    if quality is not None and not 1 <= quality <= 100:
        quality = None
    return ResizeParams(width=width, quality=quality)

"""
Image Cache Module

Turns transient Notion file URLs into stable, long-lived image URLs.

Features:
- Stable ids that survive signature rotation
- At-most-once download into a durable store (file or S3/R2)
- Fallback to the original URL when caching fails
- Direct serving with optional resize
"""

from .stable_key import derive_stable_id, image_key, is_valid_stable_id
from .object_store import (
    ObjectStore,
    ObjectInfo,
    StoredObject,
    ObjectStoreError,
    ObjectNotFound,
    FileObjectStore,
    S3ObjectStore,
    build_object_store,
)
from .image_cacher import ImageCacher, ImageReference, ImageFetchError, ImageTooLargeError
from .resizer import ImageResizer, ResizeParams
from .server import ImageServer
from .routes_fastapi import router

__all__ = [
    "derive_stable_id",
    "image_key",
    "is_valid_stable_id",
    "ObjectStore",
    "ObjectInfo",
    "StoredObject",
    "ObjectStoreError",
    "ObjectNotFound",
    "FileObjectStore",
    "S3ObjectStore",
    "build_object_store",
    "ImageCacher",
    "ImageReference",
    "ImageFetchError",
    "ImageTooLargeError",
    "ImageResizer",
    "ResizeParams",
    "ImageServer",
    "router",
]

"""
Gallery Module

Public collection API built on top of the Notion source and the image cache.
"""

from .schemas import CollectionSummary, CollectionDetail, CollectionImage
from .service import GalleryService, COLLECTIONS_CACHE_KEY, COLLECTION_CACHE_KEY
from .routes import router

__all__ = [
    "CollectionSummary",
    "CollectionDetail",
    "CollectionImage",
    "GalleryService",
    "COLLECTIONS_CACHE_KEY",
    "COLLECTION_CACHE_KEY",
    "router",
]

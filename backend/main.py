"""
Notion Gallery Proxy - FastAPI entry point.

Routes:
- GET /api/collections
- GET /api/collection/{id}
- GET /images/{stable_id}.{ext}
- GET /health
- OPTIONS *  (CORS preflight)

Run with uvicorn's factory mode so nothing is built at import time:

    uvicorn main:create_app --factory

Every dependency (HTTP clients, stores, caches) is built here and attached to
``app.state``; routers read them from there. Tests pass their own doubles to
``create_app``.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from cache import MemoryStore, ResponseCacheGateway
from config import ConfigurationError, Settings, get_settings
from gallery import GalleryService, router as gallery_router
from image_cache import (
    ImageCacher,
    ImageResizer,
    ImageServer,
    ObjectStore,
    build_object_store,
    router as image_router,
)
from notion_source import NotionClient, NotionClientError, NotionNotFoundError

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}

SHUTDOWN_DRAIN_SECONDS = 10.0

MB = 1024 * 1024


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": message},
        headers={"Access-Control-Allow-Origin": "*"},
    )


def create_app(
    settings: Optional[Settings] = None,
    *,
    notion_client: Optional[NotionClient] = None,
    object_store: Optional[ObjectStore] = None,
    metadata_store: Optional[MemoryStore] = None,
    image_bytes_store: Optional[MemoryStore] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    """
    Application factory.

    Args:
        settings: Defaults to environment settings
        notion_client: Upstream metadata source
        object_store: Durable image store
        metadata_store: Key/value store for collection JSON
        image_bytes_store: Key/value store for served image bytes
        http_client: Client used for origin image downloads
    """
    if settings is None:
        settings = get_settings()
        _configure_logging(settings.log_level)

    if notion_client is None:
        notion_client = NotionClient(settings)
    if object_store is None:
        object_store = build_object_store(settings)
    if metadata_store is None:
        metadata_store = MemoryStore(max_entries=1000)
    if image_bytes_store is None:
        image_bytes_store = MemoryStore(
            max_entries=settings.image_memory_cache_entries,
            max_bytes=settings.image_memory_cache_mb * MB,
            sizer=_image_value_size,
        )

    cacher = ImageCacher(
        object_store,
        http_client=http_client,
        public_url=settings.public_url,
        retries=settings.image_fetch_retries,
        timeout=settings.image_fetch_timeout_seconds,
        max_bytes=settings.image_max_size_mb * MB,
    )
    gallery_service = GalleryService(
        notion_client,
        cacher,
        ResponseCacheGateway(metadata_store, name="MetadataCache"),
        settings,
    )
    image_server = ImageServer(
        object_store,
        ResponseCacheGateway(image_bytes_store, name="ImageBytesCache"),
        ImageResizer(enabled=settings.image_resize_enabled),
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("[App] Notion Gallery Proxy starting")
        yield
        await cacher.drain(timeout=SHUTDOWN_DRAIN_SECONDS)
        await cacher.close()
        await notion_client.close()
        logger.info("[App] Shutdown complete")

    app = FastAPI(title="Notion Gallery Proxy", lifespan=lifespan)

    app.state.settings = settings
    app.state.notion_client = notion_client
    app.state.object_store = object_store
    app.state.metadata_store = metadata_store
    app.state.image_bytes_store = image_bytes_store
    app.state.image_cacher = cacher
    app.state.gallery_service = gallery_service
    app.state.image_server = image_server

    # ============================================
    # CORS
    # ============================================

    @app.middleware("http")
    async def cors_middleware(request: Request, call_next):
        if request.method == "OPTIONS":
            return Response(status_code=204, headers=CORS_HEADERS)
        response = await call_next(request)
        response.headers.setdefault("Access-Control-Allow-Origin", "*")
        return response

    # ============================================
    # Error handlers
    # ============================================

    @app.exception_handler(NotionNotFoundError)
    async def notion_not_found_handler(request: Request, exc: NotionNotFoundError):
        return _error(404, str(exc))

    @app.exception_handler(NotionClientError)
    async def notion_error_handler(request: Request, exc: NotionClientError):
        logger.error(f"[App] Notion error on {request.url.path}: {exc}")
        return _error(500, str(exc))

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(request: Request, exc: ConfigurationError):
        logger.error(f"[App] Configuration error: {exc}")
        return _error(500, str(exc))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        details = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
            for err in exc.errors()
        )
        return _error(422, f"Invalid request: {details}")

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        message = "Not Found" if exc.status_code == 404 else str(exc.detail)
        return _error(exc.status_code, message)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception(f"[App] Unhandled error on {request.url.path}")
        return _error(500, str(exc) or exc.__class__.__name__)

    # ============================================
    # Routes
    # ============================================

    app.include_router(gallery_router)
    app.include_router(image_router)

    @app.get("/health", tags=["health"])
    async def health_check() -> dict:
        return {
            "status": "healthy",
            "service": "notion-gallery-proxy",
            "metadata_cache": metadata_store.stats(),
            "image_cache": image_bytes_store.stats(),
            "background_image_tasks": cacher.background_count,
        }

    return app


def _image_value_size(value) -> int:
    # Image byte cache values are (data, content_type) pairs
    data, _ = value
    return len(data)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

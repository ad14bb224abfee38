"""
Gallery API Routes

- GET /api/collections          - All collections (cached, short TTL)
- GET /api/collection/{id}      - One collection with every image
"""

from fastapi import APIRouter, Request
from fastapi.responses import Response

from cache import CacheResult

router = APIRouter(prefix="/api", tags=["gallery"])


def _json_response(result: CacheResult, ttl_seconds: int) -> Response:
    headers = {"X-Cache": result.status}
    if not result.hit:
        headers["Cache-Control"] = f"public, max-age={ttl_seconds}"
    return Response(content=result.value, media_type="application/json", headers=headers)


@router.get("/collections")
async def list_collections(request: Request):
    """
    List every collection with cover and preview images.

    Notion errors propagate to the application error handlers (500).
    """
    service = request.app.state.gallery_service
    result = await service.list_collections()
    return _json_response(result, service.collections_policy.ttl_seconds)


@router.get("/collection/{collection_id}")
async def get_collection(collection_id: str, request: Request):
    """
    Get one collection with all of its images.

    Unknown ids are 404, other Notion errors are 500.
    """
    service = request.app.state.gallery_service
    result = await service.get_collection(collection_id)
    return _json_response(result, service.collection_policy.ttl_seconds)

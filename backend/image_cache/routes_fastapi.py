"""
Image API Routes

Serves images copied into the durable store:
- GET /images/{stable_id}.{ext}
- Optional ?w= / ?width= and ?q= / ?quality= resize parameters
"""

import logging
from typing import Optional

from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse, Response

from cache import IMAGE_POLICY

from .object_store import ObjectNotFound, ObjectStoreError
from .resizer import parse_resize_params

logger = logging.getLogger(__name__)

# ============================================
# Router
# ============================================

router = APIRouter(tags=["Images"])


# ============================================
# Endpoints
# ============================================

@router.get("/images/{filename}")
async def serve_image(
    filename: str,
    request: Request,
    w: Optional[str] = Query(None, description="Target width in pixels"),
    width: Optional[str] = Query(None, description="Alias of w"),
    q: Optional[str] = Query(None, description="JPEG quality (1-100)"),
    quality: Optional[str] = Query(None, description="Alias of q"),
):
    """
    Serve a cached image.

    Example:
        GET /images/1f2e3d4c-aaaa-bbbb-cccc-1234567890ab.jpg?w=640
    """
    stable_id, dot, _ = filename.rpartition(".")
    if not dot:
        stable_id = filename

    params = parse_resize_params(w if w is not None else width, q if q is not None else quality)

    try:
        image = await request.app.state.image_server.serve(stable_id, params)
    except ObjectNotFound:
        return JSONResponse(status_code=404, content={"error": "Image not found"})
    except ObjectStoreError as e:
        logger.error(f"[ImageRoute] Store error for {stable_id}: {e}")
        return JSONResponse(status_code=500, content={"error": "Error fetching image"})

    return Response(
        content=image.data,
        media_type=image.content_type,
        headers={
            "Cache-Control": IMAGE_POLICY.cache_control,
            "X-Cache": image.cache_status,
        },
    )

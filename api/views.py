"""Page-view counter endpoints."""

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from .shared.logger import get_logger
from .view_store import ViewStoreError, get_view_store

logger = get_logger(__name__)

router = APIRouter()


@router.get("/views")
async def get_views():
    """Current view count. Falls back to 1 when storage is unavailable."""
    try:
        return {"views": get_view_store().get()}
    except ViewStoreError as e:
        logger.error("Error getting page views: %s", e)
        return {"views": 1}


@router.post("/views")
async def increment_views():
    """Increment and return the view count."""
    try:
        views = get_view_store().increment()
    except ViewStoreError as e:
        logger.error("Error incrementing page views: %s", e)
        return JSONResponse(status_code=500, content={"error": "Failed to increment views"})
    return {"views": views, "message": "View count incremented"}

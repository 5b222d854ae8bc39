from fastapi import APIRouter, Depends, HTTPException
from loguru import logger

from feedrank.api.dependencies import get_services, require_user
from feedrank.core.container import FeedServices

router = APIRouter(prefix="/feed/cache", tags=["cache"])


@router.delete("")
async def clear_feed_cache(
    user_id: str = Depends(require_user),
    services: FeedServices = Depends(get_services),
):
    """
    Clear the caller's cached feed pages and preferred tags.
    The next feed request is computed fresh.
    """
    if services.feed_cache is None:
        return {"message": "Feed caching is disabled", "deleted": 0, "status": "success"}
    try:
        deleted = await services.feed_cache.invalidate_user(user_id)
        logger.info(f"Feed cache cleared for user {user_id} via API endpoint ({deleted} keys)")
        return {"message": "Feed cache cleared successfully", "deleted": deleted, "status": "success"}
    except Exception as e:
        logger.exception(f"Error clearing feed cache for user {user_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to clear cache: {str(e)}")

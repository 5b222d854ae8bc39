from fastapi import APIRouter, Depends, HTTPException
from loguru import logger

from feedrank.api.dependencies import get_services, require_user
from feedrank.core.container import FeedServices
from feedrank.core.exceptions import UpstreamUnavailable

router = APIRouter(prefix="/posts", tags=["likes"])


@router.post("/{post_id}/like")
async def like_post(
    post_id: str,
    user_id: str = Depends(require_user),
    services: FeedServices = Depends(get_services),
):
    """
    Record a like: folds the post's tags into the user's profile and drops
    their cached feed pages.

    The like itself is written by the like service upstream; this endpoint
    only reacts to it.
    """
    try:
        applied = await services.profiles.record_like(user_id, post_id)
    except UpstreamUnavailable as e:
        logger.error(f"Could not record like on {post_id} for user {user_id}: {e.message}")
        raise HTTPException(status_code=503, detail=e.message)
    except Exception as e:
        logger.exception(f"Error recording like on {post_id} for user {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to record like")

    return {"post_id": post_id, "tags": applied, "status": "success"}

from fastapi import APIRouter, Depends, HTTPException, Query
from loguru import logger

from feedrank.api.dependencies import get_services, require_user
from feedrank.core.config import settings
from feedrank.core.constants import SIMILAR_USERS_MAX_LIMIT
from feedrank.core.container import FeedServices
from feedrank.core.exceptions import UpstreamUnavailable

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/similar")
async def similar_users(
    limit: int = Query(10, ge=1, le=SIMILAR_USERS_MAX_LIMIT),
    user_id: str = Depends(require_user),
    services: FeedServices = Depends(get_services),
):
    """Users whose liked tags overlap the caller's preferred tags."""
    try:
        users = await services.profiles.get_similar_users(
            user_id, limit=limit, min_similarity=settings.SIMILAR_USERS_MIN_SIMILARITY
        )
    except UpstreamUnavailable as e:
        logger.error(f"Could not find similar users for {user_id}: {e.message}")
        raise HTTPException(status_code=503, detail=e.message)
    except Exception as e:
        logger.exception(f"Error finding similar users for {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to get similar users")

    return {"users": [u.model_dump() for u in users]}

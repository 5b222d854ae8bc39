from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query
from loguru import logger

from feedrank.api.dependencies import get_services, optional_user, require_user
from feedrank.core.config import settings
from feedrank.core.constants import TRENDING_MAX_TIMEFRAME_HOURS
from feedrank.core.container import FeedServices
from feedrank.core.exceptions import UpstreamUnavailable
from feedrank.models.feed import FeedPage, FeedRequest
from feedrank.utils import normalize_tags

router = APIRouter(prefix="/feed", tags=["feed"])


@router.get("", response_model=FeedPage)
async def get_feed(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    last_post_id: str | None = None,
    tags: str | None = Query(default=None, description="Comma separated tag filter"),
    sort_by: Literal["ranked", "recent", "popular"] = "ranked",
    refresh: bool = False,
    user_id: str | None = Depends(optional_user),
    services: FeedServices = Depends(get_services),
):
    """
    Get a page of the feed.

    Authenticated callers get a personalized ranking; anonymous callers get
    the same pipeline without preferences.
    """
    try:
        request = FeedRequest(
            user_id=user_id,
            page=page,
            limit=limit,
            last_post_id=last_post_id,
            tags=normalize_tags(tags),
            sort_by=sort_by,
            refresh=refresh,
        )
        return await services.assembler.get_feed(request)
    except UpstreamUnavailable as e:
        logger.error(f"Feed unavailable for {user_id or 'anonymous'}: {e.message}")
        raise HTTPException(status_code=503, detail=e.message)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Error building feed for {user_id or 'anonymous'}: {e}")
        raise HTTPException(status_code=500, detail="Failed to build feed")


@router.get("/recommendations", response_model=FeedPage)
async def get_recommendations(
    limit: int = Query(default=settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    exclude: str | None = Query(default=None, description="Comma separated post ids to leave out"),
    user_id: str = Depends(require_user),
    services: FeedServices = Depends(get_services),
):
    exclude_ids = [pid.strip() for pid in (exclude or "").split(",") if pid.strip()]
    try:
        return await services.assembler.get_recommendations(user_id, limit, exclude_ids)
    except UpstreamUnavailable as e:
        logger.error(f"Recommendations unavailable for user {user_id}: {e.message}")
        raise HTTPException(status_code=503, detail=e.message)
    except Exception as e:
        logger.exception(f"Error building recommendations for user {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to build recommendations")


@router.get("/trending", response_model=FeedPage)
async def get_trending(
    limit: int = Query(default=settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    timeframe: int = Query(default=24, ge=1, le=TRENDING_MAX_TIMEFRAME_HOURS, description="Window in hours"),
    user_id: str | None = Depends(optional_user),
    services: FeedServices = Depends(get_services),
):
    try:
        return await services.assembler.get_trending(limit, timeframe, user_id)
    except UpstreamUnavailable as e:
        logger.error(f"Trending feed unavailable: {e.message}")
        raise HTTPException(status_code=503, detail=e.message)
    except Exception as e:
        logger.exception(f"Error building trending feed: {e}")
        raise HTTPException(status_code=500, detail="Failed to build trending feed")

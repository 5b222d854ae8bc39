from fastapi import APIRouter

from .endpoints.caching import router as caching_router
from .endpoints.feed import router as feed_router
from .endpoints.health import router as health_router
from .endpoints.likes import router as likes_router
from .endpoints.users import router as users_router

api_router = APIRouter()


@api_router.get("/")
async def root():
    return {"message": "FeedRank API is running"}


api_router.include_router(feed_router)
api_router.include_router(likes_router)
api_router.include_router(users_router)
api_router.include_router(caching_router)
api_router.include_router(health_router)

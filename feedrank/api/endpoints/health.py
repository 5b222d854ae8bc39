from fastapi import APIRouter, Depends

from feedrank.api.dependencies import get_services
from feedrank.core.container import FeedServices
from feedrank.services.redis_service import RedisService

router = APIRouter(tags=["health"])


@router.get("/health", summary="Simple readiness probe")
async def health_check() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/metrics", summary="Runtime metrics (lightweight)")
async def metrics(services: FeedServices = Depends(get_services)) -> dict:
    """Report which cache backend is wired and whether it is currently reachable."""
    backend = services.cache_backend
    if backend is None:
        return {"cache_backend": "none", "cache_available": False}

    metrics: dict = {
        "cache_backend": "redis" if isinstance(backend, RedisService) else "memory",
        "cache_available": backend.is_available(),
    }
    if isinstance(backend, RedisService):
        metrics["redis_ping"] = await backend.ping()
    return metrics

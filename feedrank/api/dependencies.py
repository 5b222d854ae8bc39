from fastapi import Header, HTTPException, Request

from feedrank.core.container import FeedServices


def get_services(request: Request) -> FeedServices:
    return request.app.state.services


async def optional_user(x_user_id: str | None = Header(default=None, alias="X-User-Id")) -> str | None:
    """Caller identity set by the upstream auth gateway; absent for anonymous callers."""
    if not x_user_id:
        return None
    return x_user_id.strip() or None


async def require_user(x_user_id: str | None = Header(default=None, alias="X-User-Id")) -> str:
    user_id = await optional_user(x_user_id)
    if not user_id:
        raise HTTPException(status_code=401, detail="X-User-Id header is required")
    return user_id

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from feedrank.api.main import api_router
from feedrank.core.container import build_services

from .config import settings
from .version import __version__


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application lifespan events (startup/shutdown).
    """
    # Tests install their own services before the app starts
    if getattr(app.state, "services", None) is None:
        app.state.services = build_services(settings)
    yield
    try:
        await app.state.services.close()
        logger.info("Feed services closed")
    except Exception as exc:
        logger.warning(f"Failed to close feed services: {exc}")


app = FastAPI(
    title="FeedRank",
    description="Personalized feed ranking with tag preference profiles",
    version=__version__,
    lifespan=lifespan,
    docs_url=None if settings.APP_ENV != "development" else "/docs",
    redoc_url=None if settings.APP_ENV != "development" else "/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)

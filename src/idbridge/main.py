"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from idbridge.auth.router import router as auth_router
from idbridge.config import get_settings
from idbridge.database import close_db, init_db
from idbridge.discord.router import router as discord_router
from idbridge.health.router import router as health_router
from idbridge.middleware import setup_middleware


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    yield
    await close_db()


def create_app(*, manage_db: bool = True) -> FastAPI:
    """Create and configure the FastAPI application.

    ``manage_db=False`` leaves engine setup to the caller (tests open their own).
    """
    settings = get_settings()

    app = FastAPI(
        title="idbridge",
        description="Credential sessions, refresh-token rotation and Discord identity linking",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan if manage_db else None,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(auth_router)
    app.include_router(discord_router)
    return app

"""
Video Engagement API - Main Application Entry Point.

This module builds the FastAPI application around the engagement core: likes
and dislikes on videos and comments, comment threads with soft deletion,
channel subscriptions, view counting and the trending / category / search
listings.

Key Responsibilities:
- Configure logging from `Settings`.
- Open the `EngagementStore` once at startup, wire it into an
  `EngagementService`, and close it on shutdown. Both objects hang off
  `app.state`; nothing is held in module globals.
- Install the correlation middleware and the application exception handler.
- Mount the health, video, comment and user routers.

Authentication happens upstream; requests arrive with the caller's id in the
`X-User-Id` header.
"""

from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.endpoints import comments_router, users_router, videos_router
from api.health_router import health_router, monitoring_router
from core.database import EngagementStore
from core.exceptions import EngagementAPIException
from core.logging_config import get_logger, setup_logging
from core.middleware import CorrelationMiddleware, engagement_exception_handler
from core.settings import Settings
from services.engagement_service import EngagementService


def build_service(store: EngagementStore, settings: Settings) -> EngagementService:
    return EngagementService(
        store,
        max_retries=settings.max_retries,
        retry_backoff_ms=settings.retry_backoff_ms,
        default_page_size=settings.default_page_size,
        max_page_size=settings.max_page_size,
    )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        setup_logging(settings.environment, settings.log_level)
        logger = get_logger("api.startup")

        store = EngagementStore(settings.database_url)
        await store.open()
        logger.info(f"Engagement store opened ({store.database_type})")

        app.state.store = store
        app.state.engagement_service = build_service(store, settings)
        logger.info("Service startup completed")
        yield

        # Cleanup on shutdown
        logger.info("Shutting down Video Engagement API")
        await store.close()
        logger.info("Cleanup completed")

    app = FastAPI(
        title="Video Engagement API",
        description="Likes, comments, subscriptions and trending for a video platform",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://localhost:5173"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(CorrelationMiddleware)
    app.add_exception_handler(EngagementAPIException, engagement_exception_handler)

    # Health routers first (no caller identity required)
    app.include_router(health_router)
    app.include_router(monitoring_router)

    app.include_router(videos_router)
    app.include_router(comments_router)
    app.include_router(users_router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = Settings.from_env()
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level="info",
    )

"""Campus Connect API application."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from sqlalchemy.exc import SQLAlchemyError

from campus_connect.config import get_settings
from campus_connect.database import close_db, get_session_factory, init_db
from campus_connect.gamification.router import router as gamification_router
from campus_connect.gamification.seed import seed_badges
from campus_connect.health.router import router as health_router
from campus_connect.leaderboard.router import router as leaderboard_router
from campus_connect.middleware import setup_middleware
from campus_connect.notifications.router import router as notifications_router
from campus_connect.redis_client import close_redis, init_redis
from campus_connect.scheduling.router import router as scheduling_router

logger = structlog.get_logger(__name__)

ROUTERS = (gamification_router, leaderboard_router, notifications_router, scheduling_router)


async def _seed_catalog() -> None:
    try:
        async with get_session_factory()() as db:
            inserted = await seed_badges(db)
    except SQLAlchemyError:
        # Migrations not applied yet; /ready reports the empty catalog
        logger.warning("badge_seed_failed", exc_info=True)
        return
    logger.info("badge_catalog_ready", inserted=inserted)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)
    await _seed_catalog()
    logger.info("startup_complete", version=settings.app_version, environment=settings.environment)

    yield

    await close_redis()
    await close_db()


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(
        title="Campus Connect API",
        description="Achievements, leaderboards, notifications and mentorship scheduling for Campus Connect",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url=None,
        lifespan=lifespan,
    )
    setup_middleware(app, settings)

    app.include_router(health_router, tags=["Health"])
    for router in ROUTERS:
        app.include_router(router)
    return app


app = create_app()

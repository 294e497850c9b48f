"""Shared test fixtures.

Each test gets its own SQLite file database (via aiosqlite) with the
schema created from the ORM metadata and the badge catalog seeded, so
the suite runs without PostgreSQL or Redis. Redis is passed as ``None``;
publishing is best-effort and skipped.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import datetime, timedelta, timezone

import jwt
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from campus_connect.config import get_settings
from campus_connect.database import close_db, get_engine, get_session, init_db
from campus_connect.db.base import Base
from campus_connect.db.models import User
from campus_connect.gamification.seed import seed_badges
from campus_connect.gamification.stats_cache import get_stats_cache

UserFactory = Callable[..., Awaitable[User]]


@pytest_asyncio.fixture
async def database(tmp_path, monkeypatch) -> AsyncGenerator[None, None]:
    """Fresh schema and seeded badge catalog in a per-test SQLite file."""
    monkeypatch.setenv("CC_DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'campus_connect.db'}")
    get_settings.cache_clear()
    get_stats_cache().clear()

    settings = get_settings()
    await init_db(settings.database_url)
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async for session in get_session():
        await seed_badges(session)
        break

    yield

    await close_db()
    get_stats_cache().clear()
    get_settings.cache_clear()


@pytest_asyncio.fixture
async def db_session(database) -> AsyncGenerator[AsyncSession, None]:
    """Get a direct database session for service calls and assertions."""
    async for session in get_session():
        yield session
        break


@pytest_asyncio.fixture
async def make_user(db_session: AsyncSession) -> UserFactory:
    """Factory that inserts a user and returns it."""
    counter = {"n": 0}

    async def _make(
        name: str | None = None,
        role: str = "student",
        skills: list[str] | None = None,
        mentor_rating: float = 0.0,
        students_helped: int = 0,
        perfect_team_ratings: int = 0,
    ) -> User:
        counter["n"] += 1
        n = counter["n"]
        user = User(
            name=name or f"User {n}",
            email=f"user{n}@campus.test",
            role=role,
            skills=skills or [],
            mentor_rating=mentor_rating,
            students_helped=students_helped,
            perfect_team_ratings=perfect_team_ratings,
        )
        db_session.add(user)
        await db_session.commit()
        return user

    return _make


def make_token(user_id: int | str, expires_in: timedelta = timedelta(hours=1), **claims: object) -> str:
    """Sign a token the way the accounts service does."""
    settings = get_settings()
    payload = {
        "sub": str(user_id),
        "iss": settings.jwt_issuer,
        "exp": datetime.now(timezone.utc) + expires_in,
        "type": "access",
        **claims,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


@pytest.fixture
def auth_headers() -> Callable[[int], dict[str, str]]:
    """Build bearer headers for a user id."""

    def _headers(user_id: int) -> dict[str, str]:
        return {"Authorization": f"Bearer {make_token(user_id)}"}

    return _headers


@pytest.fixture
def service_headers() -> dict[str, str]:
    """Bearer headers for a backend service token."""
    return {"Authorization": f"Bearer {make_token('activity-ingest', type='service')}"}


@pytest_asyncio.fixture
async def client(database) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client over the ASGI app (lifespan not run; the database fixture initializes the DB)."""
    from campus_connect.main import create_app

    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def monday() -> datetime:
    """A future Monday at 09:00 UTC."""
    return datetime(2030, 1, 7, 9, 0, tzinfo=timezone.utc)

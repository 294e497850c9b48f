"""Middleware tests: request context, rate limiting, CORS, auth and error bodies."""

from collections import Counter

import pytest
from httpx import ASGITransport, AsyncClient

from campus_connect.config import get_settings
from campus_connect.middleware import rate_limit


class FakePipeline:
    def __init__(self, redis: "FakeRedis") -> None:
        self.redis = redis
        self.key: str | None = None

    async def __aenter__(self) -> "FakePipeline":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        return None

    def incr(self, key: str) -> None:
        self.key = key

    def expire(self, key: str, seconds: int) -> None:
        self.redis.ttls[key] = seconds

    async def execute(self) -> list[object]:
        self.redis.counts[self.key] += 1
        return [self.redis.counts[self.key], True]


class FakeRedis:
    def __init__(self) -> None:
        self.counts: Counter[str] = Counter()
        self.ttls: dict[str, int] = {}

    def pipeline(self, transaction: bool = True) -> FakePipeline:
        return FakePipeline(self)


@pytest.mark.asyncio
async def test_request_id_generated(client: AsyncClient) -> None:
    response = await client.get("/health")
    assert len(response.headers["x-request-id"]) == 32


@pytest.mark.asyncio
async def test_request_id_preserved(client: AsyncClient) -> None:
    response = await client.get("/health", headers={"X-Request-Id": "gateway-abc-123"})
    assert response.headers["x-request-id"] == "gateway-abc-123"


@pytest.mark.asyncio
async def test_cors_preflight(client: AsyncClient) -> None:
    response = await client.options(
        "/api/v1/badges",
        headers={"Origin": "http://localhost:5173", "Access-Control-Request-Method": "GET"},
    )
    assert response.headers["access-control-allow-origin"] == "http://localhost:5173"


@pytest.mark.asyncio
async def test_missing_token_is_401_with_challenge(client: AsyncClient) -> None:
    response = await client.get("/api/v1/notifications")
    assert response.status_code == 401
    assert response.headers["www-authenticate"] == "Bearer"
    assert response.json() == {"detail": "Not authenticated"}


@pytest.mark.asyncio
async def test_unknown_route_is_json_404(client: AsyncClient) -> None:
    response = await client.get("/api/v1/nowhere")
    assert response.status_code == 404
    assert "detail" in response.json()


@pytest.mark.asyncio
async def test_no_rate_limit_headers_without_redis(client: AsyncClient) -> None:
    response = await client.get("/api/v1/badges")
    assert response.status_code == 200
    assert "x-ratelimit-limit" not in response.headers


class TestRateLimit:
    @pytest.mark.asyncio
    async def test_blocks_after_limit(self, database, monkeypatch) -> None:
        fake = FakeRedis()
        monkeypatch.setattr(rate_limit, "get_redis_or_none", lambda: fake)
        monkeypatch.setenv("CC_RATE_LIMIT_REQUESTS", "3")
        get_settings.cache_clear()

        from campus_connect.main import create_app

        transport = ASGITransport(app=create_app())
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            responses = [await ac.get("/api/v1/badges") for _ in range(4)]
            health = await ac.get("/health")

        assert [r.status_code for r in responses] == [200, 200, 200, 429]
        assert responses[0].headers["x-ratelimit-remaining"] == "2"
        assert responses[3].headers["retry-after"] == "60"
        assert health.status_code == 200
        assert set(fake.ttls.values()) == {61}

    def test_window_key(self) -> None:
        assert rate_limit.window_key("10.0.0.1", 125.0, 60) == "cc:ratelimit:10.0.0.1:2"

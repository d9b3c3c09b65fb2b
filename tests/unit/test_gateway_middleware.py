"""Tests for the rate-limit and request-log middleware on a bare FastAPI app."""

import logging

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from redis.exceptions import ConnectionError as RedisConnectionError

from config.settings import settings
from src.pm_gateway.middleware.rate_limit import RateLimitMiddleware, endpoint_group
from src.pm_gateway.middleware.request_log import RequestLogMiddleware


class FakeRedis:
    def __init__(self, fail: bool = False) -> None:
        self.counts: dict[str, int] = {}
        self.expiries: dict[str, int] = {}
        self.fail = fail

    async def incr(self, key: str) -> int:
        if self.fail:
            raise RedisConnectionError("connection refused")
        self.counts[key] = self.counts.get(key, 0) + 1
        return self.counts[key]

    async def expire(self, key: str, seconds: int) -> None:
        self.expiries[key] = seconds


def _build_app(redis: FakeRedis) -> FastAPI:
    app = FastAPI()

    async def factory() -> FakeRedis:
        return redis

    app.add_middleware(RateLimitMiddleware, redis_factory=factory)
    app.add_middleware(RequestLogMiddleware)

    @app.post("/api/v1/commitments")
    async def create() -> dict[str, bool]:
        return {"ok": True}

    @app.get("/api/v1/balances/{user_id}")
    async def read(user_id: str) -> dict[str, str]:
        return {"user_id": user_id}

    return app


@pytest.fixture
def redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
async def client(redis) -> AsyncClient:
    transport = ASGITransport(app=_build_app(redis))
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture(autouse=True)
def _limits(monkeypatch):
    monkeypatch.setattr(settings, "RATE_LIMIT_ENABLED", True)
    monkeypatch.setattr(settings, "RATE_LIMIT_COMMITMENTS_PER_MINUTE", 2)


class TestEndpointGroup:
    def test_groups(self) -> None:
        assert endpoint_group("POST", "/api/v1/commitments") == ("commitments", 2)
        assert endpoint_group("POST", "/api/v1/balances/u1/purchases") == (
            "balances", settings.RATE_LIMIT_BALANCES_PER_MINUTE,
        )

    def test_reads_and_other_paths_unlimited(self) -> None:
        assert endpoint_group("GET", "/api/v1/commitments") is None
        assert endpoint_group("POST", "/api/v1/markets/validate") is None


class TestRateLimit:
    async def test_blocks_after_limit(self, client, redis) -> None:
        for _ in range(2):
            assert (await client.post("/api/v1/commitments")).status_code == 200
        resp = await client.post("/api/v1/commitments")

        assert resp.status_code == 429
        assert resp.headers["Retry-After"] == "60"
        body = resp.json()
        assert body["code"] == 9001
        assert body["message"] == "Rate limit exceeded"
        assert body["request_id"] == resp.headers["X-Request-ID"]
        assert redis.expiries == {"ratelimit:127.0.0.1:commitments": 60}

    async def test_keyed_by_forwarded_ip(self, client, redis) -> None:
        for ip in ("10.0.0.1", "10.0.0.2", "10.0.0.1"):
            resp = await client.post(
                "/api/v1/commitments", headers={"X-Forwarded-For": f"{ip}, 172.16.0.1"}
            )
            assert resp.status_code == 200
        assert redis.counts == {
            "ratelimit:10.0.0.1:commitments": 2,
            "ratelimit:10.0.0.2:commitments": 1,
        }

    async def test_reads_not_counted(self, client, redis) -> None:
        for _ in range(5):
            assert (await client.get("/api/v1/balances/u1")).status_code == 200
        assert redis.counts == {}

    async def test_disabled(self, client, redis, monkeypatch) -> None:
        monkeypatch.setattr(settings, "RATE_LIMIT_ENABLED", False)
        for _ in range(5):
            assert (await client.post("/api/v1/commitments")).status_code == 200
        assert redis.counts == {}

    async def test_redis_failure_lets_request_through(self, caplog) -> None:
        transport = ASGITransport(app=_build_app(FakeRedis(fail=True)))
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            with caplog.at_level(logging.WARNING):
                resp = await ac.post("/api/v1/commitments")
        assert resp.status_code == 200
        assert "Rate limiter unavailable" in caplog.text


class TestRequestLog:
    async def test_sets_request_id_header_and_logs(self, client, caplog) -> None:
        with caplog.at_level(logging.INFO, logger="pm.request"):
            resp = await client.get("/api/v1/balances/u1")
        request_id = resp.headers["X-Request-ID"]
        assert request_id.startswith("req_")
        assert len(request_id) == len("req_") + 12
        assert "[GET] /api/v1/balances/u1 -> 200" in caplog.text
        assert request_id in caplog.text

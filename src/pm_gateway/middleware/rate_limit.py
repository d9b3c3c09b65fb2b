"""Fixed-window rate limiting for the write endpoints.

Rules:
  - POST /api/v1/commitments...  RATE_LIMIT_COMMITMENTS_PER_MINUTE per IP
  - POST /api/v1/balances...     RATE_LIMIT_BALANCES_PER_MINUTE per IP
Everything else passes straight through.

Counting is Redis INCR + EXPIRE on "ratelimit:{ip}:{group}" with a 60s
window. The client IP is the first X-Forwarded-For hop when present.
If Redis is unreachable the request is let through and a warning logged:
rate limiting protects capacity, balances are guarded in PostgreSQL.
"""

import logging
from collections.abc import Awaitable, Callable

import redis.asyncio as aioredis
from redis.exceptions import RedisError
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from config.settings import settings
from src.pm_common.errors import RateLimitError
from src.pm_common.redis_client import get_redis
from src.pm_common.response import error_response

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60

RedisFactory = Callable[[], Awaitable[aioredis.Redis]]


def endpoint_group(method: str, path: str) -> tuple[str, int] | None:
    """Map a request to (group, per-minute limit), or None when unlimited."""
    if method != "POST":
        return None
    if path.startswith("/api/v1/commitments"):
        return "commitments", settings.RATE_LIMIT_COMMITMENTS_PER_MINUTE
    if path.startswith("/api/v1/balances"):
        return "balances", settings.RATE_LIMIT_BALANCES_PER_MINUTE
    return None


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return request.client.host if request.client else "unknown"


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, redis_factory: RedisFactory = get_redis) -> None:
        super().__init__(app)
        self._redis_factory = redis_factory

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if not settings.RATE_LIMIT_ENABLED:
            return await call_next(request)
        group = endpoint_group(request.method, request.url.path)
        if group is None:
            return await call_next(request)

        name, limit = group
        key = f"ratelimit:{client_ip(request)}:{name}"
        try:
            redis = await self._redis_factory()
            count = await redis.incr(key)
            if count == 1:
                await redis.expire(key, WINDOW_SECONDS)
        except RedisError as exc:
            logger.warning("Rate limiter unavailable, allowing %s: %s", key, exc)
            return await call_next(request)

        if count > limit:
            exc = RateLimitError(retry_after=WINDOW_SECONDS)
            logger.info("Rate limit hit: %s (%d/%d)", key, count, limit)
            resp = error_response(exc.code, exc.message)
            resp.request_id = getattr(request.state, "request_id", resp.request_id)
            return JSONResponse(
                status_code=exc.http_status,
                content=resp.model_dump(),
                headers={"Retry-After": str(exc.retry_after)},
            )
        return await call_next(request)

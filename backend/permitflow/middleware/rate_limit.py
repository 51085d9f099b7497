"""
Redis-backed sliding window rate limiter middleware.

Counts requests per client per minute. When Redis is unreachable the limiter
passes requests through and retries the connection after a short pause, so
an outage never blocks reviewers from working.
"""

import time
import logging

from redis.exceptions import RedisError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

import redis.asyncio as aioredis

from permitflow.config import settings

logger = logging.getLogger(__name__)

EXEMPT_PATHS = frozenset({"/api/health", "/metrics"})

RECONNECT_AFTER_SECONDS = 30


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, limit: int | None = None, window: int = 60):
        super().__init__(app)
        self._redis: aioredis.Redis | None = None
        self._retry_at = 0.0
        self.limit = limit or settings.rate_limit_per_minute
        self.window = window

    async def _get_redis(self) -> aioredis.Redis | None:
        if self._redis is not None:
            return self._redis
        if time.time() < self._retry_at:
            return None
        try:
            client = aioredis.from_url(settings.redis_url, decode_responses=True)
            await client.ping()
        except (RedisError, OSError) as exc:
            logger.warning("Rate limiter: Redis unavailable (%s), passing through", exc)
            self._retry_at = time.time() + RECONNECT_AFTER_SECONDS
            return None
        self._redis = client
        return client

    @staticmethod
    def _client_key(request: Request) -> str:
        # Peer address only; client-supplied forwarding headers are not trusted
        return request.client.host if request.client else "unknown"

    async def dispatch(self, request: Request, call_next):
        if request.url.path in EXEMPT_PATHS:
            return await call_next(request)

        r = await self._get_redis()
        if r is None:
            return await call_next(request)

        now = time.time()
        key = f"ratelimit:{self._client_key(request)}"

        try:
            pipe = r.pipeline()
            pipe.zremrangebyscore(key, 0, now - self.window)
            pipe.zadd(key, {str(now): now})
            pipe.zcard(key)
            pipe.expire(key, self.window)
            results = await pipe.execute()
            request_count = results[2]
        except (RedisError, OSError) as exc:
            logger.warning("Rate limiter Redis error: %s", exc)
            self._redis = None
            self._retry_at = time.time() + RECONNECT_AFTER_SECONDS
            return await call_next(request)

        if request_count > self.limit:
            return JSONResponse(
                status_code=429,
                content={"detail": "Too many requests. Please try again later.", "error": "rate_limited"},
                headers={"Retry-After": str(self.window)},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(self.limit)
        response.headers["X-RateLimit-Remaining"] = str(max(0, self.limit - request_count))
        return response

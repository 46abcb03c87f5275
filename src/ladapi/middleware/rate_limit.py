"""Rate limiting middleware — Redis-based fixed window.

Learn: Each client id gets a counter key like "{prefix}:{id}". The first
hit in a window sets the counter's TTL to ``duration`` ms; once the key
expires the window starts over. Remaining quota and reset time go out
as X-RateLimit-* headers on every response.

Allowlisted ids skip the limiter, blocklisted ids get 403.
Redis errors are logged and never block the request.
"""

import math
import time
from typing import Callable, Iterable, Optional

import structlog
from redis.exceptions import RedisError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from ladapi.errors import error_response

logger = structlog.get_logger()


def default_id(request: Request) -> str:
    return request.client.host if request.client else "unknown"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Limit each client id to ``max`` requests per ``duration`` ms."""

    def __init__(
        self,
        app,
        db,
        duration: int = 60000,
        max: int = 100,
        prefix: str = "limit",
        id: Optional[Callable[[Request], Optional[str]]] = None,
        allowlist: Iterable[str] = (),
        blocklist: Iterable[str] = (),
        headers: bool = True,
    ):
        super().__init__(app)
        self.db = db
        self.duration = int(duration)
        self.max = int(max)
        self.prefix = prefix
        self.id = id or default_id
        self.allowlist = set(allowlist)
        self.blocklist = set(blocklist)
        self.headers = headers

    async def hit(self, key: str) -> tuple[int, int]:
        """Count one request; return (count, ms until the window resets)."""
        count = await self.db.incr(key)
        if count == 1:
            await self.db.pexpire(key, self.duration)
            return count, self.duration
        ttl = await self.db.pttl(key)
        if ttl is None or ttl < 0:
            # Counter lost its expiry, re-arm it
            await self.db.pexpire(key, self.duration)
            ttl = self.duration
        return count, ttl

    async def dispatch(self, request: Request, call_next) -> Response:
        client_id = self.id(request)
        if not client_id or client_id in self.allowlist:
            return await call_next(request)
        if client_id in self.blocklist:
            return error_response(403)

        key = f"{self.prefix}:{client_id}"
        try:
            count, ttl = await self.hit(key)
        except (RedisError, OSError) as e:
            logger.warning("ratelimit.store_unavailable", key=key, error=str(e))
            return await call_next(request)

        reset = math.ceil(time.time() + ttl / 1000)
        remaining = max(0, self.max - count)
        headers = (
            {
                "X-RateLimit-Limit": str(self.max),
                "X-RateLimit-Remaining": str(remaining),
                "X-RateLimit-Reset": str(reset),
            }
            if self.headers
            else {}
        )

        if count > self.max:
            retry_after = max(1, math.ceil(ttl / 1000))
            headers["Retry-After"] = str(retry_after)
            return error_response(
                429,
                f"Rate limit exceeded, retry in {retry_after} second"
                f"{'' if retry_after == 1 else 's'}.",
                headers=headers,
            )

        response = await call_next(request)
        for name, value in headers.items():
            response.headers[name] = value
        return response

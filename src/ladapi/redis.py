"""Shared redis client — event source and rate-limit store.

Learn: redis-py has no connection events of its own, so ``RedisClient``
wraps ``redis.asyncio.Redis`` in an EventEmitter and emits the lifecycle
events itself (connect, ready, reconnecting, error, close, end). Every
other attribute (incr, pexpire, pttl, ...) proxies straight through.

The API binds default log/error handlers to those events, but only
when nobody else has — see ``bind_client_listeners``.
"""

import asyncio

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from ladapi.events import EventEmitter, EventSource

# Every lifecycle event a shared client may carry. The guard checks all nine,
# the defaults bind only the first six.
REDIS_EVENTS = (
    "connect",
    "ready",
    "error",
    "close",
    "reconnecting",
    "end",
    "+node",
    "-node",
    "node error",
)

_LOG_MESSAGES = {
    "connect": "redis connection established",
    "ready": "redis connection ready",
    "close": "redis connection closed",
    "reconnecting": "redis reconnecting",
    "end": "redis connection ended",
}


class RedisClient(EventEmitter):
    """Event-emitting wrapper around a redis.asyncio connection pool."""

    def __init__(self, redis: aioredis.Redis) -> None:
        super().__init__()
        self.redis = redis

    @classmethod
    def from_url(cls, url: str, **kwargs) -> "RedisClient":
        """Create a client without connecting (the pool connects lazily)."""
        kwargs.setdefault("decode_responses", True)
        return cls(aioredis.from_url(url, **kwargs))

    async def connect(self, retries: int = 3, delay: float = 0.5) -> "RedisClient":
        """Verify connectivity, emitting connect/ready (or reconnecting/error)."""
        for attempt in range(retries + 1):
            try:
                await self.redis.ping()
            except (RedisError, OSError) as e:
                if attempt < retries:
                    self.emit("reconnecting", attempt + 1)
                    await asyncio.sleep(delay)
                    continue
                self.emit("error", e)
                return self
            self.emit("connect")
            self.emit("ready")
            return self

    async def aclose(self) -> None:
        """Close the pool and emit close/end."""
        await self.redis.aclose()
        self.emit("close")
        self.emit("end")

    def __getattr__(self, name):
        # Only called for attributes not found normally; proxy to redis
        if name == "redis":
            raise AttributeError(name)
        return getattr(self.redis, name)


def as_event_source(client) -> EventSource:
    """Return ``client`` ready for the listener guard.

    Emitters pass through untouched. A bare ``redis.asyncio`` client is
    wrapped in ``RedisClient`` so it gains lifecycle events.
    """
    if isinstance(client, EventSource):
        return client
    if isinstance(client, (aioredis.Redis, aioredis.RedisCluster)):
        return RedisClient(client)
    raise ValueError(
        "redis_client must be a redis.asyncio client or expose "
        f"on() and listener_count(), got {type(client).__name__}"
    )


def bind_client_listeners(client: EventSource, events: EventEmitter) -> bool:
    """Attach default log/error bridges unless the client is already wired.

    All-or-nothing: if *any* of the nine lifecycle events already has a
    listener, nothing is attached and False is returned. Otherwise one
    handler each for connect/ready/error/close/reconnecting/end is bound,
    forwarding to the API's ``log``/``error`` events, and True is returned.
    """
    for name in REDIS_EVENTS:
        if client.listener_count(name) > 0:
            return False

    def _log(message):
        return lambda *args: events.emit("log", "debug", message)

    client.on("connect", _log(_LOG_MESSAGES["connect"]))
    client.on("ready", _log(_LOG_MESSAGES["ready"]))
    client.on("error", lambda err, *args: events.emit("error", err, None))
    client.on("close", _log(_LOG_MESSAGES["close"]))
    client.on("reconnecting", _log(_LOG_MESSAGES["reconnecting"]))
    client.on("end", _log(_LOG_MESSAGES["end"]))
    return True

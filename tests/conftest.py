"""Test fixtures — an API wired with an in-memory cache client.

Learn: tests never talk to a real redis. ``MemoryCache`` implements the
handful of commands the rate limiter uses (incr, pexpire, pttl) on top of
the same EventEmitter the real ``RedisClient`` uses, so the listener guard
sees an identical surface.

``client`` drives the composed app in-process through httpx's
ASGITransport; nothing binds a port unless a test calls ``listen``.
"""

import time

import pytest
import pytest_asyncio
from fastapi import APIRouter, Request
from httpx import ASGITransport, AsyncClient

from ladapi import API
from ladapi.events import EventEmitter


class MemoryCache(EventEmitter):
    """In-memory stand-in for the shared cache client."""

    def __init__(self):
        super().__init__()
        self.values: dict[str, int] = {}
        self.expires: dict[str, float] = {}
        self.fail = False

    def _check(self, key):
        if self.fail:
            raise ConnectionError("cache unavailable")
        deadline = self.expires.get(key)
        if deadline is not None and deadline <= time.monotonic():
            self.values.pop(key, None)
            self.expires.pop(key, None)

    async def incr(self, key):
        self._check(key)
        self.values[key] = self.values.get(key, 0) + 1
        return self.values[key]

    async def pexpire(self, key, ms):
        self._check(key)
        self.expires[key] = time.monotonic() + ms / 1000
        return True

    async def pttl(self, key):
        self._check(key)
        if key not in self.values:
            return -2
        deadline = self.expires.get(key)
        if deadline is None:
            return -1
        return int((deadline - time.monotonic()) * 1000)


def build_router() -> APIRouter:
    router = APIRouter()

    @router.get("/hello")
    async def hello():
        return {"hello": "world"}

    @router.get("/big")
    async def big():
        return {"items": ["x" * 40] * 100}

    @router.post("/echo")
    async def echo(request: Request):
        return {"body": request.state.body, "raw": (await request.body()).decode()}

    @router.get("/locale")
    async def locale(request: Request):
        return {"locale": request.state.locale, "greeting": request.state.t("hello")}

    @router.get("/boom")
    async def boom():
        raise RuntimeError("kaboom")

    @router.get("/whoami")
    async def whoami(request: Request):
        user = request.user
        return {
            "authenticated": user.is_authenticated,
            "name": user.display_name if user.is_authenticated else None,
        }

    return router


@pytest.fixture()
def cache():
    return MemoryCache()


@pytest.fixture()
def router():
    return build_router()


@pytest.fixture()
def make_api(cache, router):
    """Factory: API with test routes, the memory cache and optional overrides."""

    def _make(**overrides):
        options = {"routes": router, "redis_client": cache, "host": "127.0.0.1"}
        options.update(overrides)
        return API(options)

    return _make


@pytest.fixture()
def api(make_api):
    return make_api()


async def _client_for(api):
    transport = ASGITransport(app=api.app, client=("203.0.113.7", 5555))
    return AsyncClient(transport=transport, base_url="http://test")


@pytest_asyncio.fixture()
async def client(api):
    """HTTP client bound in-process to the default API."""
    async with await _client_for(api) as ac:
        yield ac


@pytest.fixture()
def client_for():
    """Factory for clients against custom-built APIs."""
    return _client_for

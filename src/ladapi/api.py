"""API — assembles the app, its middleware pipeline and its server.

Learn: construction does all the wiring up front; ``listen``/``close``
only open and close the socket.

    api = API({"routes": router, "rate_limit": None})
    await api.listen(8080)
    ...
    await api.close()

Events: ``api.events`` carries two channels consumed by the logger:

- ``error`` with ``(exc, request)``: from exception handlers, the timeout
  stage, and the shared redis client's own ``error`` event
- ``log`` with ``(level, message)``: redis lifecycle messages
"""

import inspect
from typing import Any, Callable, Optional, Union

import structlog
from fastapi import APIRouter, FastAPI
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from ladapi import __version__
from ladapi.config import APIConfig, build_config
from ladapi.errors import error_status, register_error_handlers
from ladapi.events import EventEmitter
from ladapi.logging import log_at
from ladapi.pipeline import Stage, build_stages, install
from ladapi.redis import RedisClient, as_event_source, bind_client_listeners
from ladapi.server import bind_socket, create_server, lan_address


class API:
    """Composed FastAPI application plus its HTTP or HTTP/2 server."""

    def __init__(self, config: Optional[Union[dict, APIConfig]] = None, **overrides):
        if isinstance(config, APIConfig):
            config = config.model_dump(by_alias=True)
        self.config = build_config(config, **overrides)
        if self.config.logger is None:
            self.config.logger = structlog.get_logger("api")
        logger = self.config.logger

        app = FastAPI(title="Lad API", version=__version__)
        self.events = EventEmitter()
        app.state.events = self.events

        # listen for error and log events
        self.events.on("error", self._log_error)
        self.events.on("log", lambda level, message, *args: log_at(logger, level, message))

        # bind default redis handlers unless the caller already wired some
        client = self.config.redis_client
        if client is None:
            client = RedisClient.from_url(self.config.redis_url)
        else:
            client = as_event_source(client)
        self.config.redis_client = client
        self.redis_bound = bind_client_listeners(client, self.events)

        # specify that this is our api (used by error handling downstream)
        app.state.api = True

        register_error_handlers(app, self.events)

        self.stages: list[Stage] = build_stages(self.config, self.events, client)
        install(app, self.stages)

        # only trust proxy if enabled; outermost so every stage sees the real client ip
        if self.config.trust_proxy:
            app.add_middleware(ProxyHeadersMiddleware, trusted_hosts="*")

        # allow before hooks to get setup
        if callable(self.config.hook_before_routes):
            self.config.hook_before_routes(app)

        # mount the app's defined and nested routes
        routes = routes_from(self.config.routes)
        if isinstance(routes, APIRouter):
            app.include_router(routes)
        elif routes is not None:
            app.mount("/", routes)

        self.app = app
        self.server = create_server(app, self.config.protocol, self.config.ssl)
        self.address: Optional[tuple[str, int]] = None

    def _log_error(self, err: BaseException, request=None, *args) -> None:
        logger = getattr(getattr(request, "state", None), "logger", None) or self.config.logger
        status = error_status(err)
        log = logger.error if status >= 500 else logger.warning
        log(
            "api.error",
            status=status,
            error=str(err) or err.__class__.__name__,
            exc_info=err if status >= 500 else None,
        )

    @property
    def stage_names(self) -> list[str]:
        return [stage.name for stage in self.stages]

    async def listen(
        self,
        port: Union[int, Callable, None] = None,
        fn: Optional[Callable] = None,
    ):
        """Bind and start serving. ``listen(fn)`` picks an ephemeral port."""
        if callable(port):
            fn, port = port, None
        if self.server.listening:
            raise RuntimeError(f"already listening on port {self.port}; close() first")

        sock = bind_socket(self.config.host, port)
        self.address = sock.getsockname()[:2]
        try:
            await self.server.start(sock)
        except BaseException:
            if sock.fileno() != -1:
                sock.close()
            self.address = None
            raise

        if fn is None:
            fn = self._default_listen_callback
        result = fn()
        if inspect.isawaitable(result):
            await result
        return self.server

    def _default_listen_callback(self) -> None:
        port = self.address[1]
        self.config.logger.info(
            f"Lad API server listening on {port} (LAN: {lan_address()}:{port})"
        )

    async def close(self, fn: Optional[Callable] = None) -> "API":
        """Stop accepting connections and shut the server down."""
        await self.server.stop()
        self.address = None
        if fn is not None:
            result = fn()
            if inspect.isawaitable(result):
                await result
        return self

    @property
    def port(self) -> Optional[int]:
        return self.address[1] if self.address else None

    def __repr__(self) -> str:
        return f"<API protocol={self.config.protocol!r} address={self.address!r}>"


def routes_from(target: Any):
    """Accept an APIRouter, an ASGI app, or something with a ``routes()`` factory."""
    factory = getattr(target, "routes", None)
    return factory() if callable(factory) else target

"""Server backends — uvicorn for HTTP, hypercorn for HTTPS + HTTP/2.

Learn: the API binds the listening socket itself and hands it to the
backend. That way bind errors surface as a plain ``OSError`` from
``listen()`` (uvicorn would ``sys.exit`` instead), port 0 resolves to
the real ephemeral port before any callback runs, and both backends
share one lifecycle: ``start(sock)`` / ``stop()``.

uvicorn speaks HTTP/1.1 only, so ``protocol="https"`` goes to hypercorn,
which negotiates ``h2`` (falling back to ``http/1.1``) over ALPN.
"""

import asyncio
import logging
import socket
from typing import Optional

import structlog
import uvicorn
from hypercorn.asyncio import serve as hypercorn_serve
from hypercorn.config import Config as HypercornConfig

from ladapi.config import SSLConfig

logger = structlog.get_logger()

BACKLOG = 2048


def bind_socket(host: str, port: Optional[int]) -> socket.socket:
    """Create a listening TCP socket. Port None or 0 lets the OS choose."""
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port or 0))
        sock.listen(BACKLOG)
        sock.setblocking(False)
    except OSError:
        sock.close()
        raise
    return sock


def lan_address() -> str:
    """Best-effort LAN IPv4 address of this host."""
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
        try:
            # No packet is sent; connect() only selects the outbound interface
            s.connect(("10.255.255.255", 1))
            return s.getsockname()[0]
        except OSError:
            return "127.0.0.1"


class HTTPServer:
    """Plain HTTP via uvicorn."""

    protocol = "http"

    def __init__(self, app):
        self.app = app
        self.server: Optional[uvicorn.Server] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def listening(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self, sock: socket.socket) -> None:
        if self.listening:
            raise RuntimeError("server is already running")
        host, port = sock.getsockname()[:2]
        config = uvicorn.Config(
            self.app,
            host=host,
            port=port,
            lifespan="on",
            log_config=None,
            access_log=False,
            # Proxy trust is decided by the API, not uvicorn's defaults
            proxy_headers=False,
            server_header=False,
        )
        self.server = uvicorn.Server(config)
        self._task = asyncio.create_task(self.server.serve(sockets=[sock]))
        while not self.server.started:
            if self._task.done():
                await self._task
                raise RuntimeError("server exited during startup")
            await asyncio.sleep(0.01)

    async def stop(self) -> None:
        if self._task is None:
            return
        self.server.should_exit = True
        try:
            await self._task
        finally:
            self._task = None
            self.server = None


class HTTP2Server:
    """HTTPS with HTTP/2 (ALPN h2, http/1.1) via hypercorn."""

    protocol = "https"

    def __init__(self, app, ssl: SSLConfig):
        self.app = app
        self.ssl = ssl
        self._task: Optional[asyncio.Task] = None
        self._shutdown: Optional[asyncio.Event] = None

    @property
    def listening(self) -> bool:
        return self._task is not None and not self._task.done()

    def build_config(self, sock: socket.socket) -> HypercornConfig:
        config = HypercornConfig()
        # hypercorn takes ownership of the descriptor
        config.bind = [f"fd://{sock.detach()}"]
        config.certfile = self.ssl.cert
        config.keyfile = self.ssl.key
        if self.ssl.ca:
            config.ca_certs = self.ssl.ca
        config.alpn_protocols = ["h2", "http/1.1"]
        config.accesslog = None
        config.errorlog = logging.getLogger("hypercorn.error")
        return config

    async def start(self, sock: socket.socket) -> None:
        if self.listening:
            raise RuntimeError("server is already running")
        config = self.build_config(sock)
        self._shutdown = asyncio.Event()
        self._task = asyncio.create_task(
            hypercorn_serve(self.app, config, shutdown_trigger=self._shutdown.wait)
        )
        # The socket is already listening; only surface immediate startup failures
        await asyncio.sleep(0.05)
        if self._task.done():
            task, self._task = self._task, None
            await task
            raise RuntimeError("server exited during startup")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._shutdown.set()
        try:
            await self._task
        finally:
            self._task = None
            self._shutdown = None


def create_server(app, protocol: str = "http", ssl: Optional[SSLConfig] = None):
    """Pick the backend for ``protocol``."""
    if protocol == "https":
        if ssl is None:
            raise ValueError("https requires ssl material")
        return HTTP2Server(app, ssl)
    return HTTPServer(app)

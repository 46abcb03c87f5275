"""Compression stage — Starlette's GZipMiddleware fed whole bodies.

Learn: ``GZipMiddleware`` only honours ``minimum_size`` when the body
arrives as a single message. Stages built on ``BaseHTTPMiddleware`` re-send
every response as a stream, which would push GZip onto its streaming path
and compress even a 17 byte JSON reply. ``WholeBodyMiddleware`` sits just
inside GZip and joins bodies of a known length back into one message;
true streams (no Content-Length) still stream.
"""

from starlette.datastructures import Headers, MutableHeaders
from starlette.middleware.gzip import GZipMiddleware

from ladapi.middleware.buffered import BufferedResponseMiddleware


class WholeBodyMiddleware(BufferedResponseMiddleware):
    methods = ("GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS")

    def wants(self, scope, status: int, headers: Headers) -> bool:
        accept = Headers(scope=scope).get("accept-encoding", "")
        return "gzip" in accept and "content-encoding" not in headers

    async def rewrite(self, scope, status, headers: MutableHeaders, body: bytes):
        return status, body


class CompressMiddleware(GZipMiddleware):
    def __init__(self, app, minimum_size: int = 1024, compresslevel: int = 9) -> None:
        super().__init__(
            WholeBodyMiddleware(app),
            minimum_size=minimum_size,
            compresslevel=compresslevel,
        )

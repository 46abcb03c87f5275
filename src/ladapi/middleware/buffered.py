"""Base for pure ASGI middleware that rewrites complete response bodies.

Learn: ``BaseHTTPMiddleware`` hands back a streaming response, which is
fine for headers but awkward for anything that needs the whole body (ETags,
pretty-printing, swapping a 404 page). These stages wrap ``send`` instead:
when ``wants()`` says yes at ``http.response.start``, the start message and
body chunks are held back, ``rewrite()`` gets the full body, and a single
start + body pair goes out with a corrected Content-Length.

Streaming responses (no Content-Length) are never buffered.
"""

from starlette.datastructures import Headers, MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

NO_BODY_STATUSES = (204, 304)


class BufferedResponseMiddleware:
    """Hold back matching responses and let subclasses rewrite them."""

    methods: tuple[str, ...] = ("GET",)

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    def wants(self, scope: Scope, status: int, headers: Headers) -> bool:
        raise NotImplementedError

    async def rewrite(
        self, scope: Scope, status: int, headers: MutableHeaders, body: bytes
    ) -> tuple[int, bytes]:
        raise NotImplementedError

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope["method"] not in self.methods:
            await self.app(scope, receive, send)
            return

        start: Message | None = None
        chunks: list[bytes] = []

        async def buffered_send(message: Message) -> None:
            nonlocal start
            if message["type"] == "http.response.start":
                headers = Headers(raw=message["headers"])
                if "content-length" in headers and self.wants(
                    scope, message["status"], headers
                ):
                    start = message
                    return
                await send(message)
                return

            if message["type"] == "http.response.body" and start is not None:
                chunks.append(message.get("body", b""))
                if message.get("more_body", False):
                    return
                headers = MutableHeaders(raw=list(start["headers"]))
                status, body = await self.rewrite(
                    scope, start["status"], headers, b"".join(chunks)
                )
                if status in NO_BODY_STATUSES:
                    body = b""
                    if "content-length" in headers:
                        del headers["content-length"]
                # A bodiless HEAD keeps the Content-Length the app declared
                elif body or scope["method"] != "HEAD":
                    headers["content-length"] = str(len(body))
                await send({**start, "status": status, "headers": headers.raw})
                await send({"type": "http.response.body", "body": body})
                return

            await send(message)

        await self.app(scope, receive, buffered_send)

"""Conditional GET and ETag middleware.

Learn: two cooperating stages. ``EtagMiddleware`` (inner) stamps a strong
ETag computed from the body of 200 GET responses. ``ConditionalGetMiddleware``
(outer) then compares the request's validators (If-None-Match,
If-Modified-Since) against the response's ETag / Last-Modified and turns
fresh responses into an empty 304.
"""

import base64
import hashlib
from email.utils import parsedate_to_datetime

from starlette.datastructures import Headers, MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from ladapi.middleware.buffered import BufferedResponseMiddleware

# Entity headers a 304 must not carry
STRIP_ON_304 = ("content-length", "content-type", "content-encoding", "transfer-encoding")


def entity_tag(body: bytes) -> str:
    """Strong ETag: hex length plus the first 27 chars of base64 SHA-1."""
    digest = base64.b64encode(hashlib.sha1(body).digest()).decode("ascii")[:27]
    return f'"{len(body):x}-{digest}"'


def _opaque(tag: str) -> str:
    tag = tag.strip()
    return tag[2:] if tag.startswith("W/") else tag


def is_fresh(request_headers: Headers, response_headers: Headers) -> bool:
    """True when the client's cached copy is still valid."""
    none_match = request_headers.get("if-none-match")
    modified_since = request_headers.get("if-modified-since")
    if not none_match and not modified_since:
        return False

    if "no-cache" in request_headers.get("cache-control", ""):
        return False

    if none_match and none_match.strip() != "*":
        etag = response_headers.get("etag")
        if not etag:
            return False
        wanted = {_opaque(tag) for tag in none_match.split(",")}
        if _opaque(etag) not in wanted:
            return False

    if modified_since:
        last_modified = response_headers.get("last-modified")
        if not last_modified:
            return False
        try:
            if parsedate_to_datetime(last_modified) > parsedate_to_datetime(modified_since):
                return False
        except (TypeError, ValueError):
            return False

    return True


class EtagMiddleware(BufferedResponseMiddleware):
    """Add an ETag to 200 GET responses that lack one."""

    def wants(self, scope: Scope, status: int, headers: Headers) -> bool:
        return status == 200 and "etag" not in headers

    async def rewrite(self, scope, status, headers: MutableHeaders, body: bytes):
        headers["etag"] = entity_tag(body)
        return status, body


class ConditionalGetMiddleware:
    """Answer 304 Not Modified for fresh GET/HEAD responses."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope["method"] not in ("GET", "HEAD"):
            await self.app(scope, receive, send)
            return

        request_headers = Headers(scope=scope)
        if "if-none-match" not in request_headers and "if-modified-since" not in request_headers:
            await self.app(scope, receive, send)
            return

        not_modified = False

        async def conditional_send(message: Message) -> None:
            nonlocal not_modified
            if message["type"] == "http.response.start":
                status = message["status"]
                headers = MutableHeaders(raw=list(message["headers"]))
                if 200 <= status < 300 and is_fresh(request_headers, headers):
                    not_modified = True
                    for name in STRIP_ON_304:
                        if name in headers:
                            del headers[name]
                    message = {**message, "status": 304, "headers": headers.raw}
                await send(message)
                return

            if message["type"] == "http.response.body" and not_modified:
                # Swallow the body, keep only the terminating message
                if not message.get("more_body", False):
                    await send({"type": "http.response.body", "body": b""})
                return

            await send(message)

        await self.app(scope, receive, conditional_send)

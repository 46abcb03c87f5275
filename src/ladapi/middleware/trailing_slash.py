"""Trailing slash middleware — 301 ``/users/`` to ``/users``.

Only GET and HEAD are redirected; redirecting a POST would drop its body
on most clients.
"""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import RedirectResponse, Response


class TrailingSlashMiddleware(BaseHTTPMiddleware):
    """Redirect paths ending in "/" (except the root) permanently."""

    async def dispatch(self, request: Request, call_next) -> Response:
        path = request.url.path
        if request.method in ("GET", "HEAD") and len(path) > 1 and path.endswith("/"):
            # Collapse leading slashes so "//host/" never becomes a protocol-relative URL
            target = "/" + path.strip("/")
            if request.url.query:
                target = f"{target}?{request.url.query}"
            return RedirectResponse(target, status_code=301)
        return await call_next(request)

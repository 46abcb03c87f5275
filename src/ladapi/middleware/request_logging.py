"""Request logging middleware — one structured log line per request.

Learn: the logger is also exposed as ``request.state.logger`` (bound
with the request id, method and path) so route handlers log with the
same context without re-binding it themselves.
"""

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from ladapi.logging import log_at
from ladapi.middleware.request_received import elapsed_ms


def client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log method, path, status and duration for every request."""

    def __init__(self, app, logger=None, ignore_paths=(), level: str = "info"):
        super().__init__(app)
        self.logger = logger or structlog.get_logger()
        self.ignore_paths = set(ignore_paths)
        self.level = level

    async def dispatch(self, request: Request, call_next) -> Response:
        bind = getattr(self.logger, "bind", None)
        request_logger = (
            bind(
                request_id=getattr(request.state, "request_id", None),
                method=request.method,
                path=request.url.path,
            )
            if bind
            else self.logger
        )
        request.state.logger = request_logger

        response: Response = await call_next(request)

        if request.url.path not in self.ignore_paths:
            level = "warning" if response.status_code >= 500 else self.level
            log_at(
                request_logger,
                level,
                "http.request",
                status=response.status_code,
                duration_ms=round(elapsed_ms(request), 3),
                ip=client_ip(request),
            )
        return response

"""Response time middleware — adds X-Response-Time."""

import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from ladapi.middleware.request_received import elapsed_ms


class ResponseTimeMiddleware(BaseHTTPMiddleware):
    """Set ``X-Response-Time: 12.345ms`` on every response."""

    def __init__(self, app, header: str = "X-Response-Time", digits: int = 3):
        super().__init__(app)
        self.header = header
        self.digits = digits

    async def dispatch(self, request: Request, call_next) -> Response:
        if getattr(request.state, "received_ns", None) is None:
            request.state.received_ns = time.perf_counter_ns()
        response: Response = await call_next(request)
        response.headers[self.header] = f"{elapsed_ms(request):.{self.digits}f}ms"
        return response

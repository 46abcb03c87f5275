"""Request received middleware — stamps arrival time on the request.

Learn: later stages (response time, request logging) measure from this
stamp instead of taking their own, so every duration in a log line
starts at the same instant.
"""

import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response


class RequestReceivedMiddleware(BaseHTTPMiddleware):
    """Record wall-clock and monotonic arrival time on request.state."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request.state.received_at = time.time()
        request.state.received_ns = time.perf_counter_ns()
        return await call_next(request)


def elapsed_ms(request: Request) -> float:
    """Milliseconds since the request was received (or 0.0 if unstamped)."""
    started = getattr(request.state, "received_ns", None)
    if started is None:
        return 0.0
    return (time.perf_counter_ns() - started) / 1_000_000

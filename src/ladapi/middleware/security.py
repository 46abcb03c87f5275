"""Security headers middleware.

Learn: Adds standard security headers to every response.
These headers protect against common web attacks:
- X-Content-Type-Options: prevents MIME-type sniffing
- X-Frame-Options: prevents clickjacking
- X-XSS-Protection: legacy XSS filter (still useful for older browsers)
- X-DNS-Prefetch-Control / X-Download-Options: opt out of prefetch and
  old IE "open" prompts
- Strict-Transport-Security: forces HTTPS (only on HTTPS connections)
"""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

DEFAULT_HEADERS = {
    "X-DNS-Prefetch-Control": "off",
    "X-Frame-Options": "SAMEORIGIN",
    "X-Download-Options": "noopen",
    "X-Content-Type-Options": "nosniff",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "no-referrer",
}

HSTS = "max-age=15552000; includeSubDomains"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    def __init__(self, app, headers: dict | None = None):
        super().__init__(app)
        self.headers = {**DEFAULT_HEADERS, **(headers or {})}

    async def dispatch(self, request: Request, call_next) -> Response:
        response: Response = await call_next(request)
        for name, value in self.headers.items():
            response.headers.setdefault(name, value)
        # Only add HSTS on HTTPS connections
        if request.url.scheme == "https":
            response.headers.setdefault("Strict-Transport-Security", HSTS)
        # Don't advertise the stack
        if "x-powered-by" in response.headers:
            del response.headers["x-powered-by"]
        return response

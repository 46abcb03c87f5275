"""ladapi — API server composition.

Builds a FastAPI application wrapped in an ordered middleware pipeline
(logging, compression, i18n, rate limiting, CORS, security headers, body
parsing, timeouts, IP storage, error handling) and exposes listen/close
lifecycle methods over uvicorn (HTTP) or hypercorn (HTTPS + HTTP/2).
"""

__version__ = "0.1.0"

from ladapi.api import API  # noqa: E402

__all__ = ["API", "__version__"]

"""Middleware stages, in the order the pipeline installs them."""

from ladapi.middleware.basic_auth import BasicAuthMiddleware
from ladapi.middleware.body_parser import BodyParserMiddleware
from ladapi.middleware.compress import CompressMiddleware
from ladapi.middleware.conditional import ConditionalGetMiddleware, EtagMiddleware
from ladapi.middleware.error_handler import ErrorHandlerMiddleware
from ladapi.middleware.i18n import I18N, I18nMiddleware
from ladapi.middleware.json_pretty import JSONPrettyMiddleware
from ladapi.middleware.not_found import NotFoundMiddleware
from ladapi.middleware.rate_limit import RateLimitMiddleware
from ladapi.middleware.request_id import RequestIdMiddleware
from ladapi.middleware.request_logging import RequestLoggingMiddleware
from ladapi.middleware.request_received import RequestReceivedMiddleware
from ladapi.middleware.response_time import ResponseTimeMiddleware
from ladapi.middleware.security import SecurityHeadersMiddleware
from ladapi.middleware.store_ip import StoreIPAddressMiddleware
from ladapi.middleware.timeout import TimeoutMiddleware
from ladapi.middleware.trailing_slash import TrailingSlashMiddleware

__all__ = [
    "BasicAuthMiddleware",
    "BodyParserMiddleware",
    "CompressMiddleware",
    "ConditionalGetMiddleware",
    "EtagMiddleware",
    "ErrorHandlerMiddleware",
    "I18N",
    "I18nMiddleware",
    "JSONPrettyMiddleware",
    "NotFoundMiddleware",
    "RateLimitMiddleware",
    "RequestIdMiddleware",
    "RequestLoggingMiddleware",
    "RequestReceivedMiddleware",
    "ResponseTimeMiddleware",
    "SecurityHeadersMiddleware",
    "StoreIPAddressMiddleware",
    "TimeoutMiddleware",
    "TrailingSlashMiddleware",
]

"""Not-found middleware — JSON body for every 404.

FastAPI's own 404s already go through the JSON exception handler; this
catches the rest (mounted sub-apps, plain-text 404 responses).
"""

import json

from starlette.datastructures import Headers, MutableHeaders

from ladapi.errors import error_body
from ladapi.middleware.buffered import BufferedResponseMiddleware
from ladapi.middleware.json_pretty import is_json_response


class NotFoundMiddleware(BufferedResponseMiddleware):
    methods = ("GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS")

    def wants(self, scope, status: int, headers: Headers) -> bool:
        return status == 404 and not is_json_response(headers)

    async def rewrite(self, scope, status, headers: MutableHeaders, body: bytes):
        headers["content-type"] = "application/json"
        return status, json.dumps(error_body(404)).encode("utf-8")

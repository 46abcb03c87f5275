"""Pretty-printed JSON responses.

With ``pretty=True`` every JSON response is re-indented; otherwise only
requests carrying the ``param`` query parameter (``?pretty``) are.
"""

import json
from urllib.parse import parse_qs

from starlette.datastructures import Headers, MutableHeaders

from ladapi.middleware.buffered import BufferedResponseMiddleware


def is_json_response(headers: Headers) -> bool:
    value = headers.get("content-type", "").split(";", 1)[0].strip().lower()
    return value == "application/json" or value.endswith("+json")


class JSONPrettyMiddleware(BufferedResponseMiddleware):
    methods = ("GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS")

    def __init__(self, app, pretty: bool = True, param: str | None = "pretty", spaces: int = 2):
        super().__init__(app)
        self.pretty = pretty
        self.param = param
        self.spaces = spaces

    def requested(self, scope) -> bool:
        if self.pretty:
            return True
        if not self.param:
            return False
        query = parse_qs(scope.get("query_string", b"").decode("latin-1"), keep_blank_values=True)
        return self.param in query

    def wants(self, scope, status: int, headers: Headers) -> bool:
        return (
            status not in (204, 304)
            and "content-encoding" not in headers
            and is_json_response(headers)
            and self.requested(scope)
        )

    async def rewrite(self, scope, status, headers: MutableHeaders, body: bytes):
        try:
            data = json.loads(body)
        except ValueError:
            return status, body
        return status, json.dumps(data, indent=self.spaces, ensure_ascii=False).encode("utf-8")

"""Body parser middleware — JSON and urlencoded bodies on request.state.body.

Learn: the body is read once here, parsed, and then replayed to the
downstream app as a single ``http.request`` message, so FastAPI handlers
can still declare body models or call ``await request.body()``.

Limits: JSON 1mb, forms 56kb. Over the limit is 413, malformed JSON 400.
Anything else (no body, other content types) gets ``{}``.
"""

import json
from urllib.parse import parse_qs

from starlette.datastructures import Headers
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from ladapi.errors import error_response

JSON_TYPES = (
    "application/json",
    "application/json-patch+json",
    "application/vnd.api+json",
    "application/csp-report",
)
FORM_TYPES = ("application/x-www-form-urlencoded",)


class BodyTooLarge(Exception):
    pass


def media_type(headers: Headers) -> str:
    return headers.get("content-type", "").split(";", 1)[0].strip().lower()


def is_json_type(value: str) -> bool:
    return value in JSON_TYPES or (value.startswith("application/") and value.endswith("+json"))


def parse_form(raw: bytes) -> dict:
    parsed = parse_qs(raw.decode("utf-8"), keep_blank_values=True)
    return {key: values[0] if len(values) == 1 else values for key, values in parsed.items()}


class BodyParserMiddleware:
    """Parse request bodies before routing."""

    def __init__(
        self,
        app: ASGIApp,
        json_limit: int = 1024 * 1024,
        form_limit: int = 56 * 1024,
        enable_types=("json", "form"),
    ) -> None:
        self.app = app
        self.json_limit = json_limit
        self.form_limit = form_limit
        self.enable_types = set(enable_types)

    def kind(self, headers: Headers) -> str | None:
        value = media_type(headers)
        if "json" in self.enable_types and is_json_type(value):
            return "json"
        if "form" in self.enable_types and value in FORM_TYPES:
            return "form"
        return None

    async def read_body(self, receive: Receive, headers: Headers, limit: int) -> bytes:
        declared = headers.get("content-length")
        if declared and declared.isdigit() and int(declared) > limit:
            raise BodyTooLarge()
        chunks = []
        size = 0
        while True:
            message = await receive()
            if message["type"] == "http.disconnect":
                break
            chunk = message.get("body", b"")
            size += len(chunk)
            if size > limit:
                raise BodyTooLarge()
            chunks.append(chunk)
            if not message.get("more_body", False):
                break
        return b"".join(chunks)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        state = scope.setdefault("state", {})
        headers = Headers(scope=scope)
        kind = self.kind(headers)
        if kind is None:
            state["body"] = {}
            await self.app(scope, receive, send)
            return

        limit = self.json_limit if kind == "json" else self.form_limit
        try:
            raw = await self.read_body(receive, headers, limit)
        except BodyTooLarge:
            response = error_response(413, "Request body is too large")
            await response(scope, receive, send)
            return

        try:
            if not raw.strip():
                body = {}
            elif kind == "json":
                body = json.loads(raw)
            else:
                body = parse_form(raw)
        except (ValueError, UnicodeDecodeError):
            response = error_response(400, f"Invalid {kind} body")
            await response(scope, receive, send)
            return

        state["body"] = body
        state["raw_body"] = raw

        replayed = False

        async def replay_receive() -> Message:
            nonlocal replayed
            if not replayed:
                replayed = True
                return {"type": "http.request", "body": raw, "more_body": False}
            return await receive()

        await self.app(scope, replay_receive, send)

"""Error handler middleware — uncaught exceptions become a JSON 500.

Learn: an exception handler registered for ``Exception`` runs in
Starlette's ``ServerErrorMiddleware``, outside every stage, so its 500
would carry no request id, no security headers and no access log line.
This stage sits innermost instead: it emits the API ``error`` event and
answers ``error_response(500)`` through the rest of the pipeline.

Once the response has started there is nothing left to replace, so the
exception is re-raised for the server to close the connection.
"""

from starlette.requests import Request
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from ladapi.errors import error_response


class ErrorHandlerMiddleware:
    def __init__(self, app: ASGIApp, events=None) -> None:
        self.app = app
        self.events = events

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        started = False

        async def tracked_send(message: Message) -> None:
            nonlocal started
            if message["type"] == "http.response.start":
                started = True
            await send(message)

        try:
            await self.app(scope, receive, tracked_send)
        except Exception as exc:
            if started:
                raise
            if self.events is not None:
                self.events.emit("error", exc, Request(scope))
            # Never leak internals in the message
            await error_response(500)(scope, receive, send)

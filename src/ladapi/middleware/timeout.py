"""Timeout middleware — 408 when the app is too slow to respond.

Learn: the clock only covers the time until the downstream app *starts*
its response. Once headers are out, a slow streaming body is left alone;
before that, the downstream task is cancelled, the API ``error`` event
fires, and the client gets a 408 with the configured message.
"""

import asyncio
import contextlib

from starlette.requests import Request
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from ladapi.config import DEFAULT_TIMEOUT_MESSAGE
from ladapi.errors import error_response


class RequestTimeoutError(asyncio.TimeoutError):
    status_code = 408


class TimeoutMiddleware:
    """Cancel requests that have not started responding within ``ms``."""

    def __init__(
        self,
        app: ASGIApp,
        ms: int = 30000,
        message: str = DEFAULT_TIMEOUT_MESSAGE,
        events=None,
    ) -> None:
        self.app = app
        self.ms = ms
        self.message = message
        self.events = events

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        started = asyncio.Event()

        async def timed_send(message: Message) -> None:
            if message["type"] == "http.response.start":
                started.set()
            await send(message)

        task = asyncio.ensure_future(self.app(scope, receive, timed_send))
        waiter = asyncio.ensure_future(started.wait())
        try:
            await asyncio.wait(
                {task, waiter},
                timeout=self.ms / 1000,
                return_when=asyncio.FIRST_COMPLETED,
            )
        except BaseException:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if not task.done() and not started.is_set():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
            if self.events is not None:
                self.events.emit("error", RequestTimeoutError(self.message), Request(scope))
            response = error_response(408, self.message)
            await response(scope, receive, send)
            return

        await task

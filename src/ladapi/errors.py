"""Error responses and exception handlers.

Learn: every error leaves the API in the same JSON shape:

    {"statusCode": 404, "error": "Not Found", "message": "Not Found"}

Exception handlers cover what FastAPI raises inside routes. Middleware
sits outside FastAPI's exception layer, so stages that reject a request
build the response directly with ``error_response``.

Each handled exception is emitted as the API's ``error`` event with
``(exc, request)`` so logging goes through one listener.
"""

from http import HTTPStatus
from typing import Mapping, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import JSONResponse

from ladapi.events import EventEmitter


def status_phrase(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Unknown Error"


def error_body(status_code: int, message: Optional[str] = None) -> dict:
    phrase = status_phrase(status_code)
    return {
        "statusCode": status_code,
        "error": phrase,
        "message": message or phrase,
    }


def error_response(
    status_code: int,
    message: Optional[str] = None,
    headers: Optional[Mapping[str, str]] = None,
    **extra,
) -> JSONResponse:
    """Build the standard JSON error response."""
    body = error_body(status_code, message)
    body.update(extra)
    return JSONResponse(body, status_code=status_code, headers=headers)


def register_error_handlers(app: FastAPI, events: EventEmitter) -> None:
    """Install JSON exception handlers that also emit ``error`` events."""

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        events.emit("error", exc, request)
        message = exc.detail if isinstance(exc.detail, str) else None
        return error_response(exc.status_code, message, headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        events.emit("error", exc, request)
        return error_response(
            422,
            "Request validation failed",
            details=jsonable_errors(exc),
        )

    # Route errors are answered by the error_handler stage; this only sees
    # failures raised by the stages themselves
    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        events.emit("error", exc, request)
        # Never leak internals in the message
        return error_response(500)


def jsonable_errors(exc: RequestValidationError) -> list:
    return jsonable_encoder(exc.errors())


def error_status(exc: BaseException) -> int:
    """Status code an exception maps to (500 when it carries none)."""
    if isinstance(exc, StarletteHTTPException):
        return exc.status_code
    if isinstance(exc, RequestValidationError):
        return 422
    return getattr(exc, "status_code", 500)

"""Middleware pipeline — the ordered list of stages wrapped around the app.

Learn: Starlette executes middleware in *reverse* order of registration
(the last ``add_middleware`` call is the outermost). ``build_stages``
returns stages in request order (first stage sees the request first),
and ``install`` registers them back to front so that order holds.

Optional stages (i18n, basic auth, rate limit, CORS, passport, timeout)
are left out entirely when their option is not set. ``error_handler`` is
always innermost, so an exception from a route still becomes a JSON 500
that every other stage decorates and logs. Stages marked
``short_circuits`` may answer the request without calling the rest of
the pipeline.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from starlette.middleware.authentication import AuthenticationMiddleware
from starlette.middleware.cors import CORSMiddleware

from ladapi.config import APIConfig
from ladapi.errors import error_response
from ladapi.events import EventEmitter
from ladapi.middleware import (
    BasicAuthMiddleware,
    BodyParserMiddleware,
    CompressMiddleware,
    ConditionalGetMiddleware,
    EtagMiddleware,
    ErrorHandlerMiddleware,
    I18N,
    I18nMiddleware,
    JSONPrettyMiddleware,
    NotFoundMiddleware,
    RateLimitMiddleware,
    RequestIdMiddleware,
    RequestLoggingMiddleware,
    RequestReceivedMiddleware,
    ResponseTimeMiddleware,
    SecurityHeadersMiddleware,
    StoreIPAddressMiddleware,
    TimeoutMiddleware,
    TrailingSlashMiddleware,
)


@dataclass
class Stage:
    """One middleware registration."""

    name: str
    middleware: type
    options: dict = field(default_factory=dict)
    short_circuits: bool = False


def resolve_i18n(option: Any, logger) -> Optional[I18N]:
    """An I18N instance is used as-is; a dict configures a new one."""
    if option is None:
        return None
    if isinstance(option, I18N):
        return option
    return I18N(**{**option, "logger": logger})


def _options(options, exclude_unset: bool = False) -> dict:
    if options is None:
        return {}
    return options.model_dump(exclude_unset=exclude_unset)


def _auth_error(conn, exc):
    return error_response(401, str(exc) or None)


def build_stages(
    config: APIConfig,
    events: EventEmitter,
    redis_client=None,
) -> list[Stage]:
    """Stages in request order, conditional ones only when configured."""
    logger = config.logger
    stages = [
        Stage("request_received", RequestReceivedMiddleware),
        Stage("response_time", ResponseTimeMiddleware),
        Stage("request_id", RequestIdMiddleware),
        Stage(
            "request_logging",
            RequestLoggingMiddleware,
            {"logger": logger, **_options(config.cabin)},
        ),
        Stage("compress", CompressMiddleware, {"minimum_size": 1024}),
    ]

    i18n = resolve_i18n(config.i18n, logger)
    if i18n is not None:
        stages.append(Stage("i18n", I18nMiddleware, {"i18n": i18n}))

    if config.auth is not None:
        stages.append(Stage("auth", BasicAuthMiddleware, _options(config.auth), short_circuits=True))

    if config.rate_limit is not None:
        if redis_client is None:
            raise ValueError("rate_limit requires a redis client")
        stages.append(
            Stage(
                "rate_limit",
                RateLimitMiddleware,
                {**_options(config.rate_limit), "db": redis_client},
                short_circuits=True,
            )
        )

    stages.append(Stage("conditional_get", ConditionalGetMiddleware, short_circuits=True))
    stages.append(Stage("etag", EtagMiddleware))

    if config.cors is not None:
        stages.append(
            Stage(
                "cors",
                CORSMiddleware,
                _options(config.cors, exclude_unset=True),
                short_circuits=True,
            )
        )

    stages += [
        Stage("security", SecurityHeadersMiddleware),
        Stage("trailing_slash", TrailingSlashMiddleware, short_circuits=True),
        Stage("body_parser", BodyParserMiddleware, short_circuits=True),
        Stage("json", JSONPrettyMiddleware, _options(config.json_options) or {"pretty": False}),
        Stage("not_found", NotFoundMiddleware, short_circuits=True),
    ]

    if config.passport is not None:
        stages.append(
            Stage(
                "passport",
                AuthenticationMiddleware,
                {"backend": config.passport, "on_error": _auth_error},
                short_circuits=True,
            )
        )

    if config.timeout is not None:
        stages.append(
            Stage(
                "timeout",
                TimeoutMiddleware,
                {**_options(config.timeout), "events": events},
                short_circuits=True,
            )
        )

    if config.store_ip_address is not None:
        stages.append(
            Stage(
                "store_ip_address",
                StoreIPAddressMiddleware,
                {"logger": logger, **_options(config.store_ip_address)},
            )
        )

    stages.append(
        Stage("error_handler", ErrorHandlerMiddleware, {"events": events}, short_circuits=True)
    )
    return stages


def install(app, stages: list[Stage]) -> None:
    """Register stages so the first one is outermost."""
    for stage in reversed(stages):
        app.add_middleware(stage.middleware, **stage.options)

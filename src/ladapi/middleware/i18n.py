"""Localization — locale detection and phrase lookup.

Learn: the locale is picked in this order, first match wins:

1. ``?locale=fr`` query parameter
2. ``locale`` cookie
3. ``Accept-Language`` header, by q-weight
4. the default locale

The chosen locale lands on ``request.state.locale`` (and ``request.state.t``
translates into it), and is echoed as ``Content-Language``.
"""

from __future__ import annotations

from typing import Iterable, Optional

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response


def parse_accept_language(header: str) -> list[str]:
    """Return language tags from an Accept-Language header, best first."""
    weighted = []
    for index, part in enumerate(header.split(",")):
        piece = part.strip()
        if not piece:
            continue
        tag, _, params = piece.partition(";")
        q = 1.0
        params = params.strip()
        if params.startswith("q="):
            try:
                q = float(params[2:])
            except ValueError:
                q = 0.0
        if q > 0 and tag.strip() != "*":
            # Stable on ties: earlier entries win
            weighted.append((-q, index, tag.strip().lower()))
    return [tag for _, _, tag in sorted(weighted)]


class I18N:
    """Supported locales plus an in-memory phrase catalog."""

    def __init__(
        self,
        locales: Iterable[str] = ("en",),
        default_locale: str = "en",
        phrases: Optional[dict[str, dict[str, str]]] = None,
        query_param: str = "locale",
        cookie: str = "locale",
        logger=None,
    ):
        self.locales = [locale.lower() for locale in locales]
        self.default_locale = default_locale.lower()
        if self.default_locale not in self.locales:
            self.locales.append(self.default_locale)
        self.phrases = {k.lower(): v for k, v in (phrases or {}).items()}
        self.query_param = query_param
        self.cookie = cookie
        self.logger = logger or structlog.get_logger()

    @property
    def config(self) -> dict:
        return {
            "locales": list(self.locales),
            "default_locale": self.default_locale,
            "query_param": self.query_param,
            "cookie": self.cookie,
        }

    def match(self, tag: Optional[str]) -> Optional[str]:
        """Map a language tag to a supported locale ("en-US" matches "en")."""
        if not tag:
            return None
        tag = tag.lower().replace("_", "-")
        if tag in self.locales:
            return tag
        base = tag.split("-", 1)[0]
        return base if base in self.locales else None

    def detect(self, request: Request) -> str:
        for candidate in (
            request.query_params.get(self.query_param),
            request.cookies.get(self.cookie),
        ):
            locale = self.match(candidate)
            if locale:
                return locale
        for tag in parse_accept_language(request.headers.get("accept-language", "")):
            locale = self.match(tag)
            if locale:
                return locale
        return self.default_locale

    def translate(self, phrase: str, locale: Optional[str] = None, **kwargs) -> str:
        """Look up ``phrase`` for ``locale``; fall back to default, then the phrase."""
        locale = self.match(locale) or self.default_locale
        catalog = self.phrases.get(locale, {})
        text = catalog.get(phrase)
        if text is None and locale != self.default_locale:
            text = self.phrases.get(self.default_locale, {}).get(phrase)
        if text is None:
            self.logger.debug("i18n.missing_phrase", phrase=phrase, locale=locale)
            text = phrase
        return text.format(**kwargs) if kwargs else text

    t = translate


class I18nMiddleware(BaseHTTPMiddleware):
    """Detect the request locale and set Content-Language."""

    def __init__(self, app, i18n: I18N):
        super().__init__(app)
        self.i18n = i18n

    async def dispatch(self, request: Request, call_next) -> Response:
        locale = self.i18n.detect(request)
        request.state.locale = locale
        request.state.t = lambda phrase, **kw: self.i18n.translate(phrase, locale, **kw)
        response: Response = await call_next(request)
        response.headers.setdefault("Content-Language", locale)
        return response

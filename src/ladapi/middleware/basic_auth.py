"""HTTP Basic auth middleware — a single name/password pair guards the API.

The password may be stored as a bcrypt hash (``ladapi hash-password``).
"""

import base64
import binascii
import secrets

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from ladapi.auth.password import verify_password
from ladapi.errors import error_response


def parse_basic_credentials(header: str | None) -> tuple[str, str] | None:
    """Decode ``Basic base64(name:pass)``; None when missing or malformed."""
    if not header:
        return None
    scheme, _, encoded = header.partition(" ")
    if scheme.lower() != "basic" or not encoded:
        return None
    try:
        decoded = base64.b64decode(encoded.strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None
    name, sep, password = decoded.partition(":")
    if not sep:
        return None
    return name, password


class BasicAuthMiddleware(BaseHTTPMiddleware):
    """Reject requests without matching Basic credentials (401)."""

    def __init__(self, app, name: str, password: str, realm: str = "Secure Area"):
        super().__init__(app)
        self.name = name
        self.password = password
        self.realm = realm

    def check(self, name: str, password: str) -> bool:
        name_ok = secrets.compare_digest(name.encode(), self.name.encode())
        if self.password.startswith("$2"):
            password_ok = verify_password(password, self.password)
        else:
            password_ok = secrets.compare_digest(password.encode(), self.password.encode())
        return name_ok and password_ok

    async def dispatch(self, request: Request, call_next) -> Response:
        credentials = parse_basic_credentials(request.headers.get("authorization"))
        if credentials is None or not self.check(*credentials):
            return error_response(
                401,
                headers={"WWW-Authenticate": f'Basic realm="{self.realm}"'},
            )
        return await call_next(request)

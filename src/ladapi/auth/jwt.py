"""JWT tokens and the passport authentication backend.

Learn: the ``passport`` option takes any Starlette ``AuthenticationBackend``.
``JWTBackend`` is the stock one: it reads ``Authorization: Bearer <jwt>``,
verifies it, and hands ``(AuthCredentials, user)`` to Starlette's
``AuthenticationMiddleware`` so routes see ``request.user``.

Requests without a token stay anonymous; a bad token is a 401.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import jwt
from starlette.authentication import (
    AuthCredentials,
    AuthenticationBackend,
    AuthenticationError,
    SimpleUser,
)
from starlette.requests import HTTPConnection


class TokenError(Exception):
    """Raised when token creation/verification fails."""


def create_access_token(
    subject: str,
    secret: str,
    algorithm: str = "HS256",
    expires_minutes: int = 60,
    scopes: Optional[list[str]] = None,
) -> str:
    """Create a signed access token for ``subject``."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": subject,
        "type": "access",
        "exp": now + timedelta(minutes=expires_minutes),
        "iat": now,
        "scopes": scopes or ["authenticated"],
    }
    return jwt.encode(payload, secret, algorithm=algorithm)


def verify_token(token: str, secret: str, algorithm: str = "HS256") -> dict:
    """Verify and decode a JWT token.

    Returns the payload dict on success.
    Raises TokenError on failure.
    """
    try:
        return jwt.decode(token, secret, algorithms=[algorithm])
    except jwt.ExpiredSignatureError:
        raise TokenError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise TokenError(f"Invalid token: {e}")


class JWTBackend(AuthenticationBackend):
    """Bearer-token backend for Starlette's AuthenticationMiddleware."""

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        load_user: Optional[Callable[[dict], object]] = None,
    ):
        self.secret = secret
        self.algorithm = algorithm
        self.load_user = load_user or (lambda payload: SimpleUser(payload["sub"]))

    async def authenticate(self, conn: HTTPConnection):
        authorization = conn.headers.get("authorization")
        if not authorization:
            return None
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() != "bearer" or not token:
            return None
        try:
            payload = verify_token(token.strip(), self.secret, self.algorithm)
        except TokenError as e:
            raise AuthenticationError(str(e))
        user = self.load_user(payload)
        if user is None:
            raise AuthenticationError("Unknown user")
        return AuthCredentials(payload.get("scopes", ["authenticated"])), user

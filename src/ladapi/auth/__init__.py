"""Authentication helpers: bcrypt passwords and a JWT passport backend."""

from ladapi.auth.jwt import JWTBackend, TokenError, create_access_token, verify_token
from ladapi.auth.password import hash_password, verify_password

__all__ = [
    "JWTBackend",
    "TokenError",
    "create_access_token",
    "hash_password",
    "verify_password",
    "verify_token",
]

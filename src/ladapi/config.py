"""Server configuration.

Two layers:

1. ``Settings`` — pydantic-settings loaded from API_* env vars (plus the
   un-prefixed TRUST_PROXY). These are the shared defaults.
2. ``APIConfig`` — the validated constructor struct. Callers pass a dict
   (or keyword overrides) that is shallow-merged over ``shared_config()``
   and validated here. Unknown keys are rejected.

Learn: the merge is key-by-key, so passing ``rate_limit={"max": 5}``
replaces the whole rate_limit dict rather than patching one entry.
"""

from typing import Any, Callable, Literal, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic_settings import BaseSettings

TRUTHY = {"true", "1", "yes", "y", "on", "t"}

DEFAULT_TIMEOUT_MESSAGE = (
    "Your request has timed out and we have been alerted of this issue. "
    "Please try again or contact us."
)


def to_boolean(value: Any) -> bool:
    """Boolean-like parsing for env strings. Unknown strings are false."""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    if isinstance(value, (int, float)):
        return value == 1
    return str(value).strip().lower() in TRUTHY


class Settings(BaseSettings):
    """Environment defaults. Set via API_* env vars."""

    environment: str = "development"
    host: str = "0.0.0.0"
    port: int = 4000
    protocol: str = "http"

    # SSL material (file paths)
    ssl_key_path: Optional[str] = None
    ssl_cert_path: Optional[str] = None
    ssl_ca_path: Optional[str] = None

    # Redis
    redis_url: str = "redis://localhost:6379/0"

    # Proxy trust: read from TRUST_PROXY, no prefix
    trust_proxy: bool = Field(default=False, validation_alias="TRUST_PROXY")

    # Rate limiting
    rate_limit_duration: int = 60000  # window in ms
    rate_limit_max: int = 100  # requests per window per id

    # Timeout
    timeout_ms: int = 30000

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    model_config = {"env_prefix": "API_", "populate_by_name": True}

    @field_validator("trust_proxy", mode="before")
    @classmethod
    def parse_trust_proxy(cls, value):
        return to_boolean(value)


def shared_config(prefix: str = "API", settings: Optional[Settings] = None) -> dict:
    """Default constructor options derived from the environment."""
    s = settings or Settings()
    ssl = {}
    if s.ssl_key_path:
        ssl["key"] = s.ssl_key_path
    if s.ssl_cert_path:
        ssl["cert"] = s.ssl_cert_path
    if s.ssl_ca_path:
        ssl["ca"] = s.ssl_ca_path

    return {
        "logger": structlog.get_logger(prefix.lower()),
        "redis_client": None,
        "store_ip_address": {},
        "cabin": {},
        "i18n": None,
        "auth": None,
        "rate_limit": {
            "duration": s.rate_limit_duration,
            "max": s.rate_limit_max,
            "prefix": f"limit_{s.environment.lower()}",
        },
        "cors": None,
        "passport": None,
        "timeout": {"ms": s.timeout_ms, "message": DEFAULT_TIMEOUT_MESSAGE},
        "hook_before_routes": None,
        "routes": None,
        "protocol": s.protocol,
        "ssl": ssl if {"key", "cert"} <= ssl.keys() else None,
        "json": {"pretty": True, "param": "pretty", "spaces": 2},
        "trust_proxy": s.trust_proxy,
        "host": s.host,
        "redis_url": s.redis_url,
    }


class SSLConfig(BaseModel):
    """Certificate material for the HTTPS/HTTP2 server (file paths)."""

    model_config = ConfigDict(extra="forbid")

    key: str
    cert: str
    ca: Optional[str] = None


class StageOptions(BaseModel):
    """Options for one stage. Unknown keys are rejected here, not at first request."""

    model_config = ConfigDict(extra="forbid", arbitrary_types_allowed=True)


class CabinOptions(StageOptions):
    ignore_paths: list[str] = []
    level: str = "info"


class StoreIPOptions(StageOptions):
    ip: str = "ip"
    last_ips: str = "last_ips"


class AuthOptions(StageOptions):
    name: str
    password: str
    realm: str = "Secure Area"


class RateLimitOptions(StageOptions):
    duration: int = 60000
    max: int = 100
    prefix: str = "limit"
    id: Optional[Callable] = None
    allowlist: list[str] = []
    blocklist: list[str] = []
    headers: bool = True


class CORSOptions(StageOptions):
    """Keyword arguments for Starlette's CORSMiddleware; only the ones set are passed."""

    allow_origins: list[str] = []
    allow_methods: list[str] = ["GET"]
    allow_headers: list[str] = []
    allow_credentials: bool = False
    allow_origin_regex: Optional[str] = None
    expose_headers: list[str] = []
    max_age: int = 600


class TimeoutOptions(StageOptions):
    ms: int = 30000
    message: str = DEFAULT_TIMEOUT_MESSAGE


class JSONOptions(StageOptions):
    pretty: bool = True
    param: Optional[str] = "pretty"
    spaces: int = 2


class APIConfig(BaseModel):
    """Validated constructor options.

    Optional stages are disabled by ``None`` (or ``False``).
    """

    model_config = ConfigDict(
        extra="forbid", arbitrary_types_allowed=True, populate_by_name=True
    )

    logger: Any = None
    redis_client: Any = None
    redis_url: str = "redis://localhost:6379/0"
    store_ip_address: Optional[StoreIPOptions] = None
    cabin: Optional[CabinOptions] = None
    i18n: Any = None
    auth: Optional[AuthOptions] = None
    rate_limit: Optional[RateLimitOptions] = None
    cors: Optional[CORSOptions] = None
    passport: Any = None
    timeout: Optional[TimeoutOptions] = None
    hook_before_routes: Optional[Callable] = None
    routes: Any = None
    protocol: Literal["http", "https"] = "http"
    ssl: Optional[SSLConfig] = None
    json_options: Optional[JSONOptions] = Field(default=None, alias="json")
    trust_proxy: bool = False
    host: str = "0.0.0.0"

    @field_validator(
        "auth", "rate_limit", "cors", "timeout", "store_ip_address", "cabin",
        "i18n", "passport", "routes", "json_options",
        mode="before",
    )
    @classmethod
    def false_disables(cls, value):
        return None if value is False else value

    @field_validator("trust_proxy", mode="before")
    @classmethod
    def parse_trust_proxy(cls, value):
        return to_boolean(value)

    @model_validator(mode="after")
    def validate_protocol(self):
        """HTTPS needs certificate material."""
        if self.protocol == "https" and self.ssl is None:
            raise ValueError("protocol 'https' requires ssl.key and ssl.cert")
        return self


def build_config(config: Optional[dict] = None, **overrides) -> APIConfig:
    """Shallow-merge caller options over shared defaults and validate."""
    merged = {**shared_config("API"), **(config or {}), **overrides}
    return APIConfig.model_validate(merged)

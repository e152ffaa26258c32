"""Configuration management with validation.

Connection settings are read from the environment and validated at load
time. Invalid settings fail fast with a single ConfigurationError listing
every problem found.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field

from . import __version__


class ConfigurationError(Exception):
    """Raised when configuration validation fails."""

    pass


# Environment variables
API_KEY_ENV = "LIGHTSTEP_API_KEY"
ORG_ENV = "LIGHTSTEP_ORG"
ENVIRONMENT_ENV = "LIGHTSTEP_ENV"
BASE_URL_ENV = "LIGHTSTEP_API_BASE_URL"
RATE_LIMIT_ENV = "LIGHTSTEP_API_RATE_LIMIT"
DISABLE_RATE_LIMIT_ENV = "LS_DISABLE_RATE_LIMIT"
TIMEOUT_ENV = "LIGHTSTEP_API_TIMEOUT"

# Endpoint resolution
PUBLIC_ENVIRONMENT = "public"
PUBLIC_HOST = "https://api.lightstep.com"
ENVIRONMENT_HOST_TEMPLATE = "https://api-{env}.lightstep.com"
API_PATH_PREFIX = "public/v0.2"

# Configuration constants with documented bounds
DEFAULT_RATE_LIMIT_PER_SECOND = 2
DEFAULT_TIMEOUT_SECONDS = 60
MIN_TIMEOUT_SECONDS = 1
MAX_TIMEOUT_SECONDS = 600

CONTENT_TYPE = "application/vnd.api+json"
DEFAULT_USER_AGENT = f"lightstep-operator/{__version__}"

# Organization and environment names end up in URLs
VALID_ORG_PATTERN = r"^[A-Za-z0-9][A-Za-z0-9._-]*$"
VALID_ENVIRONMENT_PATTERN = r"^[a-z0-9][a-z0-9-]*$"


def resolve_base_url(org_name: str, env: str, override: str | None = None) -> str:
    """Resolve the organization-scoped API base URL.

    An explicit override (e.g. http://localhost:8080) always wins over the
    environment selector.

    Args:
        org_name: Lightstep organization name.
        env: Environment selector; "public" maps to the production host.
        override: Optional host override.

    Returns:
        URL of the form <host>/public/v0.2/<org>.
    """
    if override:
        host = override.rstrip("/")
    elif env == PUBLIC_ENVIRONMENT:
        host = PUBLIC_HOST
    else:
        host = ENVIRONMENT_HOST_TEMPLATE.format(env=env)

    return f"{host}/{API_PATH_PREFIX}/{org_name}"


def parse_rate_limit(value: str | None) -> int:
    """Parse a requests-per-second override.

    Malformed and non-positive values silently fall back to the default.
    """
    if value is None:
        return DEFAULT_RATE_LIMIT_PER_SECOND
    try:
        rate = int(value.strip())
    except ValueError:
        return DEFAULT_RATE_LIMIT_PER_SECOND
    if rate <= 0:
        return DEFAULT_RATE_LIMIT_PER_SECOND
    return rate


@dataclass(frozen=True)
class ClientIdentity:
    """Connection identity of one API client. Immutable once constructed."""

    api_key: str = field(repr=False)
    org_name: str
    base_url: str


@dataclass(frozen=True)
class ClientConfig:
    """API client configuration loaded from environment variables.

    All fields are validated at construction time. Invalid configurations
    raise ConfigurationError immediately rather than failing on first call.
    """

    # Required fields
    api_key: str = field(repr=False)
    org_name: str

    # Endpoint
    environment: str = PUBLIC_ENVIRONMENT
    base_url_override: str | None = None

    # Pacing
    rate_limit: int = DEFAULT_RATE_LIMIT_PER_SECOND
    disable_rate_limit: bool = False
    timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        errors: list[str] = []

        if not self.api_key:
            errors.append(f"{API_KEY_ENV} is required")

        if not self.org_name:
            errors.append(f"{ORG_ENV} is required")
        elif not re.match(VALID_ORG_PATTERN, self.org_name):
            errors.append(f"{ORG_ENV} must match pattern {VALID_ORG_PATTERN}: {self.org_name}")

        if not self.base_url_override:
            if not re.match(VALID_ENVIRONMENT_PATTERN, self.environment):
                errors.append(
                    f"{ENVIRONMENT_ENV} must match pattern "
                    f"{VALID_ENVIRONMENT_PATTERN}: {self.environment}"
                )
        elif not self.base_url_override.startswith(("http://", "https://")):
            errors.append(f"{BASE_URL_ENV} must be an http(s) URL: {self.base_url_override}")

        if self.rate_limit < 1:
            errors.append("rate_limit must be at least 1 request per second")

        if not (MIN_TIMEOUT_SECONDS <= self.timeout_seconds <= MAX_TIMEOUT_SECONDS):
            errors.append(
                f"{TIMEOUT_ENV} must be between {MIN_TIMEOUT_SECONDS} "
                f"and {MAX_TIMEOUT_SECONDS} seconds"
            )

        if errors:
            error_msg = "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg)

    @property
    def base_url(self) -> str:
        """Organization-scoped API base URL."""
        return resolve_base_url(self.org_name, self.environment, self.base_url_override)

    def identity(self) -> ClientIdentity:
        """Build the immutable client identity for this configuration."""
        return ClientIdentity(
            api_key=self.api_key,
            org_name=self.org_name,
            base_url=self.base_url,
        )

    @classmethod
    def from_env(cls) -> ClientConfig:
        """Load configuration from environment variables.

        Environment Variables:
            LIGHTSTEP_API_KEY: API key (required, never logged)
            LIGHTSTEP_ORG: Organization name (required)
            LIGHTSTEP_ENV: "public" or a per-environment host token (default: public)
            LIGHTSTEP_API_BASE_URL: Host override, wins over LIGHTSTEP_ENV
            LIGHTSTEP_API_RATE_LIMIT: Requests per second (default: 2,
                malformed values fall back to the default)
            LS_DISABLE_RATE_LIMIT: Any non-empty value disables rate limiting
            LIGHTSTEP_API_TIMEOUT: Overall request timeout in seconds (default: 60)
        """

        def get_int(key: str, default: int) -> int:
            value = os.environ.get(key)
            if value is None:
                return default
            try:
                return int(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be an integer: {value}") from e

        def get_flag(key: str) -> bool:
            return len(os.environ.get(key, "")) > 0

        return cls(
            api_key=os.environ.get(API_KEY_ENV, ""),
            org_name=os.environ.get(ORG_ENV, ""),
            environment=os.environ.get(ENVIRONMENT_ENV) or PUBLIC_ENVIRONMENT,
            base_url_override=os.environ.get(BASE_URL_ENV) or None,
            rate_limit=parse_rate_limit(os.environ.get(RATE_LIMIT_ENV)),
            disable_rate_limit=get_flag(DISABLE_RATE_LIMIT_ENV),
            timeout_seconds=get_int(TIMEOUT_ENV, DEFAULT_TIMEOUT_SECONDS),
        )

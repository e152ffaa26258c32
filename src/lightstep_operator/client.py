"""Client for the Lightstep public API.

Every call goes through the same pipeline:

    encode body -> rate limiter -> transport (retries) -> classify -> decode

Only HTTP 200 counts as success. Everything else is raised as an
APIClientError subclass (see errors.py).

SECURITY: The API key is sent as a bearer token and is never logged.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable, Mapping
from types import TracebackType
from typing import Any, TypeVar, overload

import httpx
from pydantic import BaseModel

from .config import (
    BASE_URL_ENV,
    CONTENT_TYPE,
    DEFAULT_USER_AGENT,
    PUBLIC_ENVIRONMENT,
    ClientConfig,
    ClientIdentity,
    resolve_base_url,
)
from .envelope import (
    EnvelopeDecodeError,
    decode_envelope,
    decode_raw,
    decode_variant,
    encode_body,
)
from .errors import APIDecodeError, APIRejectionError, APITransportError
from .models import ResourceIdentifier
from .rate_limiter import RateLimiter
from .transport import Transport, TransportError

logger = logging.getLogger(__name__)

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)

# Methods whose requests do not carry a body
BODYLESS_METHODS = frozenset({"GET", "DELETE"})


def method_supports_request_body(method: str) -> bool:
    return method.upper() not in BODYLESS_METHODS


class APIClient:
    """Authenticated, rate-limited client for one organization.

    One instance represents one logical connection. Its rate limiter and
    connection pool are shared by all concurrent operations issued through
    it, which is what bounds the aggregate request rate.
    """

    def __init__(
        self,
        api_key: str,
        org_name: str,
        env: str = PUBLIC_ENVIRONMENT,
        *,
        user_agent: str = DEFAULT_USER_AGENT,
        rate_limiter: RateLimiter | None = None,
        transport: Transport | None = None,
        base_url: str | None = None,
    ) -> None:
        """Initialize client.

        The base URL honors LIGHTSTEP_API_BASE_URL, which takes priority over
        ``env``. An explicit ``base_url`` skips resolution entirely.

        Args:
            api_key: Lightstep API key.
            org_name: Organization the requests are made on behalf of.
            env: "public" or a per-environment host token.
            user_agent: User-Agent header value.
            rate_limiter: Shared limiter. Defaults to one built from the environment.
            transport: Retrying transport. Defaults to a new one.
            base_url: Fully resolved organization base URL.
        """
        if base_url is None:
            base_url = resolve_base_url(org_name, env, os.environ.get(BASE_URL_ENV))
        self._identity = ClientIdentity(api_key=api_key, org_name=org_name, base_url=base_url)
        self._user_agent = user_agent
        self._rate_limiter = rate_limiter or RateLimiter.from_env()
        self._transport = transport or Transport()

    @classmethod
    def from_config(
        cls,
        config: ClientConfig,
        *,
        user_agent: str = DEFAULT_USER_AGENT,
        transport: Transport | None = None,
    ) -> APIClient:
        """Create a client from validated configuration."""
        return cls(
            config.api_key,
            config.org_name,
            config.environment,
            user_agent=user_agent,
            rate_limiter=RateLimiter(
                rate=config.rate_limit,
                disabled=config.disable_rate_limit,
            ),
            transport=transport or Transport(timeout_seconds=config.timeout_seconds),
            base_url=config.base_url,
        )

    @property
    def org_name(self) -> str:
        """Name of the organization this client makes requests on behalf of."""
        return self._identity.org_name

    @property
    def base_url(self) -> str:
        return self._identity.base_url

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._rate_limiter

    async def aclose(self) -> None:
        await self._transport.aclose()

    async def __aenter__(self) -> APIClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    def url_for(self, suffix: str) -> str:
        """Absolute URL for a path relative to the organization base URL."""
        return f"{self._identity.base_url}/{suffix.lstrip('/')}"

    def _headers(self, *, org_scoped: bool = True) -> dict[str, str]:
        headers = {
            "Authorization": f"bearer {self._identity.api_key}",
            "User-Agent": self._user_agent,
            "Content-Type": CONTENT_TYPE,
            "Accept": CONTENT_TYPE,
        }
        if org_scoped:
            headers["X-Lightstep-Org"] = self._identity.org_name
        return headers

    def build_request(
        self,
        method: str,
        url: str,
        body: Any = None,
        *,
        org_scoped: bool = True,
    ) -> httpx.Request:
        """Build a fresh request. Requests are never reused across calls."""
        content = encode_body(body)
        if content is not None and not method_supports_request_body(method):
            logger.warning("this HTTP method does not support a request body: %s", method)

        return httpx.Request(
            method.upper(),
            url,
            headers=self._headers(org_scoped=org_scoped),
            content=content,
        )

    @overload
    async def call_api(
        self,
        method: str,
        suffix: str,
        body: Any = ...,
        result_type: None = ...,
        *,
        timeout: float | None = ...,
    ) -> None: ...

    @overload
    async def call_api(
        self,
        method: str,
        suffix: str,
        body: Any,
        result_type: type[T],
        *,
        timeout: float | None = ...,
    ) -> T: ...

    async def call_api(
        self,
        method: str,
        suffix: str,
        body: Any = None,
        result_type: type[T] | None = None,
        *,
        timeout: float | None = None,
    ) -> T | None:
        """Call the API and decode the enveloped result.

        Args:
            method: HTTP method.
            suffix: Path relative to the organization base URL.
            body: Request payload, serialized to JSON when present.
            result_type: Type of the "data" payload. None discards the body.
            timeout: Optional deadline covering the rate limiter wait and the request.

        Returns:
            The decoded payload, or None when result_type is None.

        Raises:
            APIRejectionError: If the response status is not 200.
            APIDecodeError: If the body does not decode into result_type.
            APITransportError: If no response was obtained in time.
        """
        request = self.build_request(method, self.url_for(suffix), body)
        response = await self._execute(request, timeout=timeout)
        if result_type is None:
            return None
        try:
            return decode_envelope(response.content, result_type)
        except EnvelopeDecodeError as e:
            raise APIDecodeError(response, e) from e

    async def call_api_raw(
        self,
        method: str,
        suffix: str,
        body: Any = None,
        *,
        timeout: float | None = None,
    ) -> Any:
        """Call the API and return the untyped "data" payload.

        Used when the payload must be inspected before choosing a model.
        """
        request = self.build_request(method, self.url_for(suffix), body)
        response = await self._execute(request, timeout=timeout)
        try:
            return decode_raw(response.content)
        except EnvelopeDecodeError as e:
            raise APIDecodeError(response, e) from e

    async def call_api_variant(
        self,
        method: str,
        suffix: str,
        discriminator: Callable[[Any], str],
        variants: Mapping[str, type[M]],
        body: Any = None,
        *,
        timeout: float | None = None,
    ) -> M:
        """Call the API and decode "data" into the variant it is tagged as.

        Raises:
            APIDecodeError: If the payload matches no known variant.
        """
        request = self.build_request(method, self.url_for(suffix), body)
        response = await self._execute(request, timeout=timeout)
        try:
            return decode_variant(decode_raw(response.content), discriminator, variants)
        except EnvelopeDecodeError as e:
            raise APIDecodeError(response, e) from e

    async def get_by_link(self, url: str, *, timeout: float | None = None) -> str:
        """Dereference a link returned by the API and return the target's id.

        Links are absolute URLs, so no organization scoping header is sent.
        """
        request = self.build_request("GET", url, org_scoped=False)
        response = await self._execute(request, timeout=timeout)
        try:
            return decode_envelope(response.content, ResourceIdentifier).id
        except EnvelopeDecodeError as e:
            raise APIDecodeError(response, e) from e

    async def _execute(
        self, request: httpx.Request, *, timeout: float | None = None
    ) -> httpx.Response:
        method = request.method
        url = str(request.url)

        try:
            async with asyncio.timeout(timeout):
                await self._rate_limiter.wait()
                response = await self._transport.send(request)
        except TimeoutError as e:
            raise APITransportError(method, url, f"deadline of {timeout}s exceeded") from e
        except TransportError as e:
            raise APITransportError(method, url, e) from e

        logger.debug(
            "API call completed",
            extra={"method": method, "url": url, "status_code": response.status_code},
        )

        if response.status_code != httpx.codes.OK:
            raise APIRejectionError(response)

        return response

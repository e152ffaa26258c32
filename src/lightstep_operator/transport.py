"""HTTP transport with bounded retries and an overall timeout.

One call to Transport.send() is one logical request. Rate-limit responses
(429), server errors (5xx except 501) and network failures are retried with
exponential backoff; every other response is returned as-is. A fixed budget
bounds the whole attempt sequence including the backoff sleeps.
"""

from __future__ import annotations

import asyncio
import logging
import random
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime

import httpx

from .config import DEFAULT_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 4
DEFAULT_RETRY_WAIT_MIN_SECONDS = 1.0
DEFAULT_RETRY_WAIT_MAX_SECONDS = 30.0

# Statuses that carry a Retry-After hint worth honoring
RETRY_AFTER_STATUS_CODES = frozenset({429, 503})


class TransportError(Exception):
    """Raised when a request never produced an HTTP response.

    Covers DNS and connection failures, read timeouts after retries are
    exhausted, expiry of the overall timeout, and responses httpx could not
    deliver (undecodable content encoding, too many redirects).
    """

    pass


def is_retryable_status(status_code: int) -> bool:
    """Check whether a response status should be retried."""
    if status_code == 429:
        return True
    return status_code >= 500 and status_code != 501


def _retry_after_seconds(response: httpx.Response) -> float | None:
    value = response.headers.get("Retry-After")
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    return max(0.0, (when - datetime.now(UTC)).total_seconds())


class Transport:
    """Sends requests through an httpx.AsyncClient with retry.

    The underlying client (and its connection pool) is shared by every
    request sent through this transport.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_wait_min: float = DEFAULT_RETRY_WAIT_MIN_SECONDS,
        retry_wait_max: float = DEFAULT_RETRY_WAIT_MAX_SECONDS,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        """Initialize transport.

        Args:
            client: HTTP client to use. A new one is created when omitted.
            max_retries: Retries after the first attempt.
            retry_wait_min: Backoff for the first retry, in seconds.
            retry_wait_max: Upper bound for a single backoff, in seconds.
            timeout_seconds: Budget for the whole attempt sequence.
        """
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)
        self._max_retries = max_retries
        self._retry_wait_min = retry_wait_min
        self._retry_wait_max = retry_wait_max
        self._timeout_seconds = timeout_seconds

    @property
    def timeout_seconds(self) -> float:
        return self._timeout_seconds

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    def backoff(self, attempt: int, response: httpx.Response | None = None) -> float:
        """Compute the wait before retry number ``attempt`` (0-based)."""
        if response is not None and response.status_code in RETRY_AFTER_STATUS_CODES:
            retry_after = _retry_after_seconds(response)
            if retry_after is not None:
                return min(retry_after, self._retry_wait_max)

        backoff = min(self._retry_wait_min * (2**attempt), self._retry_wait_max)
        jitter = random.uniform(0, backoff * 0.2)
        return min(backoff + jitter, self._retry_wait_max)

    async def send(self, request: httpx.Request) -> httpx.Response:
        """Send a request, retrying transient failures.

        Returns:
            The final response, whatever its status.

        Raises:
            TransportError: If no response could be obtained.
        """
        try:
            async with asyncio.timeout(self._timeout_seconds):
                return await self._send_with_retry(request)
        except TimeoutError as e:
            raise TransportError(
                f"giving up after {self._timeout_seconds}s overall timeout"
            ) from e

    async def _send_with_retry(self, request: httpx.Request) -> httpx.Response:
        attempt = 0

        while True:
            final = attempt >= self._max_retries
            try:
                response = await self._client.send(request)
            except httpx.TransportError as e:
                if final:
                    raise TransportError(
                        f"giving up after {attempt + 1} attempt(s): {e}"
                    ) from e
                wait_time = self.backoff(attempt)
                logger.debug(
                    "Request failed, retrying",
                    extra={
                        "method": request.method,
                        "url": str(request.url),
                        "attempt": attempt + 1,
                        "wait_seconds": round(wait_time, 3),
                        "error": str(e),
                    },
                )
            except httpx.RequestError as e:
                # Undecodable body or redirect loop: not transient
                raise TransportError(f"{type(e).__name__}: {e}") from e
            else:
                if final or not is_retryable_status(response.status_code):
                    return response

                wait_time = self.backoff(attempt, response)
                logger.debug(
                    "Retryable response, retrying",
                    extra={
                        "method": request.method,
                        "url": str(request.url),
                        "status_code": response.status_code,
                        "attempt": attempt + 1,
                        "wait_seconds": round(wait_time, 3),
                    },
                )
                await response.aclose()

            await asyncio.sleep(wait_time)
            attempt += 1

"""API error classification.

Every failure of an API call is raised as an APIClientError. The two
concrete cases are matched by class rather than by null-checking a
response field:

- APIRejectionError: the server answered with a non-200 status. Carries the
  response, so callers can branch on status (404 during Read means the
  resource is gone).
- APITransportError: no response was obtained (DNS, connect, timeout).
  status_code is UNKNOWN_STATUS_CODE so "we don't know what happened" is
  never confused with a real HTTP status.

APIDecodeError is a rejection-shaped error for a 200 response whose body
did not match the expected shape.
"""

from __future__ import annotations

import httpx

# Not a valid HTTP status code
UNKNOWN_STATUS_CODE = -1


class APIClientError(Exception):
    """Base class for API call failures."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    @property
    def http_response(self) -> httpx.Response | None:
        """The HTTP response, or None when the request never got one."""
        return None

    @property
    def status_code(self) -> int:
        """HTTP status of the response, or UNKNOWN_STATUS_CODE."""
        return UNKNOWN_STATUS_CODE

    def __str__(self) -> str:
        return self.message


class APIRejectionError(APIClientError):
    """Raised when the server answers with a status other than 200."""

    __match_args__ = ("status_code",)

    def __init__(self, response: httpx.Response, message: str | None = None) -> None:
        super().__init__(message or describe_rejection(response))
        self._response = response

    @property
    def http_response(self) -> httpx.Response:
        return self._response

    @property
    def status_code(self) -> int:
        return self._response.status_code


class APIDecodeError(APIRejectionError):
    """Raised when a response body does not parse into the expected type."""

    def __init__(self, response: httpx.Response, error: Exception) -> None:
        super().__init__(response, f"{describe_rejection(response)}: {error}")
        self.error = error


class APITransportError(APIClientError):
    """Raised when a request failed below the HTTP layer."""

    __match_args__ = ("status_code",)

    def __init__(self, method: str, url: str, error: Exception | str) -> None:
        super().__init__(f"{method} failed: {url}: {error}")
        self.method = method
        self.url = url
        self.error = error


class ResourceTypeMismatchError(Exception):
    """Raised when an identifier refers to a different kind of resource."""

    pass


class UnresolvedReferenceError(Exception):
    """Raised when a referenced resource carries neither an id nor a link."""

    pass


def describe_rejection(response: httpx.Response) -> str:
    """Describe a response for operators without needing verbose logs.

    Includes method, URL, status, status text and the raw body.
    """
    request = response.request
    return (
        f"{request.method} {request.url}: "
        f"status {response.status_code} ({response.reason_phrase}): {response.text!r}"
    )


def is_not_found(error: BaseException) -> bool:
    """Check whether an error is a 404 rejection."""
    return isinstance(error, APIRejectionError) and error.status_code == 404

"""Lightstep API Mock for Integration Testing.

Provides an in-memory implementation of the Lightstep public API that the
real APIClient talks to through httpx.MockTransport, so the whole pipeline
(rate limiter, transport retries, error classification, envelope decoding)
is exercised without network access.

Key Features:
- In-memory state per project and collection with server-assigned ids
- Stream query normalization, as the real service does
- Conditions that reference their stream by link only
- Error injection and simulated outages
- Request recording for assertions
- A manually advanced clock for rate limiter pacing

Usage:
    from lightstep_mock import FakeLightstepAPI

    api = FakeLightstepAPI()
    async with api.client() as client:
        ...
    assert api.state.count("streams") == 1
"""

from .clock import FakeClock
from .server import DEFAULT_API_KEY, DEFAULT_ORG, FakeLightstepAPI
from .state import MockLightstepState, MockResource, normalize_query

__all__ = [
    "DEFAULT_API_KEY",
    "DEFAULT_ORG",
    "FakeClock",
    "FakeLightstepAPI",
    "MockLightstepState",
    "MockResource",
    "normalize_query",
]

"""Tests for the retrying HTTP transport."""

import asyncio

import httpx
import pytest

from lightstep_operator.transport import Transport, TransportError, is_retryable_status

URL = "https://api.lightstep.test/public/v0.2/acme/projects/p/streams/1"


class ScriptedHandler:
    """Answers requests from a fixed script of statuses or exceptions."""

    def __init__(self, *steps: int | Exception) -> None:
        self.steps = list(steps)
        self.calls = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        step = self.steps[min(self.calls, len(self.steps) - 1)]
        self.calls += 1
        if isinstance(step, Exception):
            raise step
        return httpx.Response(step, json={"data": {"id": "1"}})


def make_transport(handler, **kwargs) -> Transport:
    kwargs.setdefault("retry_wait_min", 0)
    kwargs.setdefault("retry_wait_max", 0)
    return Transport(httpx.AsyncClient(transport=httpx.MockTransport(handler)), **kwargs)


class TestIsRetryableStatus:
    """Tests for retry classification."""

    @pytest.mark.parametrize("status", [429, 500, 502, 503, 504])
    def test_retryable(self, status: int) -> None:
        assert is_retryable_status(status) is True

    @pytest.mark.parametrize("status", [200, 201, 400, 401, 403, 404, 409, 501])
    def test_not_retryable(self, status: int) -> None:
        assert is_retryable_status(status) is False


class TestTransportRetry:
    """Tests for Transport.send retry behavior."""

    @pytest.mark.asyncio
    async def test_success_first_try(self) -> None:
        handler = ScriptedHandler(200)
        transport = make_transport(handler)

        response = await transport.send(httpx.Request("GET", URL))

        assert response.status_code == 200
        assert handler.calls == 1

    @pytest.mark.asyncio
    async def test_retries_server_error(self) -> None:
        """Test that a transient 503 is retried until it succeeds."""
        handler = ScriptedHandler(503, 503, 200)
        transport = make_transport(handler)

        response = await transport.send(httpx.Request("GET", URL))

        assert response.status_code == 200
        assert handler.calls == 3

    @pytest.mark.asyncio
    async def test_retries_rate_limited(self) -> None:
        handler = ScriptedHandler(429, 200)
        transport = make_transport(handler)

        response = await transport.send(httpx.Request("GET", URL))

        assert response.status_code == 200
        assert handler.calls == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [400, 404, 501])
    async def test_does_not_retry(self, status: int) -> None:
        handler = ScriptedHandler(status, 200)
        transport = make_transport(handler)

        response = await transport.send(httpx.Request("GET", URL))

        assert response.status_code == status
        assert handler.calls == 1

    @pytest.mark.asyncio
    async def test_returns_last_response_when_retries_exhausted(self) -> None:
        """Test that the final error response is handed back, not swallowed."""
        handler = ScriptedHandler(500)
        transport = make_transport(handler, max_retries=2)

        response = await transport.send(httpx.Request("GET", URL))

        assert response.status_code == 500
        assert handler.calls == 3

    @pytest.mark.asyncio
    async def test_retries_network_error(self) -> None:
        handler = ScriptedHandler(httpx.ConnectError("refused"), 200)
        transport = make_transport(handler)

        response = await transport.send(httpx.Request("GET", URL))

        assert response.status_code == 200
        assert handler.calls == 2

    @pytest.mark.asyncio
    async def test_network_error_exhausted(self) -> None:
        """Test that persistent network failures raise TransportError."""
        handler = ScriptedHandler(httpx.ConnectError("refused"))
        transport = make_transport(handler, max_retries=3)

        with pytest.raises(TransportError) as exc_info:
            await transport.send(httpx.Request("GET", URL))

        assert "4 attempt(s)" in str(exc_info.value)
        assert handler.calls == 4

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [httpx.DecodingError("bad gzip stream"), httpx.TooManyRedirects("redirect loop")],
    )
    async def test_undeliverable_response_is_not_retried(self, error: Exception) -> None:
        """Test that httpx request errors outside TransportError still raise TransportError."""
        handler = ScriptedHandler(error, 200)
        transport = make_transport(handler, max_retries=3)

        with pytest.raises(TransportError) as exc_info:
            await transport.send(httpx.Request("GET", URL))

        assert exc_info.value.__cause__ is error
        assert type(error).__name__ in str(exc_info.value)
        assert handler.calls == 1

    @pytest.mark.asyncio
    async def test_no_retries_configured(self) -> None:
        handler = ScriptedHandler(503, 200)
        transport = make_transport(handler, max_retries=0)

        response = await transport.send(httpx.Request("GET", URL))

        assert response.status_code == 503
        assert handler.calls == 1

    @pytest.mark.asyncio
    async def test_overall_timeout(self) -> None:
        """Test that the overall budget bounds a slow request."""

        async def slow(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(5)
            return httpx.Response(200)

        transport = make_transport(slow, timeout_seconds=0.05)

        with pytest.raises(TransportError) as exc_info:
            await transport.send(httpx.Request("GET", URL))

        assert "overall timeout" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_resends_body_on_retry(self) -> None:
        bodies: list[bytes] = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(request.content)
            return httpx.Response(503 if len(bodies) == 1 else 200)

        transport = make_transport(handler)

        await transport.send(httpx.Request("POST", URL, content=b'{"data": {}}'))

        assert bodies == [b'{"data": {}}', b'{"data": {}}']


class TestBackoff:
    """Tests for backoff computation."""

    def test_exponential_with_jitter(self) -> None:
        transport = Transport(retry_wait_min=1, retry_wait_max=30)

        assert 1.0 <= transport.backoff(0) <= 1.2
        assert 4.0 <= transport.backoff(2) <= 4.8

    def test_capped_at_max(self) -> None:
        transport = Transport(retry_wait_min=1, retry_wait_max=30)

        assert transport.backoff(10) == 30

    def test_honors_retry_after(self) -> None:
        """Test that Retry-After on 429 replaces the computed backoff."""
        transport = Transport(retry_wait_min=1, retry_wait_max=30)
        response = httpx.Response(429, headers={"Retry-After": "3"})

        assert transport.backoff(0, response) == 3.0

    def test_retry_after_capped(self) -> None:
        transport = Transport(retry_wait_min=1, retry_wait_max=30)
        response = httpx.Response(503, headers={"Retry-After": "3600"})

        assert transport.backoff(0, response) == 30

    def test_ignores_unparseable_retry_after(self) -> None:
        transport = Transport(retry_wait_min=1, retry_wait_max=30)
        response = httpx.Response(429, headers={"Retry-After": "soon"})

        assert 1.0 <= transport.backoff(0, response) <= 1.2

"""Pytest configuration and fixtures for relay tests."""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Callable, List, Union

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from relay.config import Settings
from relay.gateway import UpstreamGateway
from relay.main import create_app

FIXED_NOW = datetime(2024, 1, 2, 3, 4, 5, 678000, tzinfo=timezone.utc)

Outcome = Union[httpx.Response, Exception, Callable[[httpx.Request], httpx.Response]]


class UpstreamRecorder:
    """httpx MockTransport handler that replays queued outcomes.

    Every outbound request is recorded so tests can assert how many
    network calls were attempted and what they carried.
    """

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self._outcomes: List[Outcome] = []

    def queue(self, *outcomes: Outcome) -> "UpstreamRecorder":
        self._outcomes.extend(outcomes)
        return self

    def json(self, body: Any, status_code: int = 200) -> "UpstreamRecorder":
        return self.queue(httpx.Response(status_code, json=body))

    @property
    def call_count(self) -> int:
        return len(self.requests)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self._outcomes:
            raise AssertionError(f"Unexpected upstream call: {request.method} {request.url}")
        outcome = self._outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        if callable(outcome) and not isinstance(outcome, httpx.Response):
            return outcome(request)
        return outcome


def make_settings(**overrides: Any) -> Settings:
    """Build isolated settings (no .env file, no real credentials)."""
    values = {
        "groq_api_key": "gsk-test-key",
        "gemini_api_key": "gemini-test-key",
        "google_api_key": "google-test-key",
        "google_cse_id": "cse-123",
        "aipipe_url": "",
        "aipipe_token": None,
        "aipipe_require_auth": False,
        "upstream_retry_backoff_seconds": 0,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def upstream() -> UpstreamRecorder:
    return UpstreamRecorder()


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
async def gateway(settings, upstream):
    """Gateway wired to the recording transport and a fixed clock."""
    gw = UpstreamGateway(
        settings,
        transport=httpx.MockTransport(upstream),
        clock=lambda: FIXED_NOW,
    )
    yield gw
    await gw.close()


@pytest.fixture
async def client(settings, gateway):
    """Create test client for an app using the recording gateway."""
    app = create_app(settings, gateway)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def build_client(upstream):
    """Factory for a test client whose app uses custom settings.

    Usage:
        async with build_client(groq_api_key=None) as ac:
            ...
    """

    @asynccontextmanager
    async def _build(**overrides: Any):
        custom = make_settings(**overrides)
        gw = UpstreamGateway(
            custom,
            transport=httpx.MockTransport(upstream),
            clock=lambda: FIXED_NOW,
        )
        app = create_app(custom, gw)
        try:
            async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
                yield ac
        finally:
            await gw.close()

    return _build

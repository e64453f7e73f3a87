"""Shared fixtures: an in-process API client with Gemini faked out.

No API keys or network needed. Routes get their settings and transport
through FastAPI dependencies, which are overridden here.
"""

from collections.abc import Callable

import pytest
from httpx import ASGITransport, AsyncClient

from vinylscout.api.deps import get_transport
from vinylscout.config import Settings, get_settings
from vinylscout.main import app


class FakeTransport:
    """Scripted stand-in for GeminiTransport.

    ``results`` is consumed one item per call: a dict is returned as the
    envelope, an exception is raised, a callable is awaited with the
    candidate.
    """

    def __init__(self, *results) -> None:
        self.results = list(results)
        self.calls: list[str] = []
        self.requests = []

    def caller(self, request):
        self.requests.append(request)

        async def call(candidate):
            self.calls.append(candidate.model)
            result = self.results.pop(0)
            if isinstance(result, Exception):
                raise result
            if isinstance(result, Callable):
                return await result(candidate)
            return result

        return call


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        gemini_api_key="test-gemini-key",
        discogs_token="test-discogs-token",
        scan_models=["gemini-2.0-flash", "gemini-3-flash-preview"],
    )


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
async def client(test_settings, fake_transport):
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_transport] = lambda: fake_transport
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def no_gemini_key(client):
    """Simulate a deployment without GEMINI_API_KEY."""
    app.dependency_overrides[get_transport] = lambda: None
    yield


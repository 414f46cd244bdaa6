from datetime import datetime

import httpx
import pytest
from fastapi.testclient import TestClient

from main import create_app, FixedWindowRateLimiter
from nasa_service import Settings

TEST_KEY = "test-key"


class StubUpstream:
    """Stands in for NASA. Records every request it sees."""

    def __init__(self):
        self.requests = []
        self.routes = {}

    def on(self, path, json=None, status_code=200, **kwargs):
        self.routes[path] = lambda request: httpx.Response(status_code, json=json, **kwargs)

    def fail_with(self, path, exc_type):
        def raise_it(request):
            raise exc_type("boom", request=request) if issubclass(exc_type, httpx.HTTPError) else exc_type("boom")
        self.routes[path] = raise_it

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get(request.url.path)
        if route is None:
            return httpx.Response(404, json={"error": {"message": f"no stub for {request.url.path}"}})
        return route(request)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handle), timeout=10.0)


def parse_ts(value):
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def make_settings(**overrides) -> Settings:
    settings = Settings()
    settings.nasa_api_key = TEST_KEY
    settings.nasa_base_url = "https://api.nasa.gov"
    settings.image_library_url = "https://images-api.nasa.gov"
    settings.environment = "test"
    for key, value in overrides.items():
        setattr(settings, key, value)
    return settings


@pytest.fixture
def upstream():
    return StubUpstream()


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def build_client(upstream):
    def build(settings=None, limiter=None, raise_server_exceptions=True):
        app = create_app(
            settings or make_settings(),
            http_client=upstream.client(),
            rate_limiter=limiter if limiter is not None else FixedWindowRateLimiter(1000, 900),
        )
        return TestClient(app, raise_server_exceptions=raise_server_exceptions)
    return build


@pytest.fixture
def client(build_client, settings):
    return build_client(settings)

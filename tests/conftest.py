import pytest
from fastapi.testclient import TestClient

from statsproxy.app.core.config import Settings
from statsproxy.app.main import create_app

SECRET = "0123456789abcdef0123456789abcdef"
UPSTREAM = "https://api.balldontlie.io/v1"
CLIENT_IP = "203.0.113.7"

BROWSER_HEADERS = {
    "User-Agent": "Mozilla/5.0 (X11; Linux x86_64; rv:120.0) Gecko/20100101 Firefox/120.0",
    "Accept": "application/json",
    "Accept-Language": "en-US,en;q=0.9",
    "X-Forwarded-For": f"{CLIENT_IP}, 10.0.0.1",
}


@pytest.fixture
def test_settings() -> Settings:
    return Settings(_env_file=None, ns_proxy_secret=SECRET, balldontlie_api_key="test-key")


@pytest.fixture
def app(test_settings):
    app = create_app(test_settings)
    # Freeze limiter time so bursts land in one refill interval.
    app.state.rate_limiter.clock = lambda: 1_000_000.0
    return app


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def browser_headers() -> dict:
    return dict(BROWSER_HEADERS)


@pytest.fixture
def upstream_url() -> str:
    return UPSTREAM


@pytest.fixture
def client_ip() -> str:
    return CLIENT_IP

"""
Test Configuration and Fixtures

Provides shared fixtures for the SDK test suite.
"""

import os
from collections.abc import Callable

import httpx
import pytest

# Keep tests away from a developer's real .env / keyring.
os.environ.setdefault("DROPBOX_TOKEN_BACKEND", "memory")
os.environ.setdefault("DROPBOX_LOG_LEVEL", "WARNING")

from dropbox_babel import validators  # noqa: E402
from dropbox_babel.auth.oauth2 import DropboxAuthManager  # noqa: E402
from dropbox_babel.auth.platform import AppManifest  # noqa: E402
from dropbox_babel.auth.token_store import InMemoryTokenStore  # noqa: E402
from dropbox_babel.client.babel import BabelClient  # noqa: E402
from dropbox_babel.config import Settings, get_settings  # noqa: E402

APP_KEY = "abc123"
ACCOUNT_ID = "dbid:" + "A" * 35

BASE_HOSTS = {
    "meta": "https://api.example.test/2",
    "content": "https://content.example.test/2",
    "notify": "https://notify.example.test/2",
}


# =============================================================================
# PYTEST CONFIGURATION
# =============================================================================


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (fast, isolated)")


def pytest_collection_modifyitems(config, items):
    """Tag everything under tests/unit as a unit test."""
    for item in items:
        if item.get_closest_marker("unit"):
            continue
        if "/tests/unit/" in str(getattr(item, "fspath", "")):
            item.add_marker(pytest.mark.unit)


@pytest.fixture(autouse=True)
def _reset_global_state():
    """Restore validators and cached settings between tests."""
    get_settings.cache_clear()
    yield
    validators.set_assert_func(None)
    get_settings.cache_clear()


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def settings():
    """Settings pointing at fake hosts with in-memory token storage."""
    return Settings(
        app_key=APP_KEY,
        bundle_id="com.example.tests",
        api_host=BASE_HOSTS["meta"],
        content_host=BASE_HOSTS["content"],
        notify_host=BASE_HOSTS["notify"],
        token_backend="memory",
        _env_file=None,
    )


@pytest.fixture
def token_store():
    return InMemoryTokenStore(service="com.example.tests.dropbox.authv2")


class RecordingOpener:
    """UrlOpener test double."""

    def __init__(self, can_open: bool = False):
        self.can_open = can_open
        self.probed: list[str] = []
        self.opened: list[str] = []

    def can_open_url(self, url: str) -> bool:
        self.probed.append(url)
        return self.can_open

    def open_url(self, url: str) -> bool:
        self.opened.append(url)
        return True


class RecordingPresenter:
    """WebViewPresenter test double."""

    def __init__(self):
        self.presented = []

    def present(self, controller) -> None:
        self.presented.append(controller)


@pytest.fixture
def opener():
    return RecordingOpener()


@pytest.fixture
def presenter():
    return RecordingPresenter()


@pytest.fixture
def defaults():
    return {}


@pytest.fixture
def auth_manager(token_store, opener, presenter, defaults):
    """Auth manager for APP_KEY with a fully declared manifest."""
    return DropboxAuthManager(
        APP_KEY,
        token_store=token_store,
        manifest=AppManifest.for_app_key(APP_KEY),
        url_opener=opener,
        presenter=presenter,
        defaults=defaults,
    )


@pytest.fixture
def mock_http() -> Callable[[Callable[[httpx.Request], httpx.Response]], httpx.AsyncClient]:
    """Build an httpx.AsyncClient answering through a handler function."""

    def _factory(handler):
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return _factory


@pytest.fixture
def babel_client_factory(mock_http):
    def _factory(handler, client_cls=BabelClient):
        return client_cls(mock_http(handler), dict(BASE_HOSTS))

    return _factory

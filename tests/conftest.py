"""Shared fixtures: isolated token files, fixed catalogue providers, fake HTTP."""
import json
from unittest.mock import MagicMock

import pytest
import requests

from playlist_sync.clients.fixture import FixedCatalogAdapter
from playlist_sync.core.models import AuthError, Song
from playlist_sync.core.registry import ProviderRegistry
from playlist_sync.core.token_store import TokenStore


@pytest.fixture
def store(tmp_path):
    return TokenStore(tmp_path / "tokens.json")


@pytest.fixture
def deezer():
    return FixedCatalogAdapter("Deezer")


@pytest.fixture
def spotify():
    return FixedCatalogAdapter("Spotify", catalog=[Song("I Love You", "Johnny Halliday", "sp-1")])


@pytest.fixture
def registry(deezer, spotify, store):
    return ProviderRegistry([deezer, spotify], store)


@pytest.fixture
def connected(registry):
    registry.connect("Deezer")
    registry.connect("Spotify")
    return registry


@pytest.fixture
def make_response():
    def _make(body=None, status=200):
        response = MagicMock()
        response.status_code = status
        if body is None:
            response.content = b""
            response.text = ""
            response.json.side_effect = ValueError("no body")
        else:
            response.content = json.dumps(body).encode()
            response.text = json.dumps(body)
            response.json.return_value = body
        return response
    return _make


@pytest.fixture
def session():
    fake = MagicMock(spec=requests.Session)
    fake.cookies = MagicMock()
    return fake


class FakeLogin:
    """Stands in for BrowserLogin; answers immediately."""

    timeout = 1.0

    def __init__(self, token=None, error="access_denied", redirect_url=None):
        self.token = token
        self.error = error
        self.redirect_url = redirect_url
        self.opened = []
        self.address_cleared = False

    def redirect_uri_for(self, provider):
        return f"http://localhost:8888/callback?service={provider}"

    def open_popup(self, authorize_url, opener):
        self.opened.append(authorize_url)
        if self.token is not None:
            opener.on_login_success(self.token)
        else:
            opener.on_login_error(self.error)

    def clear_redirect(self):
        self.address_cleared = True

    def capture(self, authorize_url, on_redirect=None):
        self.opened.append(authorize_url)
        if self.redirect_url is None:
            raise AuthError("window closed")
        if on_redirect is not None:
            on_redirect(self.redirect_url, self)
        return self.redirect_url


@pytest.fixture
def fake_login():
    return FakeLogin

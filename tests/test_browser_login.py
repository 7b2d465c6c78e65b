import pytest

from playlist_sync.clients.browser_login import BrowserLogin, PendingLogin
from playlist_sync.core.models import AuthError, Token


def test_pending_login_success():
    pending = PendingLogin("Spotify")
    pending.on_login_success(Token("Spotify", "abc"))
    assert pending.wait(0.1).access_token == "abc"


def test_pending_login_error():
    pending = PendingLogin("Spotify")
    pending.on_login_error("access_denied")
    with pytest.raises(AuthError, match="access_denied"):
        pending.wait(0.1)


def test_only_first_callback_counts():
    pending = PendingLogin("Spotify")
    pending.on_login_error("access_denied")
    pending.on_login_success(Token("Spotify", "late"))
    with pytest.raises(AuthError):
        pending.wait(0.1)


def test_pending_login_times_out():
    with pytest.raises(AuthError, match="did not answer"):
        PendingLogin("Spotify").wait(0.01)


def test_redirect_uri_carries_service():
    login = BrowserLogin("http://localhost:8888/callback")
    assert login.redirect_uri_for("Deezer") == "http://localhost:8888/callback?service=Deezer"


def test_popup_posts_token_to_opener(monkeypatch):
    login = BrowserLogin("http://localhost:8888/callback")
    monkeypatch.setattr(login, "capture", lambda url, on_redirect=None: (
        "http://localhost:8888/callback?service=Spotify#access_token=abc&token_type=Bearer&expires_in=3600"))
    pending = PendingLogin("Spotify")

    login.open_popup("https://accounts.spotify.com/authorize", pending).join(1)

    token = pending.wait(0.1)
    assert (token.provider, token.access_token) == ("Spotify", "abc")


def test_popup_posts_error_code_to_opener(monkeypatch):
    login = BrowserLogin("http://localhost:8888/callback")
    monkeypatch.setattr(login, "capture", lambda url, on_redirect=None: (
        "http://localhost:8888/callback?service=Spotify&error=access_denied"))
    pending = PendingLogin("Spotify")

    login.open_popup("https://accounts.spotify.com/authorize", pending).join(1)

    with pytest.raises(AuthError, match="access_denied"):
        pending.wait(0.1)


def test_popup_window_failure_reaches_opener(monkeypatch):
    def broken(url, on_redirect=None):
        raise AuthError("Browser login failed: closed")

    login = BrowserLogin("http://localhost:8888/callback")
    monkeypatch.setattr(login, "capture", broken)
    pending = PendingLogin("Spotify")

    login.open_popup("https://accounts.spotify.com/authorize", pending).join(1)

    with pytest.raises(AuthError, match="closed"):
        pending.wait(0.1)

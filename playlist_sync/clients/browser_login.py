"""
Browser-driven OAuth login

Opens the provider consent page in a Chromium window through Playwright and
waits for the navigation to the redirect URI. The redirect request is
answered locally, so nothing has to listen on the redirect address; the
token arrives in the URL fragment.

The popup flow hands its result to the opener through two callbacks,
invoked exactly once from the popup's own thread.
"""

import logging
import threading
from typing import Callable, Protocol
from urllib.parse import parse_qs

from playlist_sync.core.models import AuthError, Token
from playlist_sync.core.token_store import AddressBar, parse_redirect, token_from_redirect

logger = logging.getLogger(__name__)

LANDING_PAGE = "<html><body><p>Login complete, you can close this window.</p></body></html>"


class LoginCallbacks(Protocol):
    def on_login_success(self, token: Token) -> None: ...
    def on_login_error(self, reason: str) -> None: ...


class PendingLogin:
    """Opener side of a popup login: waits for one of the two callbacks."""

    def __init__(self, provider: str):
        self.provider = provider
        self._done = threading.Event()
        self._token: Token | None = None
        self._error: str | None = None

    def on_login_success(self, token: Token) -> None:
        if self._done.is_set():
            return
        self._token = token
        self._done.set()

    def on_login_error(self, reason: str) -> None:
        if self._done.is_set():
            return
        self._error = reason or "unknown_error"
        self._done.set()

    def wait(self, timeout: float | None = None) -> Token:
        if not self._done.wait(timeout):
            raise AuthError("login window did not answer", self.provider)
        if self._error is not None:
            raise AuthError(f"login failed: {self._error}", self.provider)
        return self._token


class PageAddress:
    """AddressBar over a Playwright page."""

    def __init__(self, page):
        self._page = page

    def clear_redirect(self) -> None:
        self._page.evaluate("history.replaceState('', document.title, location.pathname)")


class BrowserLogin:
    def __init__(self, redirect_uri: str, chromium_path: str | None = None,
                 timeout: float = 300.0):
        self._redirect_uri = redirect_uri
        self._chromium_path = chromium_path
        self._timeout = timeout

    @property
    def timeout(self) -> float:
        return self._timeout

    def redirect_uri_for(self, provider: str) -> str:
        return f"{self._redirect_uri}?service={provider}"

    def capture(self, authorize_url: str,
                on_redirect: Callable[[str, AddressBar], None] | None = None) -> str:
        """Run the consent page and return the redirect URL it ends on."""
        try:
            from playwright.sync_api import sync_playwright
        except ImportError:
            raise AuthError("Playwright not installed")

        try:
            with sync_playwright() as p:
                launch_args = {"headless": False}
                if self._chromium_path:
                    launch_args["executable_path"] = self._chromium_path
                browser = p.chromium.launch(**launch_args)
                context = browser.new_context()
                page = context.new_page()

                page.route(
                    f"{self._redirect_uri}**",
                    lambda route: route.fulfill(status=200, content_type="text/html", body=LANDING_PAGE),
                )
                page.goto(authorize_url)
                page.wait_for_url(
                    lambda url: url.startswith(self._redirect_uri),
                    timeout=self._timeout * 1000,
                )
                url = page.url
                if on_redirect is not None:
                    on_redirect(url, PageAddress(page))

                context.close()
                browser.close()
                return url
        except AuthError:
            raise
        except Exception as e:
            raise AuthError(f"Browser login failed: {e}")

    def open_popup(self, authorize_url: str, opener: LoginCallbacks) -> threading.Thread:
        """Start the login window in its own thread and report back to ``opener``."""
        thread = threading.Thread(
            target=self._run_popup, args=(authorize_url, opener), daemon=True,
        )
        thread.start()
        return thread

    def _run_popup(self, authorize_url: str, opener: LoginCallbacks) -> None:
        try:
            url = self.capture(authorize_url)
        except AuthError as e:
            logger.warning(f"Login window failed: {e}")
            opener.on_login_error(str(e))
            return

        query, fragment = parse_redirect(url)
        token = token_from_redirect(query, fragment)
        if token is not None:
            opener.on_login_success(token)
        else:
            error = parse_qs(query).get("error", ["unknown_error"])[0]
            opener.on_login_error(error)

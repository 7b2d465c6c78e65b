"""Deezer REST API adapter"""

import logging
from typing import Any
from urllib.parse import urlencode

import requests

from playlist_sync.clients.base import RestAdapter
from playlist_sync.clients.browser_login import BrowserLogin
from playlist_sync.core.models import (
    AuthError, Capabilities, MalformedResponse, Playlist, Song, TransportError,
)
from playlist_sync.core.token_store import AddressBar, parse_redirect, token_from_redirect

logger = logging.getLogger(__name__)

AUTHORIZE_URL = "https://connect.deezer.com/oauth/auth.php"
API_BASE = "https://api.deezer.com"
PERMS = "basic_access,manage_library"
NO_DATA_CODE = 800


class DeezerNoData(MalformedResponse):
    """Deezer reported that the requested object holds no data."""
    pass


class DeezerAdapter(RestAdapter):
    name = "Deezer"
    api_base = API_BASE
    capabilities = Capabilities(create_playlist=True, add_to_library=True)

    def __init__(self, app_id: str, login: BrowserLogin,
                 session: requests.Session | None = None, fuzzy: bool = True):
        super().__init__(session=session, fuzzy=fuzzy)
        self._app_id = app_id
        self._login = login

    def _auth(self) -> tuple[dict, dict]:
        return {}, {"access_token": self._token.access_token}

    def _check_body(self, data: Any) -> None:
        # Deezer answers errors with HTTP 200 and an "error" object
        if not isinstance(data, dict) or "error" not in data:
            return
        error = data["error"] or {}
        if not isinstance(error, dict):
            raise TransportError(f"error: {error}", self.name)
        kind = error.get("type", "")
        message = error.get("message", "unknown error")
        if kind == "OAuthException":
            raise AuthError(message, self.name)
        if error.get("code") == NO_DATA_CODE:
            raise DeezerNoData(message, self.name)
        raise TransportError(f"{kind}: {message}", self.name)

    def authorize_url(self) -> str:
        return f"{AUTHORIZE_URL}?" + urlencode({
            "app_id": self._app_id,
            "redirect_uri": self._login.redirect_uri_for(self.name),
            "perms": PERMS,
            "response_type": "token",
        })

    def connect(self) -> bool:
        captured = {}

        def on_redirect(url: str, address: AddressBar) -> None:
            token = token_from_redirect(*parse_redirect(url))
            if token is not None and token.provider == self.name:
                captured["token"] = token
                address.clear_redirect()

        try:
            self._login.capture(self.authorize_url(), on_redirect)
        except AuthError as e:
            logger.warning(f"Deezer login failed: {e}")
            return False
        if "token" not in captured:
            logger.warning("Deezer login returned no token")
            return False
        self._token = captured["token"]
        return self.get_status()

    def get_status(self) -> bool:
        if self._token is None:
            return False
        try:
            self._field(self._request("GET", "/user/me"), "id")
            return True
        except AuthError:
            self._token = None
            return False
        finally:
            self._session.cookies.clear()

    def disconnect(self) -> None:
        self._token = None
        self._session.cookies.clear()
        logger.info("Deezer disconnected")

    def list_playlists(self) -> list[Playlist] | None:
        try:
            items = self._paginate("/user/me/playlists", items_key="data")
        except DeezerNoData:
            return None
        playlists = []
        for item in items:
            external_id = str(self._field(item, "id"))
            playlists.append(Playlist(
                provider=self.name,
                external_id=external_id,
                title=self._field(item, "title"),
                track_count=self._count(item.get("nb_tracks")),
            ))
        return playlists or None

    def list_songs(self, playlist_id: str) -> list[Song] | None:
        try:
            items = self._paginate(f"/playlist/{playlist_id}/tracks", items_key="data")
        except DeezerNoData:
            return None
        return [self._to_song(item) for item in items] or None

    def _to_song(self, item: dict) -> Song:
        return Song(
            title=self._field(item, "title"),
            artist=self._field(item, "artist", "name"),
            external_id=str(self._field(item, "id")),
        )

    def search_candidates(self, song: Song) -> list[Song]:
        data = self._request("GET", "/search/track", params={
            "strict": "on",
            "q": f'artist:"{song.artist}" track:"{song.title}"',
            "limit": 10,
        })
        return [self._to_song(item) for item in self._list(data, "data")]

    def add_to_library(self, external_id: str, playlist_id: str | None = None) -> None:
        if playlist_id:
            self._request("POST", f"/playlist/{playlist_id}/tracks", params={"songs": external_id})
        else:
            self._request("POST", "/user/me/tracks", params={"track_id": external_id})

    def create_and_populate_playlist(self, title: str, external_ids: list[str]) -> str:
        created = self._request("POST", "/user/me/playlists", params={"title": title})
        playlist_id = str(self._field(created, "id"))
        if external_ids:
            self._request("POST", f"/playlist/{playlist_id}/tracks",
                          params={"songs": ",".join(external_ids)})
        logger.info(f"Created Deezer playlist '{title}' ({len(external_ids)} tracks)")
        return playlist_id

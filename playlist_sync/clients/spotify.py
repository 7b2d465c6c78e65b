"""Spotify Web API adapter - login through a popup window"""

import logging
from urllib.parse import urlencode

import requests

from playlist_sync.clients.base import RestAdapter
from playlist_sync.clients.browser_login import BrowserLogin, PendingLogin
from playlist_sync.core.models import AuthError, Capabilities, Playlist, Song

logger = logging.getLogger(__name__)

AUTHORIZE_URL = "https://accounts.spotify.com/authorize"
API_BASE = "https://api.spotify.com/v1"
SCOPES = "playlist-read-private playlist-modify-private user-library-modify"
ADD_BATCH_SIZE = 100


class SpotifyAdapter(RestAdapter):
    name = "Spotify"
    api_base = API_BASE
    capabilities = Capabilities(create_playlist=True, add_to_library=True)

    def __init__(self, client_id: str, login: BrowserLogin,
                 session: requests.Session | None = None, fuzzy: bool = True):
        super().__init__(session=session, fuzzy=fuzzy)
        self._client_id = client_id
        self._login = login
        self._user_id: str | None = None

    def _auth(self) -> tuple[dict, dict]:
        return {"Authorization": f"{self._token.token_type} {self._token.access_token}"}, {}

    def authorize_url(self) -> str:
        return f"{AUTHORIZE_URL}?" + urlencode({
            "client_id": self._client_id,
            "response_type": "token",
            "redirect_uri": self._login.redirect_uri_for(self.name),
            "scope": SCOPES,
            "show_dialog": "true",
        })

    def connect(self) -> bool:
        # Both callbacks are in place before the window opens
        pending = PendingLogin(self.name)
        self._login.open_popup(self.authorize_url(), pending)
        try:
            token = pending.wait(self._login.timeout + 5)
        except AuthError as e:
            logger.warning(f"Spotify login failed: {e}")
            return False
        if token.provider != self.name:
            logger.warning(f"Ignoring token for {token.provider} on Spotify login")
            return False
        self._token = token
        return self.get_status()

    def get_status(self) -> bool:
        if self._token is None:
            return False
        try:
            me = self._request("GET", "/me")
            self._user_id = self._field(me, "id")
            return True
        except AuthError:
            self._token = None
            return False
        finally:
            # A lingering session must not let the next connect() skip consent
            self._session.cookies.clear()

    def disconnect(self) -> None:
        self._token = None
        self._user_id = None
        self._session.cookies.clear()
        logger.info("Spotify disconnected")

    def list_playlists(self) -> list[Playlist] | None:
        items = self._paginate("/me/playlists", params={"limit": 50})
        playlists = []
        for item in items:
            external_id = str(self._field(item, "id"))
            tracks = item.get("tracks")
            playlists.append(Playlist(
                provider=self.name,
                external_id=external_id,
                title=self._field(item, "name"),
                track_count=self._count(tracks.get("total") if isinstance(tracks, dict) else None),
            ))
        return playlists or None

    def list_songs(self, playlist_id: str) -> list[Song] | None:
        items = self._paginate(f"/playlists/{playlist_id}/tracks", params={"limit": 100})
        songs = []
        for item in items:
            track = item.get("track") if isinstance(item, dict) else None
            # Removed tracks come back as null, local files without an id
            if not isinstance(track, dict) or not track.get("id"):
                continue
            songs.append(self._to_song(track))
        return songs or None

    def _to_song(self, track: dict) -> Song:
        artists = self._list(track, "artists")
        artist = self._field(artists[0], "name") if artists else ""
        return Song(title=self._field(track, "name"), artist=artist,
                    external_id=str(self._field(track, "id")))

    def search_candidates(self, song: Song) -> list[Song]:
        data = self._request("GET", "/search", params={
            "q": f'track:"{song.title}" artist:"{song.artist}"',
            "type": "track",
            "limit": 10,
        })
        items = self._list(data, "tracks", "items")
        return [self._to_song(track) for track in items if track]

    def add_to_library(self, external_id: str, playlist_id: str | None = None) -> None:
        if playlist_id:
            self._request("POST", f"/playlists/{playlist_id}/tracks",
                          json={"uris": [f"spotify:track:{external_id}"]})
        else:
            self._request("PUT", "/me/tracks", json={"ids": [external_id]})

    def create_and_populate_playlist(self, title: str, external_ids: list[str]) -> str:
        if self._user_id is None:
            self._user_id = self._field(self._request("GET", "/me"), "id")
        created = self._request("POST", f"/users/{self._user_id}/playlists",
                                json={"name": title, "public": False})
        playlist_id = str(self._field(created, "id"))
        for i in range(0, len(external_ids), ADD_BATCH_SIZE):
            batch = external_ids[i:i + ADD_BATCH_SIZE]
            self._request("POST", f"/playlists/{playlist_id}/tracks",
                          json={"uris": [f"spotify:track:{tid}" for tid in batch]})
        logger.info(f"Created Spotify playlist '{title}' ({len(external_ids)} tracks)")
        return playlist_id

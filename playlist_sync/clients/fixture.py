"""Fixed catalogue adapter used for local runs and tests"""

from dataclasses import dataclass, field

from playlist_sync.clients.base import ProviderAdapter
from playlist_sync.core.matching import normalize
from playlist_sync.core.models import AuthError, Capabilities, Playlist, Song, Token, TransportError

DEMO_PLAYLISTS = [
    ("1", "Favorites"),
    ("2", "Fiesta"),
    ("3", "Au calme"),
    ("4", "Chouchou"),
]

DEMO_SONGS = [
    Song("I love you", "Johnny Halliday", "9"),
    Song("Don't forget me", "Serge Gainsbourg", "8"),
    Song("Take that", "The Beatles", "7"),
    Song("Bonjour la France", "Peter McCalloway", "6"),
    Song("Manger du pain", "Petit Bourguignon", "5"),
]


SPOTIFY_DEMO_CATALOG = [
    Song("I Love You", "Johnny Halliday", "sp-1"),
    Song("Don't Forget Me - Remastered 2011", "Serge Gainsbourg", "sp-2"),
    Song("Take That (Live)", "Take That", "sp-3"),
    Song("Bonjour la France", "Peter McCalloway", "sp-4"),
]


def demo_catalog(name: str) -> list[Song]:
    """Catalogue served by the local stand-in for ``name``."""
    if name == "Spotify":
        return list(SPOTIFY_DEMO_CATALOG)
    return list(DEMO_SONGS)


@dataclass
class CreatedPlaylist:
    title: str
    track_ids: list[str] = field(default_factory=list)


class FixedCatalogAdapter(ProviderAdapter):
    """Deterministic provider: fixed playlists, fixed catalogue, no network."""

    def __init__(self, name: str, playlists: dict[str, tuple[str, list[Song]]] | None = None,
                 catalog: list[Song] | None = None, create_tracks: bool = False,
                 fuzzy: bool = True):
        super().__init__(fuzzy=fuzzy)
        self.name = name
        self.capabilities = Capabilities(create_playlist=True, add_to_library=True,
                                         create_tracks=create_tracks)
        if playlists is None:
            playlists = {pid: (title, list(DEMO_SONGS)) for pid, title in DEMO_PLAYLISTS}
        self.playlists = playlists
        self.catalog = list(DEMO_SONGS if catalog is None else catalog)
        self.created: dict[str, CreatedPlaylist] = {}
        self.library: list[str] = []
        self.calls: list[tuple] = []
        self._next_id = 1000

    def _new_id(self) -> str:
        self._next_id += 1
        return f"{self.name.lower()}-{self._next_id}"

    def _require_token(self) -> None:
        if self._token is None:
            raise AuthError("not connected", self.name)

    def connect(self) -> bool:
        self._token = Token(provider=self.name, access_token=f"{self.name.lower()}-fixture-token")
        return True

    def get_status(self) -> bool:
        return self._token is not None

    def disconnect(self) -> None:
        self._token = None

    def list_playlists(self) -> list[Playlist] | None:
        self._require_token()
        self.calls.append(("list_playlists",))
        playlists = [
            Playlist(self.name, pid, title, len(songs))
            for pid, (title, songs) in self.playlists.items()
        ]
        return playlists or None

    def list_songs(self, playlist_id: str) -> list[Song] | None:
        self._require_token()
        self.calls.append(("list_songs", playlist_id))
        entry = self.playlists.get(playlist_id)
        if entry is None or not entry[1]:
            return None
        return list(entry[1])

    def search_candidates(self, song: Song) -> list[Song]:
        self._require_token()
        self.calls.append(("search", song.title, song.artist))
        title, artist = normalize(song.title), normalize(song.artist)
        return [
            entry for entry in self.catalog
            if normalize(entry.artist) == artist or title in normalize(entry.title)
        ]

    def add_to_library(self, external_id: str, playlist_id: str | None = None) -> None:
        self._require_token()
        self.calls.append(("add", external_id, playlist_id))
        if playlist_id is None:
            self.library.append(external_id)
            return
        if playlist_id not in self.created:
            raise TransportError(f"unknown playlist {playlist_id}", self.name)
        self.created[playlist_id].track_ids.append(external_id)

    def create_and_populate_playlist(self, title: str, external_ids: list[str]) -> str:
        self._require_token()
        self.calls.append(("create_playlist", title))
        playlist_id = self._new_id()
        self.created[playlist_id] = CreatedPlaylist(title, list(external_ids))
        return playlist_id

    def create_track(self, song: Song) -> str:
        if not self.capabilities.create_tracks:
            return super().create_track(song)
        self._require_token()
        self.calls.append(("create_track", song.title))
        external_id = self._new_id()
        self.catalog.append(Song(song.title, song.artist, external_id))
        return external_id

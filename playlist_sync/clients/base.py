"""
Provider adapter contract

Every provider (real or fixed-catalogue) implements the same operations so
the registry and sync engine never see provider-specific shapes. Adapters
do not retry: transport failures surface as TransportError and the sync
engine decides whether to try again.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any

import requests

from playlist_sync.core.matching import best_match
from playlist_sync.core.models import (
    AuthError, Capabilities, MalformedResponse, Playlist, Song, Token, TransportError,
)

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 15


class ProviderAdapter(ABC):
    name: str = ""
    capabilities = Capabilities()

    def __init__(self, fuzzy: bool = True):
        self.fuzzy = fuzzy
        self._token: Token | None = None

    @property
    def token(self) -> Token | None:
        return self._token

    def restore(self, token: Token | None) -> None:
        """Use a previously persisted token without prompting the user."""
        self._token = token

    @abstractmethod
    def connect(self) -> bool: ...

    @abstractmethod
    def get_status(self) -> bool: ...

    @abstractmethod
    def disconnect(self) -> None: ...

    @abstractmethod
    def list_playlists(self) -> list[Playlist] | None: ...

    @abstractmethod
    def list_songs(self, playlist_id: str) -> list[Song] | None: ...

    @abstractmethod
    def search_candidates(self, song: Song) -> list[Song]:
        """Return catalog entries for ``song`` in the provider's ranking."""

    @abstractmethod
    def add_to_library(self, external_id: str, playlist_id: str | None = None) -> None:
        """Add a track to ``playlist_id``, or to the user's saved tracks when None."""

    @abstractmethod
    def create_and_populate_playlist(self, title: str, external_ids: list[str]) -> str: ...

    def create_track(self, song: Song) -> str:
        raise NotImplementedError(f"{self.name} cannot create catalog entries")

    def search(self, song: Song) -> str | None:
        match = best_match(song, self.search_candidates(song), fuzzy=self.fuzzy)
        if match is None:
            logger.debug(f"{self.name}: no match for {song.label}")
            return None
        return match.external_id


class RestAdapter(ProviderAdapter):
    """Adapter talking JSON over HTTP with a requests session."""

    api_base = ""

    def __init__(self, session: requests.Session | None = None, fuzzy: bool = True):
        super().__init__(fuzzy=fuzzy)
        self._session = session or requests.Session()

    def _auth(self) -> tuple[dict, dict]:
        """Return (headers, params) carrying the access token."""
        raise NotImplementedError

    def _check_body(self, data: Any) -> None:
        """Hook for providers reporting errors inside a 200 body."""

    def _require_token(self) -> None:
        if self._token is None:
            raise AuthError("not connected", self.name)

    def _request(self, method: str, path: str, params: dict | None = None,
                 json: Any = None) -> Any:
        self._require_token()
        headers, auth_params = self._auth()
        url = path if path.startswith("http") else f"{self.api_base}{path}"
        merged = dict(params or {})
        merged.update(auth_params)

        try:
            response = self._session.request(
                method, url, headers=headers, params=merged, json=json,
                timeout=REQUEST_TIMEOUT,
            )
        except requests.ConnectTimeout as e:
            raise TransportError(f"could not reach {self.name} for {method} {path}: {e}",
                                 self.name, sent=False) from e
        except requests.Timeout as e:
            raise TransportError(f"timeout on {method} {path}: {e}", self.name) from e
        except requests.RequestException as e:
            raise TransportError(f"{method} {path} failed: {e}", self.name) from e

        if response.status_code == 401:
            raise AuthError(f"token rejected on {path}", self.name)
        if response.status_code >= 400:
            logger.error(f"{self.name} HTTP {response.status_code}: {response.text[:200]}")
            raise TransportError(f"HTTP {response.status_code} on {method} {path}", self.name)
        if response.status_code == 204 or not response.content:
            return None

        try:
            data = response.json()
        except ValueError as e:
            raise MalformedResponse(f"non-JSON response on {path}", self.name) from e
        self._check_body(data)
        return data

    def _paginate(self, path: str, params: dict | None = None,
                  items_key: str = "items") -> list[dict]:
        """Follow ``next`` links, collecting every item."""
        items: list[dict] = []
        data = self._request("GET", path, params=params)
        while True:
            if not isinstance(data, dict):
                raise MalformedResponse(f"unexpected page on {path}", self.name)
            page = data.get(items_key)
            if page is None:
                break
            if not isinstance(page, list):
                raise MalformedResponse(f"'{items_key}' is not a list on {path}", self.name)
            items.extend(page)
            next_url = data.get("next")
            if not next_url:
                break
            data = self._request("GET", next_url)
        return items

    def _field(self, data: Any, *keys: str) -> Any:
        """Walk nested keys, raising MalformedResponse when one is missing."""
        current = data
        for key in keys:
            if not isinstance(current, dict) or key not in current:
                raise MalformedResponse(f"response missing '{'.'.join(keys)}'", self.name)
            current = current[key]
        return current

    def _list(self, data: Any, *keys: str) -> list:
        value = self._field(data, *keys)
        if not isinstance(value, list):
            raise MalformedResponse(f"'{'.'.join(keys)}' is not a list", self.name)
        return value

    def _count(self, value: Any) -> int:
        """Track totals; missing or null counts as zero."""
        if value is None:
            return 0
        if isinstance(value, bool) or not isinstance(value, (int, str)):
            raise MalformedResponse(f"bad track count {value!r}", self.name)
        try:
            return int(value)
        except ValueError as e:
            raise MalformedResponse(f"bad track count {value!r}", self.name) from e

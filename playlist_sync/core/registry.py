"""Configured providers and their connection state"""

import logging
from typing import Callable, Iterable

from playlist_sync.clients.base import ProviderAdapter
from playlist_sync.core.models import ConnectionStatus, ProviderConnection, ProviderError
from playlist_sync.core.token_store import TokenStore

logger = logging.getLogger(__name__)

Listener = Callable[[ProviderConnection], None]


class ProviderRegistry:
    """Owns one ProviderConnection per adapter plus the source/compare selection.

    The compare set only ever holds connected providers other than the
    selected source; dropping a connection removes it from both.
    """

    def __init__(self, adapters: Iterable[ProviderAdapter], store: TokenStore):
        self._adapters = {adapter.name: adapter for adapter in adapters}
        self._store = store
        self._connections = {name: ProviderConnection(name) for name in self._adapters}
        self._selected: str | None = None
        self._compare: list[str] = []
        self._listeners: list[Listener] = []

    @property
    def providers(self) -> list[str]:
        return list(self._adapters)

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def adapter(self, provider: str) -> ProviderAdapter:
        try:
            return self._adapters[provider]
        except KeyError:
            raise ValueError(f"Unknown provider: {provider}") from None

    def connection(self, provider: str) -> ProviderConnection:
        self.adapter(provider)
        return self._connections[provider]

    def connected_providers(self) -> list[str]:
        return [name for name, conn in self._connections.items() if conn.connected]

    def is_connected(self, provider: str) -> bool:
        return self.connection(provider).connected

    def _transition(self, provider: str, status: ConnectionStatus,
                    error: str | None = None) -> ProviderConnection:
        conn = self._connections[provider]
        conn.status = status
        conn.last_error = error
        if status is ConnectionStatus.CONNECTED:
            conn.token = self._adapters[provider].token
        elif status is ConnectionStatus.DISCONNECTED:
            conn.token = None
        if status is not ConnectionStatus.CONNECTED:
            self._drop_from_selection(provider)
        logger.info(f"{provider}: {status.value}" + (f" ({error})" if error else ""))
        for listener in self._listeners:
            listener(conn)
        return conn

    def _drop_from_selection(self, provider: str) -> None:
        if self._selected == provider:
            self._selected = None
        if provider in self._compare:
            self._compare.remove(provider)

    def restore(self) -> None:
        """Reconnect providers whose persisted token the provider still accepts."""
        for provider, adapter in self._adapters.items():
            token = self._store.get(provider)
            if token is None:
                continue
            adapter.restore(token)
            try:
                confirmed = adapter.get_status()
            except ProviderError as e:
                logger.warning(f"Could not confirm {provider} session: {e}")
                adapter.restore(None)
                continue
            if confirmed:
                self._transition(provider, ConnectionStatus.CONNECTED)
            else:
                self._store.set(provider, None)

    def connect(self, provider: str) -> ProviderConnection:
        adapter = self.adapter(provider)
        conn = self._connections[provider]
        if conn.connected:
            return conn

        self._transition(provider, ConnectionStatus.CONNECTING)
        try:
            connected = adapter.connect()
            error = None if connected else "login cancelled or failed"
        except ProviderError as e:
            connected, error = False, e.reason
        except Exception as e:
            logger.exception(f"{provider}: unexpected error while logging in")
            connected, error = False, f"{type(e).__name__}: {e}"

        if connected and adapter.token is not None:
            self._store.set(provider, adapter.token)
            return self._transition(provider, ConnectionStatus.CONNECTED)

        self._transition(provider, ConnectionStatus.ERROR, error or "no token")
        return self._transition(provider, ConnectionStatus.DISCONNECTED, error or "no token")

    def disconnect(self, provider: str) -> ProviderConnection:
        adapter = self.adapter(provider)
        try:
            adapter.disconnect()
        finally:
            self._store.set(provider, None)
        return self._transition(provider, ConnectionStatus.DISCONNECTED)

    def refresh(self, provider: str) -> ProviderConnection:
        """Re-read the adapter's login state; never optimistic."""
        adapter = self.adapter(provider)
        conn = self._connections[provider]
        try:
            confirmed = adapter.get_status()
        except ProviderError as e:
            logger.warning(f"{provider} status check failed: {e}")
            return conn
        if confirmed and not conn.connected:
            return self._transition(provider, ConnectionStatus.CONNECTED)
        if not confirmed and conn.status is not ConnectionStatus.DISCONNECTED:
            self._store.set(provider, None)
            return self._transition(provider, ConnectionStatus.DISCONNECTED)
        return conn

    @property
    def selected_provider(self) -> str | None:
        return self._selected

    def select(self, provider: str | None) -> None:
        if provider is None:
            self._selected = None
            return
        if not self.is_connected(provider):
            raise ValueError(f"{provider} is not connected")
        self._selected = provider
        if provider in self._compare:
            self._compare.remove(provider)

    @property
    def compare_providers(self) -> list[str]:
        return list(self._compare)

    def add_compare(self, provider: str) -> None:
        if not self.is_connected(provider):
            raise ValueError(f"{provider} is not connected")
        if provider == self._selected:
            raise ValueError(f"{provider} is the selected source")
        if provider not in self._compare:
            self._compare.append(provider)

    def remove_compare(self, provider: str) -> None:
        if provider in self._compare:
            self._compare.remove(provider)

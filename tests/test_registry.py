import pytest

from playlist_sync.clients.fixture import FixedCatalogAdapter
from playlist_sync.core.models import AuthError, ConnectionStatus, Token
from playlist_sync.core.registry import ProviderRegistry


class RefusingAdapter(FixedCatalogAdapter):
    def __init__(self, name, error=None):
        super().__init__(name)
        self.error = error
        self.attempts = 0

    def connect(self):
        self.attempts += 1
        if self.error is not None:
            raise self.error
        return False


class CountingAdapter(FixedCatalogAdapter):
    connects = 0

    def connect(self):
        self.connects += 1
        return super().connect()


def test_connect_persists_token(registry, store):
    conn = registry.connect("Deezer")
    assert conn.status is ConnectionStatus.CONNECTED
    assert conn.token.access_token == "deezer-fixture-token"
    assert store.get("Deezer").access_token == "deezer-fixture-token"
    assert registry.connected_providers() == ["Deezer"]


def test_connect_is_noop_when_connected(store):
    adapter = CountingAdapter("Deezer")
    registry = ProviderRegistry([adapter], store)
    registry.connect("Deezer")
    registry.connect("Deezer")
    assert adapter.connects == 1


@pytest.mark.parametrize("error", [None, AuthError("cancelled", "Deezer"), TypeError("bad profile")])
def test_failed_connect_goes_through_error(store, error):
    registry = ProviderRegistry([RefusingAdapter("Deezer", error)], store)
    seen = []
    registry.subscribe(lambda conn: seen.append(conn.status))
    conn = registry.connect("Deezer")
    assert seen == [ConnectionStatus.CONNECTING, ConnectionStatus.ERROR, ConnectionStatus.DISCONNECTED]
    assert conn.status is ConnectionStatus.DISCONNECTED
    assert conn.last_error
    assert store.get("Deezer") is None


def test_disconnect_twice_is_idempotent(registry, store):
    registry.connect("Deezer")
    first = registry.disconnect("Deezer")
    snapshot = (first.status, first.token)
    second = registry.disconnect("Deezer")
    assert (second.status, second.token) == snapshot == (ConnectionStatus.DISCONNECTED, None)
    assert store.get("Deezer") is None


def test_unknown_provider(registry):
    with pytest.raises(ValueError):
        registry.connect("Tidal")


def test_compare_set_follows_connections(connected):
    connected.select("Deezer")
    connected.add_compare("Spotify")
    assert connected.compare_providers == ["Spotify"]
    connected.disconnect("Spotify")
    assert connected.compare_providers == []
    with pytest.raises(ValueError):
        connected.add_compare("Spotify")


def test_selected_source_cannot_be_a_target(connected):
    connected.select("Deezer")
    with pytest.raises(ValueError):
        connected.add_compare("Deezer")


def test_selecting_a_compare_provider_moves_it(connected):
    connected.select("Deezer")
    connected.add_compare("Spotify")
    connected.select("Spotify")
    assert connected.selected_provider == "Spotify"
    assert connected.compare_providers == []


def test_disconnecting_selected_source_clears_selection(connected):
    connected.select("Deezer")
    connected.disconnect("Deezer")
    assert connected.selected_provider is None


def test_cannot_select_disconnected(registry):
    with pytest.raises(ValueError):
        registry.select("Deezer")


def test_restore_from_persisted_token(deezer, spotify, store):
    store.set("Deezer", Token("Deezer", "saved"))
    registry = ProviderRegistry([deezer, spotify], store)
    registry.restore()
    assert registry.is_connected("Deezer")
    assert not registry.is_connected("Spotify")
    assert deezer.token.access_token == "saved"


def test_restore_drops_rejected_token(store):
    class Rejecting(FixedCatalogAdapter):
        def get_status(self):
            return False

    store.set("Deezer", Token("Deezer", "stale"))
    registry = ProviderRegistry([Rejecting("Deezer")], store)
    registry.restore()
    assert not registry.is_connected("Deezer")
    assert store.get("Deezer") is None


def test_refresh_reflects_lost_session(connected, deezer, store):
    connected.add_compare("Deezer")
    deezer.restore(None)
    conn = connected.refresh("Deezer")
    assert conn.status is ConnectionStatus.DISCONNECTED
    assert connected.compare_providers == []
    assert store.get("Deezer") is None

import pytest

from playlist_sync.clients.deezer import DeezerAdapter
from playlist_sync.core.models import AuthError, MalformedResponse, Song, Token, TransportError


@pytest.fixture
def adapter(session, fake_login):
    adapter = DeezerAdapter("app-id", fake_login(), session=session)
    adapter.restore(Token("Deezer", "tok"))
    return adapter


def call_args(session, index=0):
    args, kwargs = session.request.call_args_list[index]
    return args[0], args[1], kwargs


def track(track_id, title, artist):
    return {"id": track_id, "title": title, "artist": {"name": artist}}


def test_token_sent_as_query_parameter(adapter, session, make_response):
    session.request.return_value = make_response({"id": 42})
    assert adapter.get_status()
    method, url, kwargs = call_args(session)
    assert (method, url) == ("GET", "https://api.deezer.com/user/me")
    assert kwargs["params"]["access_token"] == "tok"
    session.cookies.clear.assert_called_once()


def test_oauth_error_in_body_means_disconnected(adapter, session, make_response):
    session.request.return_value = make_response(
        {"error": {"type": "OAuthException", "message": "Invalid OAuth access token.", "code": 300}})
    assert adapter.get_status() is False
    assert adapter.token is None


def test_other_error_in_body_is_transport_error(adapter, session, make_response):
    session.request.return_value = make_response(
        {"error": {"type": "Exception", "message": "Quota limit exceeded", "code": 4}})
    with pytest.raises(TransportError):
        adapter.list_playlists()


def test_list_playlists(adapter, session, make_response):
    session.request.return_value = make_response(
        {"data": [{"id": 1, "title": "Favorites", "nb_tracks": 5}], "total": 1})
    playlists = adapter.list_playlists()
    assert [(p.provider, p.external_id, p.title, p.track_count) for p in playlists] == [
        ("Deezer", "1", "Favorites", 5)]


def test_error_given_as_string_is_transport_error(adapter, session, make_response):
    session.request.return_value = make_response({"error": "Quota limit exceeded"})
    with pytest.raises(TransportError) as excinfo:
        adapter.list_playlists()
    assert "Quota limit exceeded" in str(excinfo.value)


def test_null_track_count_counts_as_zero(adapter, session, make_response):
    session.request.return_value = make_response(
        {"data": [{"id": 1, "title": "Favorites", "nb_tracks": None}], "total": 1})
    assert adapter.list_playlists()[0].track_count == 0


def test_null_search_data_is_malformed(adapter, session, make_response):
    session.request.return_value = make_response({"data": None})
    with pytest.raises(MalformedResponse):
        adapter.search(Song("Take that", "The Beatles"))


def test_list_songs_follows_pages(adapter, session, make_response):
    session.request.side_effect = [
        make_response({"data": [track(9, "I love you", "Johnny Halliday")],
                       "next": "https://api.deezer.com/playlist/1/tracks?index=1"}),
        make_response({"data": [track(7, "Take that", "The Beatles")]}),
    ]
    assert adapter.list_songs("1") == [
        Song("I love you", "Johnny Halliday", "9"),
        Song("Take that", "The Beatles", "7"),
    ]
    _, url, kwargs = call_args(session, 1)
    assert url == "https://api.deezer.com/playlist/1/tracks?index=1"
    assert kwargs["params"]["access_token"] == "tok"


def test_unknown_playlist_has_no_songs(adapter, session, make_response):
    session.request.return_value = make_response(
        {"error": {"type": "DataException", "message": "no data", "code": 800}})
    assert adapter.list_songs("404") is None


def test_empty_playlist_has_no_songs(adapter, session, make_response):
    session.request.return_value = make_response({"data": [], "total": 0})
    assert adapter.list_songs("1") is None


def test_search_strict_query(adapter, session, make_response):
    session.request.return_value = make_response({"data": [
        track(1, "I Love You (Remastered)", "Johnny Halliday"),
        track(2, "I Love You", "Johnny Halliday"),
    ]})
    assert adapter.search(Song("I love you", "Johnny Halliday")) == "2"
    _, url, kwargs = call_args(session)
    assert url == "https://api.deezer.com/search/track"
    assert kwargs["params"]["strict"] == "on"
    assert kwargs["params"]["q"] == 'artist:"Johnny Halliday" track:"I love you"'


def test_search_result_missing_artist(adapter, session, make_response):
    session.request.return_value = make_response({"data": [{"id": 1, "title": "I love you"}]})
    with pytest.raises(TransportError):
        adapter.search(Song("I love you", "Johnny Halliday"))


def test_library_mutations(adapter, session, make_response):
    session.request.return_value = make_response(True)
    adapter.add_to_library("9")
    adapter.add_to_library("9", "55")
    method, url, kwargs = call_args(session, 0)
    assert (method, url, kwargs["params"]["track_id"]) == ("POST", "https://api.deezer.com/user/me/tracks", "9")
    method, url, kwargs = call_args(session, 1)
    assert (method, url, kwargs["params"]["songs"]) == ("POST", "https://api.deezer.com/playlist/55/tracks", "9")


def test_create_and_populate_playlist(adapter, session, make_response):
    session.request.side_effect = [make_response({"id": 55}), make_response(True)]
    assert adapter.create_and_populate_playlist("Road trip", ["9", "7"]) == "55"
    _, _, kwargs = call_args(session, 0)
    assert kwargs["params"]["title"] == "Road trip"
    _, _, kwargs = call_args(session, 1)
    assert kwargs["params"]["songs"] == "9,7"


def test_connect_captures_redirect_and_clears_address(session, make_response, fake_login):
    login = fake_login(redirect_url="http://localhost:8888/callback?service=Deezer#access_token=dz&expires=3600")
    adapter = DeezerAdapter("app-id", login, session=session)
    session.request.return_value = make_response({"id": 42})

    assert adapter.connect()
    assert adapter.token.access_token == "dz"
    assert login.address_cleared
    assert "perms=basic_access%2Cmanage_library" in login.opened[0]


def test_connect_cancelled(session, fake_login):
    adapter = DeezerAdapter("app-id", fake_login(), session=session)
    assert adapter.connect() is False
    assert adapter.token is None


def test_connect_without_token_in_redirect(session, fake_login):
    login = fake_login(redirect_url="http://localhost:8888/callback?service=Deezer&error_reason=user_denied")
    adapter = DeezerAdapter("app-id", login, session=session)
    assert adapter.connect() is False
    assert not login.address_cleared


def test_not_connected_raises(session, fake_login):
    with pytest.raises(AuthError):
        DeezerAdapter("app-id", fake_login(), session=session).list_playlists()

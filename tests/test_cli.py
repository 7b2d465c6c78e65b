import json

import pytest
from click.testing import CliRunner

from playlist_sync.sync import cli


@pytest.fixture
def env(tmp_path):
    return {"PLAYLIST_SYNC_LOCAL": "1", "PLAYLIST_SYNC_DATA_DIR": str(tmp_path)}


@pytest.fixture
def run(env):
    runner = CliRunner()

    def _run(*args):
        return runner.invoke(cli, list(args), env=env)
    return _run


def test_connect_persists_between_runs(run):
    assert "Deezer: disconnected" in run("status").output
    result = run("connect", "deezer")
    assert result.exit_code == 0
    assert "Deezer: connected" in result.output
    assert "Deezer: connected" in run("status").output


def test_playlists_and_songs(run):
    run("connect", "Deezer")
    result = run("playlists", "Deezer")
    assert result.exit_code == 0
    assert "Favorites (5 tracks)" in result.output
    result = run("songs", "Deezer", "1")
    assert "I love you - Johnny Halliday" in result.output


def test_requires_connection(run):
    result = run("playlists", "Deezer")
    assert result.exit_code == 1
    assert "not connected" in result.output


def test_unknown_provider_is_usage_error(run):
    assert run("connect", "Tidal").exit_code == 2


def test_sync_writes_breakdown(run, tmp_path):
    run("connect", "Deezer")
    run("connect", "Spotify")

    result = run("sync", "Deezer", "1", "--to", "Spotify")

    assert result.exit_code == 0, result.output
    assert "Spotify: 3 transferred, 2 unmatched, 0 errors" in result.output
    status = json.loads((tmp_path / "last_sync.json").read_text())
    assert status["status"] == "completed"
    assert status["source"]["title"] == "Favorites"
    assert status["targets"]["Spotify"]["unmatched"] == 2
    kinds = [song["outcomes"]["Spotify"]["kind"] for song in status["songs"]]
    assert kinds == ["matched", "matched", "unmatched", "matched", "unmatched"]


def test_sync_target_must_be_connected(run):
    run("connect", "Deezer")
    result = run("sync", "Deezer", "1", "--to", "Spotify")
    assert result.exit_code == 1
    assert "Spotify is not connected" in result.output


def test_sync_empty_source_fails(run, tmp_path):
    run("connect", "Deezer")
    run("connect", "Spotify")
    result = run("sync", "Deezer", "missing", "--to", "Spotify")
    assert result.exit_code == 1
    assert "EmptySource" in result.output
    assert json.loads((tmp_path / "last_sync.json").read_text())["status"] == "failed"


def test_capture_stores_redirect_token(run, tmp_path):
    result = run("capture", "http://localhost:8888/callback?service=Deezer#access_token=abc&expires=0")
    assert result.exit_code == 0
    assert "Stored token for Deezer" in result.output
    tokens = json.loads((tmp_path / "tokens.json").read_text())
    assert tokens["Deezer"]["access_token"] == "abc"


def test_capturing_same_token_twice_succeeds(run):
    url = "http://localhost:8888/callback?service=Deezer#access_token=abc&expires=0"
    assert run("capture", url).exit_code == 0
    result = run("capture", url)
    assert result.exit_code == 0
    assert "Stored token for Deezer" in result.output


def test_capture_without_token(run):
    result = run("capture", "http://localhost:8888/callback?service=Deezer")
    assert result.exit_code == 1


def test_disconnect(run):
    run("connect", "Deezer")
    assert run("disconnect", "Deezer").exit_code == 0
    assert "Deezer: disconnected" in run("status").output

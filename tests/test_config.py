from pathlib import Path

from playlist_sync.config import DEFAULT_DATA_DIR, load_config


def test_defaults():
    config = load_config({})
    assert config.data_dir == DEFAULT_DATA_DIR
    assert config.configured_providers() == []
    assert config.transfer_mode == "playlist"
    assert config.fuzzy_match is True
    assert config.call_timeout == 20.0
    assert config.max_retries == 3


def test_providers_follow_credentials(tmp_path):
    config = load_config({"DEEZER_APP_ID": "123", "PLAYLIST_SYNC_DATA_DIR": str(tmp_path)})
    assert config.configured_providers() == ["Deezer"]
    assert config.token_file == Path(tmp_path) / "tokens.json"


def test_local_mode_enables_every_provider():
    assert load_config({"PLAYLIST_SYNC_LOCAL": "true"}).configured_providers() == ["Spotify", "Deezer"]


def test_invalid_values_fall_back():
    config = load_config({
        "SYNC_CALL_TIMEOUT": "soon",
        "SYNC_MAX_RETRIES": "0",
        "SYNC_TRANSFER_MODE": "mirror",
        "SYNC_FUZZY_MATCH": "off",
        "LOG_LEVEL": "debug",
    })
    assert config.call_timeout == 20.0
    assert config.max_retries == 1
    assert config.transfer_mode == "playlist"
    assert config.fuzzy_match is False
    assert config.log_level == "DEBUG"

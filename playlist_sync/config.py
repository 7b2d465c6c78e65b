"""Environment-driven configuration"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

SPOTIFY = "Spotify"
DEEZER = "Deezer"
PROVIDERS = (SPOTIFY, DEEZER)

DEFAULT_DATA_DIR = Path.home() / ".config" / "playlist_sync"
DEFAULT_REDIRECT_URI = "http://localhost:8888/callback"

TRANSFER_PLAYLIST = "playlist"
TRANSFER_LIBRARY = "library"

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass
class Config:
    data_dir: Path = DEFAULT_DATA_DIR
    spotify_client_id: str | None = None
    deezer_app_id: str | None = None
    redirect_uri: str = DEFAULT_REDIRECT_URI
    local: bool = False
    call_timeout: float = 20.0
    max_retries: int = 3
    retry_backoff: float = 1.0
    fuzzy_match: bool = True
    transfer_mode: str = TRANSFER_PLAYLIST
    chromium_path: str | None = None
    log_level: str = "INFO"

    @property
    def token_file(self) -> Path:
        return self.data_dir / "tokens.json"

    @property
    def status_file(self) -> Path:
        return self.data_dir / "last_sync.json"

    @property
    def log_file(self) -> Path:
        return self.data_dir / "playlist_sync.log"

    def configured_providers(self) -> list[str]:
        if self.local:
            return list(PROVIDERS)
        configured = []
        if self.spotify_client_id:
            configured.append(SPOTIFY)
        if self.deezer_app_id:
            configured.append(DEEZER)
        return configured


def _flag(value: str | None, default: bool) -> bool:
    if value is None or value == "":
        return default
    return value.strip().lower() in _TRUTHY


def _number(env: dict, name: str, default, cast):
    raw = env.get(name)
    if not raw:
        return default
    try:
        return cast(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid {name}={raw!r}, using {default}")
        return default


def load_config(env: dict | None = None) -> Config:
    env = os.environ if env is None else env

    transfer_mode = env.get("SYNC_TRANSFER_MODE", TRANSFER_PLAYLIST).strip().lower()
    if transfer_mode not in (TRANSFER_PLAYLIST, TRANSFER_LIBRARY):
        logger.warning(f"Unknown SYNC_TRANSFER_MODE={transfer_mode!r}, using {TRANSFER_PLAYLIST}")
        transfer_mode = TRANSFER_PLAYLIST

    data_dir = env.get("PLAYLIST_SYNC_DATA_DIR")

    return Config(
        data_dir=Path(data_dir).expanduser() if data_dir else DEFAULT_DATA_DIR,
        spotify_client_id=env.get("SPOTIFY_CLIENT_ID") or None,
        deezer_app_id=env.get("DEEZER_APP_ID") or None,
        redirect_uri=env.get("PLAYLIST_SYNC_REDIRECT_URI") or DEFAULT_REDIRECT_URI,
        local=_flag(env.get("PLAYLIST_SYNC_LOCAL"), False),
        call_timeout=_number(env, "SYNC_CALL_TIMEOUT", 20.0, float),
        max_retries=max(1, _number(env, "SYNC_MAX_RETRIES", 3, int)),
        retry_backoff=_number(env, "SYNC_RETRY_BACKOFF", 1.0, float),
        fuzzy_match=_flag(env.get("SYNC_FUZZY_MATCH"), True),
        transfer_mode=transfer_mode,
        chromium_path=env.get("CHROMIUM_PATH") or None,
        log_level=env.get("LOG_LEVEL", "INFO").upper(),
    )

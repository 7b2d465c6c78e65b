"""OAuth token store backed by a single JSON file"""

import json
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Protocol
from urllib.parse import parse_qsl, urlsplit

from playlist_sync.core.models import StorageCorruption, Token

logger = logging.getLogger(__name__)

# Deezer names the lifetime "expires" instead of "expires_in"
_LIFETIME_KEYS = ("expires_in", "expires")


class AddressBar(Protocol):
    def clear_redirect(self) -> None: ...


def _parse_params(part: str) -> dict[str, str]:
    part = part.lstrip("?#")
    if not part:
        return {}
    return dict(parse_qsl(part, keep_blank_values=True))


def parse_redirect(url: str) -> tuple[str, str]:
    """Split a full redirect URL into its query and fragment strings."""
    parts = urlsplit(url)
    return parts.query, parts.fragment


def token_from_redirect(search: str, fragment: str,
                        now: float | None = None) -> Token | None:
    """Build a Token from a redirect's query and fragment, or None if malformed."""
    query = _parse_params(search)
    provider = query.get("service")
    if not provider:
        return None

    params = _parse_params(fragment)
    access_token = params.get("access_token")
    if not access_token:
        return None

    expires_at = None
    for key in _LIFETIME_KEYS:
        if key in params:
            try:
                lifetime = int(params[key])
            except ValueError:
                return None
            # Deezer uses 0 for tokens that never expire
            if lifetime > 0:
                expires_at = (time.time() if now is None else now) + lifetime
            break

    extra = {k: v for k, v in params.items() if k not in ("access_token", "token_type")}
    return Token(
        provider=provider,
        access_token=access_token,
        token_type=params.get("token_type") or "Bearer",
        expires_at=expires_at,
        extra=extra,
    )


class TokenStore:
    def __init__(self, token_file: Path):
        self._file = token_file

    def _read_raw(self) -> dict:
        if not self._file.exists():
            return {}
        try:
            data = json.loads(self._file.read_text(encoding="utf-8") or "{}")
        except (OSError, ValueError) as e:
            raise StorageCorruption(f"Unreadable token file: {e}") from e
        if not isinstance(data, dict):
            raise StorageCorruption("Token file does not hold an object")
        return data

    def _read(self) -> dict[str, dict]:
        try:
            data = self._read_raw()
        except StorageCorruption as e:
            logger.warning(f"{e}; treating as no tokens")
            return {}
        return {k: v for k, v in data.items() if isinstance(v, dict)}

    def _write(self, data: dict[str, dict]) -> None:
        self._file.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(dir=self._file.parent, prefix=".tokens_", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(temp_path, self._file)
        except Exception:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise

    def _tokens(self, data: dict[str, dict]) -> dict[str, Token]:
        tokens = {}
        for provider, value in data.items():
            try:
                tokens[provider] = Token.from_dict(provider, value)
            except (ValueError, TypeError) as e:
                logger.warning(f"Skipping unreadable token for {provider}: {e}")
        return tokens

    def _live(self, data: dict[str, dict]) -> dict[str, Token]:
        return {p: t for p, t in self._tokens(data).items() if not t.expired}

    def all(self) -> dict[str, Token]:
        """Tokens still usable; expired ones are removed from the file."""
        data = self._read()
        expired = [p for p, t in self._tokens(data).items() if t.expired]
        if expired:
            for provider in expired:
                logger.info(f"{provider} token expired, removing")
                del data[provider]
            self._write(data)
        return self._live(data)

    def get(self, provider: str) -> Token | None:
        return self.all().get(provider)

    def set(self, provider: str, token: Token | None) -> dict[str, Token]:
        # Re-read right before merging so a token captured for another
        # provider in the meantime is kept.
        data = self._read()
        if token is not None:
            data[provider] = token.to_dict()
            logger.info(f"Stored {provider} token")
        elif provider in data:
            del data[provider]
            logger.info(f"Removed {provider} token")
        else:
            return self._live(data)
        self._write(data)
        return self._live(data)

    def capture_from_redirect(self, search: str, fragment: str,
                              address: AddressBar | None = None) -> dict[str, Token]:
        """Persist a token delivered through an OAuth redirect.

        ``search`` must carry ``service=<Provider>`` and ``fragment`` the
        ``access_token``/``token_type``/``expires_in`` parameters. When
        either is missing or malformed the persisted set is returned
        unchanged. On success the redirect is cleared from ``address`` so
        it is not captured twice.
        """
        token = token_from_redirect(search, fragment)
        if token is None:
            return self.all()

        tokens = self.set(token.provider, token)
        logger.info(f"Captured {token.provider} token from redirect")
        if address is not None:
            address.clear_redirect()
        return tokens

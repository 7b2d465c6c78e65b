"""Data models for providers and sync operations."""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class ProviderError(Exception):
    """Base error for anything a provider adapter reports."""

    def __init__(self, message: str, provider: str = ""):
        super().__init__(message)
        self.provider = provider

    @property
    def reason(self) -> str:
        prefix = f"{self.provider}: " if self.provider else ""
        return f"{prefix}{self}"


class AuthError(ProviderError):
    """Login failed, was cancelled, or the token was rejected."""
    pass


class TransportError(ProviderError):
    """Network or HTTP failure talking to a provider.

    ``sent`` is False when the request never reached the provider, so a
    mutation can safely be sent again.
    """

    def __init__(self, message: str, provider: str = "", sent: bool = True):
        super().__init__(message, provider)
        self.sent = sent


class MalformedResponse(TransportError):
    """Provider answered with an unexpected shape."""
    pass


class StorageCorruption(Exception):
    """Persisted token state could not be read."""
    pass


class SyncCancelled(Exception):
    """Raised inside the engine when the user cancels a job."""
    pass


class ConnectionStatus(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


class JobState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    MATCHING = "matching"
    TRANSFERRING = "transferring"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (JobState.COMPLETED, JobState.FAILED)


class OutcomeKind(str, Enum):
    MATCHED = "matched"
    CREATED = "created"
    UNMATCHED = "unmatched"
    ERROR = "error"


EMPTY_SOURCE = "EmptySource"
TIMEOUT = "Timeout"
CANCELLED = "Cancelled"


@dataclass(frozen=True)
class Token:
    """An OAuth access token for one provider."""
    provider: str
    access_token: str
    token_type: str = "Bearer"
    expires_at: Optional[float] = None
    extra: Dict[str, str] = field(default_factory=dict, compare=False)

    @property
    def expired(self) -> bool:
        return self.expires_at is not None and time.time() >= self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = dict(self.extra)
        data["access_token"] = self.access_token
        data["token_type"] = self.token_type
        if self.expires_at is not None:
            data["expires_at"] = self.expires_at
        return data

    @classmethod
    def from_dict(cls, provider: str, data: Dict[str, Any]) -> "Token":
        access_token = data.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise ValueError(f"token for {provider} has no access_token")
        expires_at = data.get("expires_at")
        extra = {k: str(v) for k, v in data.items()
                 if k not in ("access_token", "token_type", "expires_at")}
        return cls(
            provider=provider,
            access_token=access_token,
            token_type=data.get("token_type") or "Bearer",
            expires_at=float(expires_at) if expires_at is not None else None,
            extra=extra,
        )


@dataclass
class ProviderConnection:
    provider: str
    status: ConnectionStatus = ConnectionStatus.DISCONNECTED
    token: Optional[Token] = None
    last_error: Optional[str] = None

    @property
    def connected(self) -> bool:
        return self.status is ConnectionStatus.CONNECTED


@dataclass(frozen=True)
class Playlist:
    """A read-only snapshot of a provider playlist."""
    provider: str
    external_id: str
    title: str
    track_count: int = 0


@dataclass(frozen=True)
class Song:
    """A track as seen on one provider."""
    title: str
    artist: str
    external_id: Optional[str] = None

    @property
    def label(self) -> str:
        return f"{self.title} by {self.artist}"


@dataclass(frozen=True)
class Capabilities:
    create_playlist: bool = True
    add_to_library: bool = True
    create_tracks: bool = False


@dataclass(frozen=True)
class SyncOutcome:
    """Result for one song on one target."""
    kind: OutcomeKind
    external_id: Optional[str] = None
    reason: Optional[str] = None

    @classmethod
    def matched(cls, external_id: str) -> "SyncOutcome":
        return cls(OutcomeKind.MATCHED, external_id=external_id)

    @classmethod
    def created(cls, external_id: str) -> "SyncOutcome":
        return cls(OutcomeKind.CREATED, external_id=external_id)

    @classmethod
    def unmatched(cls) -> "SyncOutcome":
        return cls(OutcomeKind.UNMATCHED)

    @classmethod
    def error(cls, reason: str) -> "SyncOutcome":
        return cls(OutcomeKind.ERROR, reason=reason)

    @property
    def transferable(self) -> bool:
        return self.kind in (OutcomeKind.MATCHED, OutcomeKind.CREATED)


@dataclass
class TargetSummary:
    """Counts of per-song outcomes for one target."""
    provider: str
    matched: int = 0
    created: int = 0
    unmatched: int = 0
    errors: int = 0
    playlist_id: Optional[str] = None

    @property
    def succeeded(self) -> int:
        return self.matched + self.created


@dataclass
class SyncResult:
    """Result of a finished sync job."""
    success: bool
    state: JobState
    targets: List[TargetSummary]
    errors: List[str]
    source_count: int
    duration: float
    reason: Optional[str] = None

    @classmethod
    def failure(cls, error: str, duration: float = 0.0) -> "SyncResult":
        """Create a failure result with single error."""
        return cls(
            success=False,
            state=JobState.FAILED,
            targets=[],
            errors=[error],
            source_count=0,
            duration=duration,
            reason=error,
        )

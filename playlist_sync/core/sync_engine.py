"""
Sync Engine

Transfers one source playlist into one or more target providers.

Job lifecycle
-------------
    IDLE -> FETCHING -> MATCHING -> TRANSFERRING -> COMPLETED
                 |           |
                 +-----------+--> FAILED

1. FETCHING: read the source songs. Nothing returned ends the job as
   FAILED (EmptySource) before any target is touched.
2. MATCHING: search every song on every target. Targets run concurrently,
   songs within a target run one after another in source order. A miss is
   UNMATCHED, a failed call is ERROR; neither stops the job.
3. TRANSFERRING: create the target playlist (or use the library) and add
   the matched songs in source order. A failed add downgrades the song to
   ERROR. Targets that can create catalog entries get one for every
   unmatched song first.
4. COMPLETED: every song has an outcome on every target. Partial success
   is still COMPLETED.

Cancellation is honoured until transfers start. Every provider call is
bounded by a timeout and transport failures are retried with exponential
backoff; adapters never retry on their own. Each provider gets its own call
pool so threads left behind by one hung provider never delay another.
Mutations are only sent again when the failed attempt never reached the
provider.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from typing import Callable, TypeVar

from playlist_sync.clients.base import ProviderAdapter
from playlist_sync.config import TRANSFER_LIBRARY, TRANSFER_PLAYLIST
from playlist_sync.core.models import (
    CANCELLED, EMPTY_SOURCE, TIMEOUT, AuthError, JobState, OutcomeKind, Playlist,
    ProviderError, Song, SyncCancelled, SyncOutcome, SyncResult, TargetSummary,
    TransportError,
)
from playlist_sync.core.registry import ProviderRegistry

logger = logging.getLogger(__name__)

T = TypeVar("T")

_CANCELLABLE = (JobState.IDLE, JobState.FETCHING, JobState.MATCHING)


class CallFailed(Exception):
    """A provider call failed for good; ``reason`` goes into the outcome."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class SyncJob:
    """State of one sync run. Owned by the engine while it runs."""

    def __init__(self, source: Playlist, targets: list[str]):
        self.source = source
        self.targets = list(targets)
        self.songs: list[Song] = []
        self.state = JobState.IDLE
        self.reason: str | None = None
        self.created_playlists: dict[str, str] = {}
        self._results: dict[str, list[SyncOutcome | None]] = {t: [] for t in self.targets}
        self._lock = threading.Lock()
        self._cancelled = threading.Event()

    @property
    def cancel_requested(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> bool:
        """Request cancellation. Refused once transfers have started."""
        with self._lock:
            if self.state not in _CANCELLABLE:
                return False
            self._cancelled.set()
            return True

    def _enter(self, state: JobState) -> None:
        with self._lock:
            if self._cancelled.is_set() and state is not JobState.FAILED:
                raise SyncCancelled()
            self.state = state

    def _set_songs(self, songs: list[Song]) -> None:
        self.songs = list(songs)
        self._results = {t: [None] * len(self.songs) for t in self.targets}

    def record(self, target: str, index: int, outcome: SyncOutcome) -> None:
        with self._lock:
            self._results[target][index] = outcome

    def outcome(self, target: str, index: int) -> SyncOutcome | None:
        return self._results[target][index]

    def outcomes(self, target: str) -> list[SyncOutcome | None]:
        return list(self._results[target])

    def per_song_results(self) -> list[tuple[Song, dict[str, SyncOutcome | None]]]:
        return [
            (song, {t: self._results[t][i] for t in self.targets})
            for i, song in enumerate(self.songs)
        ]

    @property
    def progress(self) -> tuple[int, int]:
        """(outcomes recorded, outcomes expected) across all targets."""
        done = sum(1 for t in self.targets for o in self._results[t] if o is not None)
        return done, len(self.songs) * len(self.targets)

    def summary(self, target: str) -> TargetSummary:
        summary = TargetSummary(provider=target, playlist_id=self.created_playlists.get(target))
        for outcome in self._results[target]:
            if outcome is None:
                continue
            if outcome.kind is OutcomeKind.MATCHED:
                summary.matched += 1
            elif outcome.kind is OutcomeKind.CREATED:
                summary.created += 1
            elif outcome.kind is OutcomeKind.UNMATCHED:
                summary.unmatched += 1
            else:
                summary.errors += 1
        return summary


class SyncEngine:
    """Runs sync jobs against the adapters held by a ProviderRegistry."""

    def __init__(self, registry: ProviderRegistry, call_timeout: float = 20.0,
                 max_retries: int = 3, retry_backoff: float = 1.0,
                 transfer_mode: str = TRANSFER_PLAYLIST,
                 on_progress: Callable[[SyncJob], None] | None = None,
                 sleep: Callable[[float], None] = time.sleep):
        if transfer_mode not in (TRANSFER_PLAYLIST, TRANSFER_LIBRARY):
            raise ValueError(f"Unknown transfer mode: {transfer_mode}")
        self._registry = registry
        self._call_timeout = call_timeout
        self._max_retries = max(1, max_retries)
        self._retry_backoff = retry_backoff
        self._transfer_mode = transfer_mode
        self._on_progress = on_progress
        self._sleep = sleep
        self._calls: dict[str, ThreadPoolExecutor] = {}
        self._calls_lock = threading.Lock()

    def create_job(self, source: Playlist, targets: list[str]) -> SyncJob:
        if not self._registry.is_connected(source.provider):
            raise ValueError(f"{source.provider} is not connected")
        unique = list(dict.fromkeys(targets))
        if not unique:
            raise ValueError("No target provider given")
        for target in unique:
            if target == source.provider:
                raise ValueError(f"{target} is the source provider")
            if not self._registry.is_connected(target):
                raise ValueError(f"{target} is not connected")
        return SyncJob(source, unique)

    def sync(self, source: Playlist, targets: list[str]) -> SyncResult:
        return self.run(self.create_job(source, targets))

    def _notify(self, job: SyncJob) -> None:
        if self._on_progress is not None:
            self._on_progress(job)

    def _record(self, job: SyncJob, target: str, index: int, outcome: SyncOutcome) -> None:
        job.record(target, index, outcome)
        self._notify(job)

    def _pool(self, provider: str) -> ThreadPoolExecutor:
        with self._calls_lock:
            pool = self._calls.get(provider)
            if pool is None:
                # Room for the abandoned attempts of one call plus the next call
                pool = ThreadPoolExecutor(max_workers=self._max_retries + 1,
                                          thread_name_prefix=f"sync-{provider.lower()}")
                self._calls[provider] = pool
            return pool

    def _shutdown_pools(self) -> None:
        with self._calls_lock:
            pools, self._calls = list(self._calls.values()), {}
        for pool in pools:
            pool.shutdown(wait=False, cancel_futures=True)

    def _call(self, provider: str, name: str, operation: Callable[[], T],
              mutation: bool = False) -> T:
        """Run one provider call with a time bound and retries.

        A mutation that timed out or failed after reaching the provider may
        still have been applied, so it is never sent twice.
        """
        last_reason = ""
        for attempt in range(self._max_retries):
            future = self._pool(provider).submit(operation)
            try:
                return future.result(timeout=self._call_timeout)
            except FutureTimeout:
                # A running call cannot be interrupted; its result is simply ignored
                started = not future.cancel()
                logger.warning(f"{provider}: {name} timed out after {self._call_timeout}s")
                if mutation and started:
                    raise CallFailed(TIMEOUT)
                last_reason = TIMEOUT
            except AuthError as e:
                raise CallFailed(e.reason)
            except TransportError as e:
                logger.warning(f"{provider}: {name} failed: {e}")
                if mutation and e.sent:
                    raise CallFailed(e.reason)
                last_reason = e.reason
            except ProviderError as e:
                raise CallFailed(e.reason)
            except Exception as e:
                logger.error(f"{provider}: {name} raised {type(e).__name__}: {e}")
                raise CallFailed(f"{provider}: {type(e).__name__}: {e}")

            if attempt < self._max_retries - 1:
                wait = self._retry_backoff * (2 ** attempt)
                logger.warning(f"{provider}: retrying {name} in {wait:.1f}s...")
                self._sleep(wait)

        raise CallFailed(last_reason or f"{provider}: {name} failed")

    def _fetch(self, job: SyncJob) -> None:
        job._enter(JobState.FETCHING)
        self._notify(job)
        source = self._registry.adapter(job.source.provider)
        songs = self._call(source.name, f"list songs of {job.source.external_id}",
                           lambda: source.list_songs(job.source.external_id))
        if not songs:
            raise CallFailed(EMPTY_SOURCE)
        job._set_songs(songs)
        logger.info(f"{source.name}: {len(songs)} songs in '{job.source.title}'")

    def _match_target(self, job: SyncJob, target: str) -> None:
        adapter = self._registry.adapter(target)
        for index, song in enumerate(job.songs):
            if job.cancel_requested:
                raise SyncCancelled()
            try:
                external_id = self._call(target, f"search {song.label}",
                                         lambda s=song: adapter.search(s))
            except CallFailed as e:
                outcome = SyncOutcome.error(e.reason)
            else:
                outcome = SyncOutcome.matched(external_id) if external_id else SyncOutcome.unmatched()
            self._record(job, target, index, outcome)

    def _create_missing(self, job: SyncJob, target: str, adapter: ProviderAdapter) -> None:
        for index, song in enumerate(job.songs):
            if job.outcome(target, index).kind is not OutcomeKind.UNMATCHED:
                continue
            try:
                external_id = self._call(target, f"create {song.label}",
                                         lambda s=song: adapter.create_track(s),
                                         mutation=True)
            except CallFailed as e:
                self._record(job, target, index, SyncOutcome.error(e.reason))
            else:
                self._record(job, target, index, SyncOutcome.created(external_id))

    def _transfer_target(self, job: SyncJob, target: str) -> None:
        adapter = self._registry.adapter(target)
        if adapter.capabilities.create_tracks:
            self._create_missing(job, target, adapter)

        pending = [i for i, o in enumerate(job.outcomes(target)) if o.transferable]
        if not pending:
            logger.info(f"{target}: nothing to transfer")
            return

        playlist_id = None
        if self._transfer_mode == TRANSFER_PLAYLIST and adapter.capabilities.create_playlist:
            try:
                playlist_id = self._call(target, f"create playlist '{job.source.title}'",
                                         lambda: adapter.create_and_populate_playlist(job.source.title, []),
                                         mutation=True)
            except CallFailed as e:
                for index in pending:
                    self._record(job, target, index,
                                 SyncOutcome.error(f"playlist creation failed: {e.reason}"))
                return
            job.created_playlists[target] = playlist_id

        for index in pending:
            outcome = job.outcome(target, index)
            try:
                self._call(target, f"add {job.songs[index].label}",
                           lambda ext=outcome.external_id: adapter.add_to_library(ext, playlist_id),
                           mutation=True)
            except CallFailed as e:
                self._record(job, target, index, SyncOutcome.error(e.reason))
            else:
                logger.debug(f"{target}: added {job.songs[index].label}")

    def _for_each_target(self, job: SyncJob, step: Callable[[SyncJob, str], None]) -> None:
        with ThreadPoolExecutor(max_workers=len(job.targets),
                                thread_name_prefix="sync-target") as pool:
            futures = [pool.submit(step, job, target) for target in job.targets]
            for future in futures:
                future.result()

    def _finish(self, job: SyncJob, start: float) -> SyncResult:
        duration = time.time() - start
        if job.state is JobState.FAILED:
            logger.warning(f"Sync failed after {duration:.1f}s: {job.reason}")
            return SyncResult.failure(job.reason, duration=duration)

        summaries = [job.summary(target) for target in job.targets]
        errors = [
            f"{target}: {song.label}: {outcome.reason}"
            for song, outcomes in job.per_song_results()
            for target, outcome in outcomes.items()
            if outcome is not None and outcome.kind is OutcomeKind.ERROR
        ]
        for s in summaries:
            logger.info(f"{s.provider}: {s.matched} matched, {s.created} created, "
                        f"{s.unmatched} unmatched, {s.errors} errors")
        logger.info(f"Completed in {duration:.1f}s")
        logger.info("=" * 50)
        return SyncResult(
            success=True,
            state=JobState.COMPLETED,
            targets=summaries,
            errors=errors,
            source_count=len(job.songs),
            duration=duration,
        )

    def _fail(self, job: SyncJob, reason: str) -> None:
        job.reason = reason
        job._enter(JobState.FAILED)
        self._notify(job)

    def run(self, job: SyncJob) -> SyncResult:
        """Run a job to a terminal state and return its result."""
        start = time.time()
        logger.info("=" * 50)
        logger.info(f"Syncing '{job.source.title}' from {job.source.provider} "
                    f"to {', '.join(job.targets)}")

        try:
            self._fetch(job)
            job._enter(JobState.MATCHING)
            self._notify(job)
            self._for_each_target(job, self._match_target)

            job._enter(JobState.TRANSFERRING)
            self._notify(job)
            self._for_each_target(job, self._transfer_target)

            job._enter(JobState.COMPLETED)
            self._notify(job)
        except SyncCancelled:
            logger.info("Sync cancelled before transfer")
            self._fail(job, CANCELLED)
        except CallFailed as e:
            self._fail(job, e.reason)
        finally:
            self._shutdown_pools()

        return self._finish(job, start)

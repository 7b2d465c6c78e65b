"""Status file writer for the last sync job"""

import json
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path

from playlist_sync.core.models import SyncResult
from playlist_sync.core.sync_engine import SyncJob


def _song_breakdown(job: SyncJob) -> list[dict]:
    songs = []
    for song, outcomes in job.per_song_results():
        songs.append({
            "title": song.title,
            "artist": song.artist,
            "outcomes": {
                target: None if outcome is None else {
                    "kind": outcome.kind.value,
                    "external_id": outcome.external_id,
                    "reason": outcome.reason,
                }
                for target, outcome in outcomes.items()
            },
        })
    return songs


def write_status(result: SyncResult, job: SyncJob, status_file: Path) -> bool:
    data = {
        "status": result.state.value,
        "last_sync_time": datetime.now(timezone.utc).isoformat(),
        "source": {
            "provider": job.source.provider,
            "playlist_id": job.source.external_id,
            "title": job.source.title,
        },
        "reason": result.reason,
        "source_track_count": result.source_count,
        "duration": round(result.duration, 3),
        "targets": {
            summary.provider: {
                "matched": summary.matched,
                "created": summary.created,
                "unmatched": summary.unmatched,
                "errors": summary.errors,
                "playlist_id": summary.playlist_id,
            }
            for summary in result.targets
        },
        "songs": _song_breakdown(job),
    }
    return _atomic_write(status_file, data)


def write_running_status(job: SyncJob, status_file: Path) -> bool:
    data = {
        "status": "running",
        "last_sync_time": datetime.now(timezone.utc).isoformat(),
        "source": {
            "provider": job.source.provider,
            "playlist_id": job.source.external_id,
            "title": job.source.title,
        },
        "targets": {target: None for target in job.targets},
        "songs": [],
    }
    return _atomic_write(status_file, data)


def _atomic_write(path: Path, data: dict) -> bool:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(dir=path.parent, prefix=".status_", suffix=".tmp")
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2)
            os.replace(temp_path, path)
            return True
        except Exception:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise
    except OSError:
        return False

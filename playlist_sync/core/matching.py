"""Song matching between provider catalogs"""

import logging
import re
from typing import Iterable

from playlist_sync.core.models import Song

logger = logging.getLogger(__name__)

# "Song - Remastered 2011", "Song - Live at Wembley", "Song - Radio Edit"
_DASH_SUFFIX = re.compile(
    r"\s+-\s+.*\b(remaster(ed)?|live|edit|version|mono|stereo|mix|deluxe|acoustic)\b.*$",
    re.IGNORECASE,
)
# "Song (Remastered)", "Song [Deluxe Edition]", "Song (feat. Someone)"
_BRACKET_SUFFIX = re.compile(
    r"\s*[(\[][^)\]]*\b(remaster(ed)?|live|edit|version|edition|deluxe|mono|stereo|"
    r"feat\.?|ft\.?|featuring|bonus|mix)\b[^)\]]*[)\]]",
    re.IGNORECASE,
)
_FEAT_SUFFIX = re.compile(r"\s+(feat\.?|ft\.?|featuring)\s+.*$", re.IGNORECASE)


def normalize(s: str) -> str:
    """Normalize string for comparison."""
    return " ".join(s.lower().split())


def strip_edition(title: str) -> str:
    """Drop edition, remaster and featuring suffixes from a title."""
    stripped = _BRACKET_SUFFIX.sub("", title)
    stripped = _DASH_SUFFIX.sub("", stripped)
    stripped = _FEAT_SUFFIX.sub("", stripped)
    return normalize(stripped) or normalize(title)


def same_artist(a: str, b: str) -> bool:
    return normalize(a) == normalize(b)


def is_exact_match(song: Song, candidate: Song) -> bool:
    return (normalize(song.title) == normalize(candidate.title)
            and same_artist(song.artist, candidate.artist))


def is_fuzzy_match(song: Song, candidate: Song) -> bool:
    return (same_artist(song.artist, candidate.artist)
            and strip_edition(song.title) == strip_edition(candidate.title))


def best_match(song: Song, candidates: Iterable[Song], fuzzy: bool = True) -> Song | None:
    """Pick the candidate representing the same track as ``song``.

    Candidates are in the provider's own ranking. An exact title and artist
    match wins; otherwise the first fuzzy match is taken. A candidate by a
    different artist is never returned.
    """
    ranked = [c for c in candidates if c.external_id]
    for candidate in ranked:
        if is_exact_match(song, candidate):
            return candidate
    if fuzzy:
        for candidate in ranked:
            if is_fuzzy_match(song, candidate):
                logger.debug(f"Fuzzy match: {song.label} -> {candidate.label}")
                return candidate
    return None

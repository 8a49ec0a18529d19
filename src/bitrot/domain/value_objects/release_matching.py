"""Release matching rules: query candidates and the scoring rubric.

Hey future me - this module is the PURE part of Discogs matching. No I/O, no DB,
just strings in and numbers out. Everything here must stay deterministic because
the matcher persists its decisions and a changed score silently changes which
releases get auto-accepted.

The rubric (0-100):
    title exact   +40   | title substring  +25
    artist exact  +30   | artist substring +15
    year equal    +10
    >= 75 matched, 50..74 suggested, < 50 rejected

There is no renormalization: exact title and artist give 70, the year takes it
to 80. A perfect hit never reaches 100.

Examples:
    >>> score_hit("Boards of Canada", "Geogaddi", 2002,
    ...           {"title": "Boards Of Canada - Geogaddi", "year": 2002})
    80
    >>> decide_status(80)
    <MatchStatus.MATCHED: 'matched'>
"""

import re
from collections.abc import Iterable, Sequence
from typing import Any

from bitrot.domain.entities import MatchStatus

# =============================================================================
# SCORING POLICY
# These are fixed policy constants. Don't "tune" them - see module docstring.
# =============================================================================

TITLE_EXACT_POINTS = 40
TITLE_PARTIAL_POINTS = 25
ARTIST_EXACT_POINTS = 30
ARTIST_PARTIAL_POINTS = 15
YEAR_POINTS = 10

MATCHED_THRESHOLD = 75
SUGGESTED_THRESHOLD = 50

# Search policy
MAX_SEARCH_ATTEMPTS = 12
SEARCH_RESULTS_CONSIDERED = 5

# =============================================================================
# NORMALIZATION
# =============================================================================

_DISAMBIGUATOR_RE = re.compile(r"\(\d+\)")
_PUNCTUATION_RE = re.compile(r"[^\w\s]")
_WHITESPACE_RE = re.compile(r"\s{2,}")
_ANY_WHITESPACE_RE = re.compile(r"\s+")

# Hey future me - " x " and the word separators need surrounding whitespace,
# otherwise "Xiu Xiu" or "Max" would get chopped up.
_ARTIST_SEPARATOR_RE = re.compile(
    r"\s*(?:\+|&|,|/|\sx\s|×|\sfeat\.\s|\sfeaturing\s|\sw/\s)\s*",
    re.IGNORECASE,
)

_TITLE_PREFIX_SEPARATORS: tuple[str, ...] = (" - ", " – ", " — ", ": ")

_SOUNDTRACK_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\bOST\b", re.IGNORECASE),
    re.compile(r"\bOriginal Soundtrack\b", re.IGNORECASE),
    re.compile(r"\bSoundtrack\b", re.IGNORECASE),
)

_DIGITAL_SUFFIX_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\s*\(digital\)\s*", re.IGNORECASE),
    re.compile(r"\s*\(digitals\)\s*", re.IGNORECASE),
    re.compile(r"\s*\(digital release\)\s*", re.IGNORECASE),
)


def normalize(value: Any) -> str:
    """Normalize a string for comparison.

    Lowercases, drops Discogs artist disambiguators like "(26)", strips
    punctuation and collapses whitespace.
    """
    if not value:
        return ""
    text = str(value).lower()
    text = _DISAMBIGUATOR_RE.sub("", text)
    text = _PUNCTUATION_RE.sub("", text)
    text = _WHITESPACE_RE.sub(" ", text)
    return text.strip()


def _collapse(value: str) -> str:
    return _ANY_WHITESPACE_RE.sub(" ", value).strip()


def _dedupe(values: Iterable[str], key: Any = None) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for value in values:
        marker = key(value) if key else value
        if value and marker not in seen:
            seen.add(marker)
            out.append(value)
    return out


# =============================================================================
# QUERY CANDIDATES
# =============================================================================


def split_artists(raw: str | None) -> list[str]:
    """Split a multi-artist credit into its parts.

    "Burial + Four Tet" -> ["Burial", "Four Tet"]. Parts are de-duplicated
    case-insensitively with the original order kept.
    """
    text = (raw or "").strip()
    if not text:
        return []
    parts = (part.strip() for part in _ARTIST_SEPARATOR_RE.split(text))
    return _dedupe((p for p in parts if p), key=str.lower)


def artist_candidates(raw_artist: str) -> list[str]:
    """Raw artist first, then each split part."""
    raw = raw_artist.strip()
    return _dedupe([raw, *split_artists(raw)], key=str.lower)


def strip_artist_prefix(artist: str | None, title: str | None) -> str:
    """Remove a leading "Artist - " (or en/em dash, colon) from a title."""
    a = (artist or "").strip()
    t = (title or "").strip()
    if not a or not t:
        return t
    lowered = t.lower()
    for separator in _TITLE_PREFIX_SEPARATORS:
        prefix = f"{a}{separator}"
        if lowered.startswith(prefix.lower()):
            return t[len(prefix) :].strip()
    return t


def title_candidates(raw_title: str | None, raw_artist: str | None) -> list[str]:
    """Build the title variants to search for.

    Raw title, artist-prefix-stripped title, soundtrack-marker variants and
    "(digital)" suffix variants. Whitespace-collapsed, non-empty, deduplicated.
    """
    original = (raw_title or "").strip()
    if not original:
        return []

    variants: list[str] = [original]
    variants.append(strip_artist_prefix(raw_artist, original))
    for pattern in _SOUNDTRACK_PATTERNS:
        variants.append(pattern.sub("", original, count=1).strip())

    for pattern in _DIGITAL_SUFFIX_PATTERNS:
        for variant in list(variants):
            variants.append(pattern.sub(" ", variant).strip())

    return _dedupe(_collapse(v) for v in variants)


# =============================================================================
# SCORING
# =============================================================================


def parse_hit_title(hit: dict[str, Any]) -> tuple[str, str]:
    """Split a search hit's "Artist - Title" display string.

    Splits on the FIRST " - " so titles containing dashes survive. Without a
    separator the whole string is the title and the artist is empty.
    """
    raw = str(hit.get("title") or "")
    artist, separator, title = raw.partition(" - ")
    if not separator:
        return "", raw.strip()
    return artist.strip(), title.strip()


def _parse_year(value: Any) -> int | None:
    try:
        year = int(value)
    except (TypeError, ValueError):
        return None
    return year or None


def _text_points(ours: str, theirs: str, exact: int, partial: int) -> int:
    if not ours or not theirs:
        return 0
    if ours == theirs:
        return exact
    if ours in theirs or theirs in ours:
        return partial
    return 0


def score_hit(
    artist: str | None, title: str | None, year: int | None, hit: dict[str, Any]
) -> int:
    """Score one search hit against a release (0-100)."""
    hit_artist, hit_title = parse_hit_title(hit)

    score = _text_points(
        normalize(title), normalize(hit_title), TITLE_EXACT_POINTS, TITLE_PARTIAL_POINTS
    )
    score += _text_points(
        normalize(artist),
        normalize(hit_artist),
        ARTIST_EXACT_POINTS,
        ARTIST_PARTIAL_POINTS,
    )

    hit_year = _parse_year(hit.get("year"))
    if year and hit_year and hit_year == year:
        score += YEAR_POINTS

    return max(0, min(score, 100))


def decide_status(score: float) -> MatchStatus:
    """Map a score onto matched / suggested / rejected."""
    if score >= MATCHED_THRESHOLD:
        return MatchStatus.MATCHED
    if score >= SUGGESTED_THRESHOLD:
        return MatchStatus.SUGGESTED
    return MatchStatus.REJECTED


def pick_best_hit(
    artist: str | None,
    title: str | None,
    year: int | None,
    hits: Sequence[dict[str, Any]],
) -> tuple[dict[str, Any], int] | None:
    """Return the highest scoring hit and its score.

    Ties keep the first-encountered hit (max() returns the first maximum).
    """
    if not hits:
        return None
    scored = [(hit, score_hit(artist, title, year, hit)) for hit in hits]
    return max(scored, key=lambda pair: pair[1])


__all__ = [
    "MAX_SEARCH_ATTEMPTS",
    "MATCHED_THRESHOLD",
    "SEARCH_RESULTS_CONSIDERED",
    "SUGGESTED_THRESHOLD",
    "artist_candidates",
    "decide_status",
    "normalize",
    "parse_hit_title",
    "pick_best_hit",
    "score_hit",
    "split_artists",
    "strip_artist_prefix",
    "title_candidates",
]

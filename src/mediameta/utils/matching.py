"""Fuzzy string matching for ranking provider search results.

Two families of scoring live here:

- Similarity ratios in ``[0, 1]`` (``string_similarity``, ``ngram_similarity``,
  ``book_match_score``) for comparing free text.
- Point tables used by every provider adapter to pick the best candidate from a
  search response. Exact normalized titles score highest, containment scores
  partial credit, and corroborating author/year evidence adds bonus points. A
  candidate below ``MATCH_SCORE_FLOOR`` is reported as no match.

The weights and point values are tuned constants; changing them changes which
candidates are accepted.
"""

import re
from typing import Iterable, List, Optional, Sequence, Tuple, TypeVar

from rapidfuzz.distance import Levenshtein

T = TypeVar("T")

# book_match_score weights
TITLE_WEIGHT = 0.6
TITLE_CONTAINMENT_BONUS = 0.15
AUTHOR_WEIGHT = 0.3
AUTHOR_TOKEN_BONUS = 0.1
ONE_SIDED_AUTHOR_PENALTY = 0.9

# Provider candidate points
TITLE_EXACT_POINTS = 100
TITLE_PARTIAL_POINTS = 50
AUTHOR_EXACT_POINTS = 80
AUTHOR_PARTIAL_POINTS = 40
YEAR_EXACT_POINTS = 50
YEAR_NEAR_POINTS = 25
POPULARITY_DIVISOR = 10
POPULARITY_CAP = 20
MATCH_SCORE_FLOOR = 50

_PUNCTUATION = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")

# Ordered: first match wins. Three groups = title, series, position;
# two groups = title, position.
_SERIES_PATTERNS = [
    # "Title (Series Name #1)" or "Title (Series Name, #1)"
    re.compile(r"^(.+?)\s*\(\s*(.+?)\s*(?:,\s*#?|#)\s*(\d+(?:\.\d+)?)\s*\)$"),
    # "Title (Series Name Book 1)"
    re.compile(r"^(.+?)\s*\(\s*(.+?)\s+Book\s+(\d+(?:\.\d+)?)\s*\)$", re.IGNORECASE),
    # "Title: Series Name #1"
    re.compile(r"^(.+?):\s*(.+?)\s*#(\d+(?:\.\d+)?)$"),
    # "Title (Book 1)"
    re.compile(r"^(.+?)\s*\(\s*Book\s+(\d+(?:\.\d+)?)\s*\)$", re.IGNORECASE),
    # "Title #1"
    re.compile(r"^(.+?)\s*#(\d+(?:\.\d+)?)$"),
    # "Title, Book 1"
    re.compile(r"^(.+?),\s*Book\s+(\d+(?:\.\d+)?)$", re.IGNORECASE),
    # "Series Name: Title (Book 1)"
    re.compile(r"^(.+?):\s*(.+?)\s*\(\s*Book\s+(\d+(?:\.\d+)?)\s*\)$", re.IGNORECASE),
]


def normalize(text: str) -> str:
    """Lowercase, strip punctuation and collapse whitespace."""
    text = _PUNCTUATION.sub("", text.lower())
    return _WHITESPACE.sub(" ", text).strip()


def levenshtein_distance(a: str, b: str) -> int:
    """Classic edit distance with unit insert/delete/substitute costs."""
    return Levenshtein.distance(a, b)


def string_similarity(a: str, b: str) -> float:
    """Similarity ratio in ``[0, 1]`` based on normalized edit distance."""
    a_norm = normalize(a)
    b_norm = normalize(b)

    if a_norm == b_norm:
        return 1.0
    if not a_norm or not b_norm:
        return 0.0

    distance = levenshtein_distance(a_norm, b_norm)
    return 1 - distance / max(len(a_norm), len(b_norm))


def is_fuzzy_match(a: str, b: str, threshold: float = 0.8) -> bool:
    return string_similarity(a, b) >= threshold


def _ngrams(text: str, n: int) -> List[str]:
    return [text[i : i + n] for i in range(len(text) - n + 1)]


def ngram_similarity(a: str, b: str, n: int = 2) -> float:
    """Jaccard index over character n-grams of the normalized strings.

    Falls back to ``string_similarity`` when either string is shorter than ``n``.
    """
    a_norm = normalize(a)
    b_norm = normalize(b)

    if a_norm == b_norm:
        return 1.0
    if len(a_norm) < n or len(b_norm) < n:
        return string_similarity(a, b)

    a_grams = set(_ngrams(a_norm, n))
    b_grams = set(_ngrams(b_norm, n))
    return len(a_grams & b_grams) / len(a_grams | b_grams)


def _partial_author_match(query_author: str, result_author: str) -> bool:
    query_parts = normalize(query_author).split(" ")
    result_parts = normalize(result_author).split(" ")
    return any(
        len(part) > 2 and len(r_part) > 2 and (part in r_part or r_part in part)
        for part in query_parts
        for r_part in result_parts
    )


def book_match_score(
    query_title: str,
    query_author: Optional[str],
    result_title: str,
    result_author: Optional[str],
) -> float:
    """Composite title/author match score in ``[0, 1]``."""
    title_similarity = string_similarity(query_title, result_title)

    query_norm = normalize(query_title)
    result_norm = normalize(result_title)
    contains = query_norm in result_norm or result_norm in query_norm
    score = title_similarity * TITLE_WEIGHT + (TITLE_CONTAINMENT_BONUS if contains else 0)

    if query_author and result_author:
        author_similarity = string_similarity(query_author, result_author)
        bonus = AUTHOR_TOKEN_BONUS if _partial_author_match(query_author, result_author) else 0
        score += author_similarity * AUTHOR_WEIGHT + bonus
    elif query_author or result_author:
        score *= ONE_SIDED_AUTHOR_PENALTY

    return min(score, 1.0)


def extract_series_from_title(title: str) -> dict:
    """Split series information out of a title.

    Returns:
        Dict with ``clean_title``, ``series_name`` and ``series_position``.
        Unmatched titles come back unchanged with both series fields ``None``.
    """
    for pattern in _SERIES_PATTERNS:
        match = pattern.match(title)
        if not match:
            continue
        groups = match.groups()
        if len(groups) == 3:
            return {
                "clean_title": groups[0].strip(),
                "series_name": groups[1].strip(),
                "series_position": float(groups[2]),
            }
        return {
            "clean_title": groups[0].strip(),
            "series_name": None,
            "series_position": float(groups[1]),
        }

    return {"clean_title": title, "series_name": None, "series_position": None}


def clean_title(title: str) -> str:
    """Drop trailing parentheticals and edition noise from a title."""
    title = re.sub(r"\s*\([^)]*\)\s*$", "", title)
    title = re.sub(r"\s*:\s*A Novel\s*$", "", title, flags=re.IGNORECASE)
    title = re.sub(r"\s*:\s*Book\s+\d+\s*$", "", title, flags=re.IGNORECASE)
    return title.strip()


# Provider candidate scoring


def title_points(query_norm: str, candidate_title: str, bidirectional: bool = True) -> int:
    """Points for a candidate title against an already-normalized query.

    Book providers accept containment in either direction; screen providers
    only credit candidates whose title contains the query.
    """
    candidate_norm = normalize(candidate_title)
    if candidate_norm == query_norm:
        return TITLE_EXACT_POINTS
    if query_norm in candidate_norm or (bidirectional and candidate_norm in query_norm):
        return TITLE_PARTIAL_POINTS
    return 0


def author_points(query_author_norm: Optional[str], candidate_authors: Iterable[str]) -> int:
    """Points for the best author corroboration among a candidate's authors."""
    if not query_author_norm:
        return 0
    authors = [normalize(a) for a in candidate_authors]
    if any(a == query_author_norm for a in authors):
        return AUTHOR_EXACT_POINTS
    if any(query_author_norm in a or a in query_author_norm for a in authors):
        return AUTHOR_PARTIAL_POINTS
    return 0


def year_points(year: Optional[int], date: Optional[str]) -> int:
    """Points for a release year matching exactly or within one year."""
    candidate_year = parse_year(date)
    if not year or candidate_year is None:
        return 0
    if candidate_year == year:
        return YEAR_EXACT_POINTS
    if abs(candidate_year - year) <= 1:
        return YEAR_NEAR_POINTS
    return 0


def popularity_points(popularity: Optional[float]) -> float:
    return min((popularity or 0) / POPULARITY_DIVISOR, POPULARITY_CAP)


def parse_year(date: Optional[str]) -> Optional[int]:
    """Year from an ISO-ish date string such as ``2010-07-16``."""
    if not date or len(date) < 4 or not date[:4].isdigit():
        return None
    return int(date[:4])


def pick_best(scored: Sequence[Tuple[T, float]]) -> Optional[T]:
    """Highest-scoring candidate, or ``None`` when it misses the floor.

    Ties keep the provider's original ordering.
    """
    if not scored:
        return None
    best, score = sorted(scored, key=lambda item: item[1], reverse=True)[0]
    return best if score >= MATCH_SCORE_FLOOR else None

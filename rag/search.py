"""
Ranking and filtering of comparison results.

rank() scores the query embedding against every stored course that has one
and sorts by overlap percent, highest first. The sort is stable: courses with
equal percent keep their corpus order. There is no cap; the full list goes to
the presentation layer, which narrows it with filter_results():

    search term   case-insensitive substring over code, name, level, language,
                  coordinator, institute, area, content, knowledge outcome
    range         similarity_range[0] ≤ percent ≤ similarity_range[1]
    categorical   per field: no enabled value → no constraint; otherwise the
                  course value must be one of the enabled values.
                  Fields are ANDed, values within a field ORed.

Credits are stored as free text ("7,5", "15 SP", "75" for 7.5 …); they are
compared only through normalize_credits(), both when building the option list
and when matching an active filter.

Public API:
    rank(query_embedding, corpus)                       → list[SimilarityResult]
    filter_results(results, filter_state, search_term)  → list[SimilarityResult]
    available_filter_values(results)                    → dict[str, list[str]]
    search_corpus(query_embedding, corpus, limit=50)    → list[SimilarityResult]
    normalize_credits(value)                            → str | None
"""

import logging
import math
import re
from collections.abc import Iterable, Sequence

import numpy as np

from rag.errors import DimensionMismatchError
from rag.models import FILTER_FIELDS, SEARCH_FIELDS, CourseRecord, FilterState, SimilarityResult
from rag.similarity import cosine_similarity, course_similarity_percent

log = logging.getLogger(__name__)

GLOBAL_SEARCH_LIMIT = 50

# A decimal point was lost for these values upstream.
CREDIT_REWRITES = {"75": "7.5", "25": "2.5"}

_SP_RE = re.compile(r"\s*SP\s*", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Credits
# ---------------------------------------------------------------------------

def normalize_credits(value) -> str | None:
    """'15 SP' → '15', '75' → '7.5', '7.50' → '7.5', None → None."""
    if value is None:
        return None

    text = _SP_RE.sub("", str(value), count=1).strip()
    if not text:
        return None

    try:
        number = float(text)
    except ValueError:
        return text
    if not math.isfinite(number):
        return text

    # rewrite after formatting so normalize_credits is idempotent
    text = str(int(number)) if number.is_integer() else repr(number)
    return CREDIT_REWRITES.get(text, text)


def _credit_sort_key(value: str) -> tuple[int, float, str]:
    try:
        return (0, float(value), value)
    except ValueError:
        return (1, 0.0, value)


# ---------------------------------------------------------------------------
# Ranking
# ---------------------------------------------------------------------------

def _scored(query: np.ndarray, corpus: Iterable[CourseRecord], score) -> list[SimilarityResult]:
    results = []
    for course in corpus:
        if course.embedding is None:
            log.info("Missing embedding for course %s, skipped.", course.code)
            continue
        try:
            similarity = score(query, course.embedding)
        except DimensionMismatchError as exc:
            log.warning("Skipping course %s: %s", course.code, exc)
            continue
        results.append(SimilarityResult(course=course.without_embedding(), similarity=similarity))

    results.sort(key=lambda r: r.similarity, reverse=True)
    return results


def rank(query_embedding, corpus: Iterable[CourseRecord]) -> list[SimilarityResult]:
    """Every comparable course, highest overlap percent first."""
    query = np.asarray(query_embedding, dtype=np.float32)
    return _scored(query, corpus, course_similarity_percent)


def _plain_percent(a, b) -> float:
    return math.floor(cosine_similarity(a, b) * 1000 + 0.5) / 10


def search_corpus(
    query_embedding,
    corpus: Iterable[CourseRecord],
    limit: int = GLOBAL_SEARCH_LIMIT,
) -> list[SimilarityResult]:
    """
    Free-text search over the whole catalogue.

    Uses the contrast-enhanced cosine × 100 without the tiered boost, and
    keeps only the top `limit` courses.
    """
    query = np.asarray(query_embedding, dtype=np.float32)
    return _scored(query, corpus, _plain_percent)[:limit]


# ---------------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------------

def _matches_term(course: CourseRecord, term: str) -> bool:
    for name in SEARCH_FIELDS:
        value = getattr(course, name)
        if value and term in str(value).lower():
            return True
    return False


def _matches_field(course: CourseRecord, name: str, enabled: frozenset[str]) -> bool:
    if not enabled:
        return True
    if name == "credits":
        credits = normalize_credits(course.credits)
        return credits is not None and credits in {normalize_credits(v) for v in enabled}
    value = getattr(course, name)
    return bool(value) and value in enabled


def filter_results(
    results: Sequence[SimilarityResult],
    filter_state: FilterState | None = None,
    search_term: str | None = "",
) -> list[SimilarityResult]:
    """Rows passing search term, similarity range and categorical filters, in input order."""
    state = filter_state or FilterState()
    term  = (search_term or "").lower().strip()
    lo, hi = state.similarity_range

    out = []
    for result in results:
        course = result.course
        if term and not _matches_term(course, term):
            continue
        if result.similarity < lo or result.similarity > hi:
            continue
        if not all(_matches_field(course, name, state.enabled(name)) for name in FILTER_FIELDS):
            continue
        out.append(result)
    return out


def available_filter_values(results: Sequence[SimilarityResult]) -> dict[str, list[str]]:
    """Distinct non-empty values per categorical field, for building filter options."""
    options: dict[str, list[str]] = {}
    for name in FILTER_FIELDS:
        if name == "credits":
            values = {normalize_credits(r.course.credits) for r in results}
            values.discard(None)
            options[name] = sorted(values, key=_credit_sort_key)
        else:
            values = {getattr(r.course, name) for r in results}
            values.discard(None)
            values.discard("")
            options[name] = sorted(values, key=str.casefold)
    return options

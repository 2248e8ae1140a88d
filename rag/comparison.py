"""
One comparison request, end to end:

    validate → compose → embed (one outbound call) → fetch corpus → rank

Validation runs before any network call. Everything a request produces is
request-scoped; the only shared object is the RequestTracker, which keeps the
latest committed result list per session and drops results of requests that
were superseded while they were still in flight.
"""

import itertools
import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass

from rag.embedder import ComposedCourse, RawText
from rag.errors import EmptyCorpusError, InputValidationError
from rag.models import CourseRecord, QueryCourse, SimilarityResult
from rag.search import rank, search_corpus

log = logging.getLogger(__name__)

MIN_INPUT_LENGTH = 10
MAX_INPUT_LENGTH = 5000


def _check_length(field: str, label: str, text: str | None) -> None:
    cleaned = (text or "").strip()
    if not MIN_INPUT_LENGTH <= len(cleaned) <= MAX_INPUT_LENGTH:
        raise InputValidationError(
            field,
            f"{label} must be between {MIN_INPUT_LENGTH} and {MAX_INPUT_LENGTH} characters",
        )


def validate_query(query: QueryCourse) -> None:
    """Raise InputValidationError for any field outside the accepted length band."""
    _check_length("name", "Course name", query.name)
    _check_length("description", "Course description", query.description)
    if query.literature:
        _check_length("literature", "Course literature", query.literature)


class CourseComparer:
    """
    Ranks a candidate course against the stored corpus.

    embedder:     anything with embed_input(EmbeddingInput) → vector
    fetch_corpus: returns the stored CourseRecords (with embeddings)
    """

    def __init__(self, embedder, fetch_corpus: Callable[[], list[CourseRecord]]):
        self.embedder     = embedder
        self.fetch_corpus = fetch_corpus

    def _comparable_corpus(self) -> list[CourseRecord]:
        corpus = [c for c in self.fetch_corpus() if c.embedding is not None]
        if not corpus:
            raise EmptyCorpusError("No stored courses found to compare against")
        return corpus

    def compare(self, query: QueryCourse) -> list[SimilarityResult]:
        validate_query(query)
        t0 = time.perf_counter()

        embedding = self.embedder.embed_input(ComposedCourse(query))
        results   = rank(embedding, self._comparable_corpus())

        log.info("compare name=%r  hits=%d  %.2fs", query.name, len(results), time.perf_counter() - t0)
        return results

    def search(self, text: str) -> list[SimilarityResult]:
        """Global catalogue search for a free-text query (top 50)."""
        if not text.strip():
            raise InputValidationError("q", "Search query must not be empty")
        embedding = self.embedder.embed_input(RawText(text.strip()))
        return search_corpus(embedding, self._comparable_corpus())


# ---------------------------------------------------------------------------
# Stale-result suppression
# ---------------------------------------------------------------------------

@dataclass
class Committed:
    token: int
    query: QueryCourse
    results: list[SimilarityResult]


class RequestTracker:
    """
    Per-session request tokens.

    begin() issues a new token and makes it current for the session; commit()
    stores results only while that token is still current. A comparison that
    finishes after a newer one started is discarded instead of overwriting the
    newer state.

    At most max_sessions sessions are tracked. Past that, the session whose
    last begin() is oldest is forgotten.
    """

    def __init__(self, max_sessions: int = 1000):
        self.max_sessions = max_sessions
        self._tokens    = itertools.count(1)
        self._current:   OrderedDict[str, int] = OrderedDict()
        self._committed: OrderedDict[str, Committed] = OrderedDict()
        self._lock = threading.Lock()

    def begin(self, session: str) -> int:
        with self._lock:
            token = next(self._tokens)
            self._current[session] = token
            self._current.move_to_end(session)
            while len(self._current) > self.max_sessions:
                evicted, _ = self._current.popitem(last=False)
                log.info("Evicting session %s from request tracker", evicted)
            return token

    def is_current(self, session: str, token: int) -> bool:
        with self._lock:
            return self._current.get(session) == token

    def commit(self, session: str, token: int, query: QueryCourse,
               results: list[SimilarityResult]) -> bool:
        with self._lock:
            if self._current.get(session) != token:
                log.info("Discarding stale results for session %s (token %d)", session, token)
                return False
            self._committed[session] = Committed(token, query, results)
            self._committed.move_to_end(session)
            while len(self._committed) > self.max_sessions:
                evicted, _ = self._committed.popitem(last=False)
                self._current.pop(evicted, None)
            return True

    def latest(self, session: str) -> Committed | None:
        with self._lock:
            return self._committed.get(session)

    def __len__(self) -> int:
        with self._lock:
            return len(self._current)

"""
FastAPI application — single entry point for the comparison service.

Run as a script to build the corpus if needed, then serve:
    python app/app.py

Or run as a module if data/metadata.json already exists:
    uvicorn app.app:app --reload

Endpoints:
    POST /compare        body: {"name", "description", "literature"?, "session"?}
                         returns: {"session", "stale", "results": [...]}
    POST /filter         body: {"session", "search_term"?, "filters"?}
    GET  /filters/{id}   distinct values per filterable field
    POST /explain        body: {"session", "course_code"}
    POST /search         body: {"q"}  global search, top 50
    GET  /health

A newer /compare for the same session supersedes an older one still in
flight: the older response comes back with stale=true and no results.

Logs each comparison and wall-clock response time to stdout and logs/app.log
(rotating, 5 MB max, 3 backups).
"""

import logging
import logging.handlers
import sys
import time
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

# Ensure project root is on sys.path when running as a script (python app/app.py)
sys.path.insert(0, str(Path(__file__).parent.parent))

from rag.comparison import CourseComparer, RequestTracker, validate_query
from rag.config import Settings
from rag.embedder import EmbeddingClient
from rag.errors import (
    DimensionMismatchError,
    EmbeddingError,
    EmptyCorpusError,
    ExplanationError,
    InputValidationError,
    SwaakonError,
)
from rag.generator import ExplanationCache, ExplanationGenerator
from rag.models import FilterState, QueryCourse, SimilarityResult
from rag.search import available_filter_values, filter_results
from rag.vector_store import META_FILE, CourseStore

LOG_DIR  = Path(__file__).parent.parent / "logs"
LOG_FILE = LOG_DIR / "app.log"


def _setup_logging() -> None:
    LOG_DIR.mkdir(exist_ok=True)
    fmt = logging.Formatter("%(asctime)s  %(levelname)s  %(message)s")

    stream = logging.StreamHandler(sys.stdout)
    stream.setFormatter(fmt)

    # Rotate at 5 MB, keep 3 backups
    rotating = logging.handlers.RotatingFileHandler(
        LOG_FILE, maxBytes=5 * 1024 * 1024, backupCount=3, encoding="utf-8"
    )
    rotating.setFormatter(fmt)

    root = logging.getLogger()
    root.setLevel(logging.INFO)
    root.addHandler(stream)
    root.addHandler(rotating)

_setup_logging()
log = logging.getLogger("api")


# ---------------------------------------------------------------------------
# Pipeline orchestration
# ---------------------------------------------------------------------------

def _ensure_data(settings: Settings, embedder=None) -> None:
    """Build metadata.json from courses.json under settings.data_dir if it is missing."""
    if (settings.data_dir / META_FILE.name).exists():
        log.info("metadata.json exists — skipping ingestion.")
        return

    log.info("metadata.json missing — embedding courses.json…")
    from etl.pipeline import run as run_pipeline
    store = run_pipeline(embedder=embedder, settings=settings)
    log.info("  Embedded %d courses → metadata.json", len(store.with_embeddings()))


# ---------------------------------------------------------------------------
# App + lifespan
# ---------------------------------------------------------------------------

_store: CourseStore | None = None
_comparer: CourseComparer | None = None
_tracker: RequestTracker | None = None
_explainer: ExplanationGenerator | None = None


def configure(store: CourseStore, embedder, explainer: ExplanationGenerator) -> None:
    """Wire the service to a corpus, an embedding client and an explainer."""
    global _store, _comparer, _tracker, _explainer
    _store     = store
    _comparer  = CourseComparer(embedder, store.with_embeddings)
    _tracker   = RequestTracker()
    _explainer = explainer


@asynccontextmanager
async def lifespan(_: FastAPI):
    if _comparer is None:
        settings = Settings.from_env()

        log.info("Loading course corpus…")
        store = CourseStore.load(settings.data_dir / META_FILE.name)
        log.info("  %d courses loaded (dim=%s).", len(store), store.dim)

        explainer = ExplanationGenerator(
            model=settings.explanation_model,
            cache=ExplanationCache(settings.explanation_cache_size),
        )
        configure(store, EmbeddingClient.from_settings(settings), explainer)
        log.info("  Ready.")

    yield  # server runs here


app = FastAPI(title="SWAAKON", lifespan=lifespan)


def _require_ready() -> tuple[CourseComparer, RequestTracker, ExplanationGenerator]:
    if _comparer is None or _tracker is None or _explainer is None:
        raise HTTPException(status_code=503, detail="Service not initialised")
    return _comparer, _tracker, _explainer


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------

_STATUS: list[tuple[type[SwaakonError], int]] = [
    (InputValidationError,   400),
    (EmbeddingError,         502),
    (ExplanationError,       502),
    (EmptyCorpusError,       503),
    (DimensionMismatchError, 500),
]


@app.exception_handler(SwaakonError)
async def swaakon_error_handler(_: Request, exc: SwaakonError) -> JSONResponse:
    status = next((code for cls, code in _STATUS if isinstance(exc, cls)), 500)
    body: dict[str, Any] = {"error": type(exc).__name__, "detail": str(exc)}
    if isinstance(exc, InputValidationError):
        body["field"] = exc.field
    if isinstance(exc, EmbeddingError):
        body["kind"] = exc.kind
    log.warning("%s → %d: %s", type(exc).__name__, status, exc)
    return JSONResponse(status_code=status, content=body)


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

class CompareRequest(BaseModel):
    name: str
    description: str
    literature: str | None = None
    session: str | None = None


class CourseResult(BaseModel):
    code: str
    name: str = ""
    credits: str | None = None
    level: str | None = None
    language: str | None = None
    semester: str | None = None
    portfolio: str | None = None
    institute: str | None = None
    area: str | None = None
    coordinator: str | None = None
    content: str | None = None
    knowledge: str | None = None
    skills: str | None = None
    general_competence: str | None = None
    literature: str | None = None
    link_nb: str | None = None
    link_en: str | None = None
    similarity: float
    explanation: str | None = None


class CompareResponse(BaseModel):
    session: str
    stale: bool
    results: list[CourseResult]


class FilterRequest(BaseModel):
    session: str
    search_term: str = ""
    filters: dict[str, Any] | None = None


class FilterResponse(BaseModel):
    session: str
    total: int
    results: list[CourseResult]


class ExplainRequest(BaseModel):
    session: str
    course_code: str


class ExplainResponse(BaseModel):
    course_code: str
    explanation: str


class SearchRequest(BaseModel):
    q: str = Field(min_length=1)


class SearchResponse(BaseModel):
    results: list[CourseResult]


def _rows(results: list[SimilarityResult], explain=None) -> list[CourseResult]:
    """Response rows; explain(code) supplies a cached explanation per course."""
    rows = []
    for r in results:
        row = r.to_dict()
        if explain is not None:
            row["explanation"] = explain(r.course.code)
        rows.append(CourseResult(**row))
    return rows


def _committed(session: str):
    _, tracker, _ = _require_ready()
    committed = tracker.latest(session)
    if committed is None:
        raise HTTPException(status_code=404, detail=f"No results for session {session!r}.")
    return committed


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@app.post("/compare", response_model=CompareResponse)
def compare(req: CompareRequest) -> CompareResponse:
    comparer, tracker, _ = _require_ready()
    session = req.session or uuid.uuid4().hex
    query   = QueryCourse(req.name, req.description, req.literature)

    validate_query(query)

    t0 = time.perf_counter()
    token = tracker.begin(session)
    log.info("Comparing: name=%r  session=%s  token=%d", req.name, session, token)

    results = comparer.compare(query)
    fresh   = tracker.commit(session, token, query, results)

    elapsed = time.perf_counter() - t0
    log.info("session=%s  hits=%d  stale=%s  %.2fs", session, len(results), not fresh, elapsed)

    return CompareResponse(session=session, stale=not fresh, results=_rows(results) if fresh else [])


@app.post("/filter", response_model=FilterResponse)
def filter_(req: FilterRequest) -> FilterResponse:
    _, _, explainer = _require_ready()
    committed = _committed(req.session)
    state = FilterState.from_dict(req.filters)
    results = filter_results(committed.results, state, req.search_term)
    rows = _rows(results, lambda code: explainer.cached(committed.query, code))
    return FilterResponse(session=req.session, total=len(committed.results), results=rows)


@app.get("/filters/{session}")
def filters(session: str) -> dict[str, list[str]]:
    return available_filter_values(_committed(session).results)


@app.post("/explain", response_model=ExplainResponse)
def explain(req: ExplainRequest) -> ExplainResponse:
    _, _, explainer = _require_ready()
    committed = _committed(req.session)

    result = next((r for r in committed.results if r.course.code == req.course_code), None)
    if result is None:
        raise HTTPException(status_code=404, detail=f"Course {req.course_code!r} not in results.")

    explanation = explainer.explain(committed.query, result)
    return ExplainResponse(course_code=req.course_code, explanation=explanation)


@app.post("/search", response_model=SearchResponse)
def search(req: SearchRequest) -> SearchResponse:
    comparer, _, _ = _require_ready()
    t0 = time.perf_counter()
    results = comparer.search(req.q)
    log.info("search q=%r  hits=%d  %.2fs", req.q, len(results), time.perf_counter() - t0)
    return SearchResponse(results=_rows(results))


@app.get("/health")
def health() -> dict[str, Any]:
    if _store is None:
        return {"status": "starting", "courses": 0, "embedded": 0, "dim": None}
    return {
        "status": "ok",
        "courses": len(_store),
        "embedded": len(_store.with_embeddings()),
        "dim": _store.dim,
    }


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    log.info("=== SWAAKON — starting up ===")
    _ensure_data(Settings.from_env())
    log.info("=== Corpus ready — launching server on http://0.0.0.0:8000 ===")
    uvicorn.run(app, host="0.0.0.0", port=8000, reload=False)

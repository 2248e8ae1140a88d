"""
Ingestion pipeline: loads the raw course export, embeds every course, and
writes data/metadata.json for rag.vector_store.

Each course is composed with rag.embedder.prepare_course_text and embedded
with the configured client, exactly as a query course is at comparison time.

Failure policy:
  - a course that fails to embed is logged and stored without an embedding
    (it is then skipped by ranking); one bad row never aborts the run
  - a course that already carries a valid embedding of the expected
    dimension is reused unless force=True
"""

import json
import logging
from pathlib import Path
from typing import Any

from rag.config import Settings
from rag.embedder import ComposedCourse, EmbeddingClient
from rag.errors import EmbeddingError
from rag.vector_store import META_FILE, CourseStore, record_from_row

log = logging.getLogger(__name__)

COURSES_FILE = "courses.json"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def load(path: Path) -> list[dict[str, Any]]:
    """Load a JSON array from disk; return [] if the file doesn't exist."""
    if not path.exists():
        return []
    return json.loads(path.read_text(encoding="utf-8"))


def dedupe(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Keep the last row per course code (upsert semantics); drop rows without a code."""
    index: dict[str, dict[str, Any]] = {}
    for row in rows:
        code = str(row.get("code") or row.get("kurskode") or "").strip()
        if not code:
            log.warning("Skipping course without code: %r", row.get("name") or row.get("kursnavn"))
            continue
        index[code] = row
    return list(index.values())


# ---------------------------------------------------------------------------
# Core
# ---------------------------------------------------------------------------

def embed_courses(rows: list[dict[str, Any]], embedder, force: bool = False) -> tuple[CourseStore, int, int]:
    """
    Return (store, success_count, error_count).
    """
    courses = []
    success = errors = 0

    unique = dedupe(rows)

    for i, row in enumerate(unique, start=1):
        course = record_from_row(row)

        if not force and course.embedding is not None and course.embedding.size == embedder.dim:
            courses.append(course)
            success += 1
            continue

        log.info("Processing %s (%d/%d)", course.code, i, len(unique))
        try:
            course.embedding = embedder.embed_input(ComposedCourse(course))
            success += 1
        except EmbeddingError as exc:
            log.error("Failed to embed %s [%s]: %s", course.code, exc.kind, exc)
            course.embedding = None
            errors += 1
        courses.append(course)

    return CourseStore(courses), success, errors


# ---------------------------------------------------------------------------
# Entry point (importable, not a CLI)
# ---------------------------------------------------------------------------

def run(
    source: Path | None = None,
    output: Path | None = None,
    embedder=None,
    force: bool = False,
    settings: Settings | None = None,
) -> CourseStore:
    """
    Load raw courses, embed, save metadata.json, return the store.

    source and output default to courses.json and metadata.json under
    settings.data_dir.
    """
    settings = settings or Settings.from_env()
    source = source or settings.data_dir / COURSES_FILE
    output = output or settings.data_dir / META_FILE.name

    rows = load(source)
    if not rows:
        raise FileNotFoundError(f"No courses found at {source}.")

    embedder = embedder or EmbeddingClient.from_settings(settings)
    store, success, errors = embed_courses(rows, embedder, force=force)
    store.save(output)

    log.info("Migration complete: %d succeeded, %d failed → %s", success, errors, output.name)
    return store

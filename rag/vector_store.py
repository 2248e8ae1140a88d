"""
Course corpus store.

Holds every stored CourseRecord together with its precomputed embedding.
Embeddings arrive in two encodings depending on how a row was written:

    native array   [0.12, -0.03, …]
    string         "[0.12,-0.03,…]"   (brackets stripped, split on commas)

parse_embedding() is the single place either encoding is decoded. A row whose
embedding cannot be decoded is kept without one (and so never ranked).

Persists:
    data/metadata.json — list of course dicts, embedding inline

Public API:
    parse_embedding(value)        → float32 (D,) or None
    CourseStore(courses)
    CourseStore.with_embeddings() → list[CourseRecord]
    CourseStore.save() / CourseStore.load()
"""

import json
import logging
from pathlib import Path
from typing import Any

import numpy as np

from rag.config import ROOT_DIR
from rag.models import CourseRecord

log = logging.getLogger(__name__)

DATA_DIR  = ROOT_DIR / "data"
META_FILE = DATA_DIR / "metadata.json"

EMBEDDING_KEYS = ("embedding", "hf_embedding")


class EmbeddingParseError(ValueError):
    pass


def parse_embedding(value: Any) -> np.ndarray | None:
    """Decode a stored embedding from either encoding."""
    if value is None:
        return None

    if isinstance(value, str):
        body = value.strip()
        if body.startswith("[") and body.endswith("]"):
            body = body[1:-1]
        if not body.strip():
            return None
        try:
            values = [float(part) for part in body.split(",")]
        except ValueError as exc:
            raise EmbeddingParseError(f"Unparsable embedding string: {value[:60]!r}") from exc
    else:
        values = value

    try:
        vector = np.asarray(values, dtype=np.float32)
    except (TypeError, ValueError) as exc:
        raise EmbeddingParseError(f"Unparsable embedding: {exc}") from exc

    if vector.ndim != 1:
        raise EmbeddingParseError(f"Embedding must be one-dimensional, got shape {vector.shape}")
    if vector.size == 0:
        return None
    if not np.all(np.isfinite(vector)):
        raise EmbeddingParseError("Embedding contains non-finite values")
    return vector


def record_from_row(row: dict[str, Any]) -> CourseRecord:
    """Build a CourseRecord from a stored row, decoding its embedding."""
    raw = next((row[k] for k in EMBEDDING_KEYS if row.get(k) is not None), None)
    try:
        embedding = parse_embedding(raw)
    except EmbeddingParseError as exc:
        log.warning("Dropping embedding for course %s: %s",
                    row.get("code") or row.get("kurskode"), exc)
        embedding = None
    return CourseRecord.from_dict(row, embedding=embedding)


class CourseStore:
    def __init__(self, courses: list[CourseRecord]):
        self.courses = courses

    def __len__(self) -> int:
        return len(self.courses)

    def with_embeddings(self) -> list[CourseRecord]:
        """All records that can take part in a comparison."""
        return [c for c in self.courses if c.embedding is not None]

    @property
    def dim(self) -> int | None:
        for c in self.courses:
            if c.embedding is not None:
                return int(c.embedding.size)
        return None

    @classmethod
    def from_rows(cls, rows: list[dict[str, Any]]) -> "CourseStore":
        return cls([record_from_row(r) for r in rows])

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, path: Path = META_FILE) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        rows = [c.to_dict(include_embedding=True) for c in self.courses]
        path.write_text(json.dumps(rows, ensure_ascii=False), encoding="utf-8")

    @classmethod
    def load(cls, path: Path = META_FILE) -> "CourseStore":
        if not path.exists():
            raise FileNotFoundError(f"{path.name} not found at {path}. Run the ETL pipeline first.")
        rows = json.loads(path.read_text(encoding="utf-8"))
        store = cls.from_rows(rows)
        log.info("Loaded %d courses (%d with embeddings) from %s",
                 len(store), len(store.with_embeddings()), path.name)
        return store

"""
Course embedding module.

Encodes each course as one labeled, section-delimited document:

    COURSE NAME: <name>                       (only if present)

    COURSE CODE: <code>                       (only if present)

    COURSE CONTENT AND LEARNING OUTCOMES:

    <normalized knowledge + skills + competence + content>

    KEY CONCEPTS:

    <repeated keywords>                       (only if any)

and sends that document, never the raw record, to the feature-extraction
endpoint of sentence-transformers/distiluse-base-multilingual-cased-v2
(512-dim, multilingual). Stored course embeddings were built the same way,
so query and corpus vectors are comparable.

Public API:
    prepare_course_text(course)   → str
    RawText / ComposedCourse      → EmbeddingInput
    EmbeddingClient.embed(text)   → float32 (D,) via the hosted endpoint
    LocalEmbeddingClient          → same contract, model runs in-process
"""

import logging
from dataclasses import dataclass
from typing import Any

import numpy as np
import requests

from rag import config
from rag.errors import EmbeddingError
from rag.models import CourseRecord, QueryCourse
from rag.text import extract_keywords, normalize

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Text composition
# ---------------------------------------------------------------------------

def prepare_course_text(course: CourseRecord | QueryCourse) -> str:
    """
    Compose the embedding document for a stored or candidate course.

    Missing fields contribute nothing; no empty labeled section is emitted.
    """
    if isinstance(course, QueryCourse):
        course = course.as_course()

    sections = []

    if course.name:
        sections.append(f"COURSE NAME: {course.name}")
    if course.code:
        sections.append(f"COURSE CODE: {course.code}")

    combined = " ".join(
        part for part in (
            course.knowledge,
            course.skills,
            course.general_competence,
            course.content,
        )
        if part
    )

    cleaned = normalize(combined)
    if cleaned:
        sections.append("COURSE CONTENT AND LEARNING OUTCOMES:")
        sections.append(cleaned)

    keywords = extract_keywords(cleaned)
    if keywords:
        sections.append("KEY CONCEPTS:")
        sections.append(" ".join(keywords))

    return "\n\n".join(sections)


# ---------------------------------------------------------------------------
# Embedding input
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RawText:
    text: str


@dataclass(frozen=True)
class ComposedCourse:
    course: CourseRecord | QueryCourse


EmbeddingInput = RawText | ComposedCourse


def input_text(item: EmbeddingInput) -> str:
    """Resolve an EmbeddingInput to the exact text sent to the model."""
    if isinstance(item, RawText):
        return item.text
    if isinstance(item, ComposedCourse):
        return prepare_course_text(item.course)
    raise TypeError(f"Unsupported embedding input: {type(item).__name__}")


# ---------------------------------------------------------------------------
# Response validation
# ---------------------------------------------------------------------------

def validate_response(body: Any, dim: int) -> np.ndarray:
    """Return the first vector of a [[f, f, …]] body, or raise a shape error."""
    if not isinstance(body, list) or not body or not isinstance(body[0], list):
        raise EmbeddingError(
            EmbeddingError.SHAPE, f"Invalid response format: {str(body)[:200]}"
        )

    first = body[0]
    if len(first) != dim:
        raise EmbeddingError(
            EmbeddingError.SHAPE, f"Expected {dim} dimensions but got {len(first)}"
        )

    try:
        vector = np.asarray(first, dtype=np.float32)
    except (TypeError, ValueError) as exc:
        raise EmbeddingError(EmbeddingError.SHAPE, f"Non-numeric embedding: {exc}") from exc

    if vector.ndim != 1 or not np.all(np.isfinite(vector)):
        raise EmbeddingError(EmbeddingError.SHAPE, "Embedding contains nested or non-finite values")
    return vector


class _Embedder:
    dim: int

    def embed(self, text: str) -> np.ndarray:
        raise NotImplementedError

    def embed_input(self, item: EmbeddingInput) -> np.ndarray:
        return self.embed(input_text(item))


# ---------------------------------------------------------------------------
# Hosted endpoint
# ---------------------------------------------------------------------------

class EmbeddingClient(_Embedder):
    """
    One POST per text to the feature-extraction endpoint.

    wait_for_model makes a cold shared model load before answering, so the
    timeout is far above a normal HTTP call. No retries: the caller decides.
    """

    def __init__(
        self,
        api_url: str = config.EMBEDDING_API_URL,
        api_key: str | None = None,
        dim: int = config.EMBEDDING_DIM,
        timeout: float = config.EMBEDDING_TIMEOUT,
        session: requests.Session | None = None,
    ):
        self.api_url = api_url
        self.dim     = dim
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers["Content-Type"] = "application/json"
        if api_key:
            self.session.headers["Authorization"] = f"Bearer {api_key}"

    @classmethod
    def from_settings(cls, settings: config.Settings) -> "EmbeddingClient":
        return cls(
            api_url=settings.embedding_api_url,
            api_key=settings.huggingface_api_key,
            dim=settings.embedding_dim,
            timeout=settings.embedding_timeout,
        )

    def embed(self, text: str) -> np.ndarray:
        log.debug("Embedding %d chars: %r…", len(text), text[:100])
        payload = {"inputs": [text], "options": {"wait_for_model": True}}

        try:
            resp = self.session.post(self.api_url, json=payload, timeout=self.timeout)
        except requests.RequestException as exc:
            log.warning("Embedding request failed: %s", exc)
            raise EmbeddingError(EmbeddingError.TRANSPORT, f"Embedding request failed: {exc}") from exc

        if not resp.ok:
            raise EmbeddingError(
                EmbeddingError.TRANSPORT,
                f"API request failed with HTTP {resp.status_code}: {resp.text[:200]}",
            )

        try:
            body = resp.json()
        except ValueError as exc:
            raise EmbeddingError(EmbeddingError.SHAPE, "Response is not JSON") from exc

        return validate_response(body, self.dim)


# ---------------------------------------------------------------------------
# In-process model
# ---------------------------------------------------------------------------

class LocalEmbeddingClient(_Embedder):
    """Same model run locally (pip install .[local]); used for offline ingestion."""

    def __init__(self, model_name: str = config.MODEL_NAME, dim: int = config.EMBEDDING_DIM):
        self.model_name = model_name
        self.dim        = dim
        self._model     = None

    def _get_model(self):
        if self._model is None:
            from sentence_transformers import SentenceTransformer
            self._model = SentenceTransformer(self.model_name)
        return self._model

    def embed(self, text: str) -> np.ndarray:
        encoded = self._get_model().encode([text], show_progress_bar=False)
        return validate_response(np.asarray(encoded).tolist(), self.dim)

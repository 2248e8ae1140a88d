from types import SimpleNamespace

import numpy as np
import pytest

from rag.errors import EmbeddingError
from rag.models import CourseRecord


class FakeEmbedder:
    """Stands in for EmbeddingClient: returns a fixed vector, records inputs."""

    def __init__(self, vector=(1.0, 0.0, 0.0), error: EmbeddingError | None = None):
        self.vector = np.asarray(vector, dtype=np.float32)
        self.dim    = self.vector.size
        self.error  = error
        self.calls  = []

    def embed_input(self, item):
        self.calls.append(item)
        if self.error is not None:
            raise self.error
        return self.vector


class FakeOpenAI:
    """Minimal stand-in for openai.OpenAI().chat.completions."""

    def __init__(self, content="Forklaring", error=None):
        self.calls = []
        self.content = content
        self.error = error
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))

    def _create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def make_course(code: str, embedding=None, **fields) -> CourseRecord:
    vector = None if embedding is None else np.asarray(embedding, dtype=np.float32)
    return CourseRecord(code=code, name=fields.pop("name", f"Course {code}"), embedding=vector, **fields)


@pytest.fixture
def toy_corpus():
    """Three-dimensional corpus from the reference scenario."""
    return [
        make_course("REC1", [1, 0, 0], level="Master", language="nb", credits="7.5 SP"),
        make_course("REC2", [0, 1, 0], level="Bachelor", language="en", credits="15"),
        make_course("REC3", [0.9, 0.1, 0], level="Master", language="en", credits="75"),
    ]


@pytest.fixture
def fake_embedder():
    return FakeEmbedder()

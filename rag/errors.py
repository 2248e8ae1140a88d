"""
Error taxonomy for the comparison pipeline.

Every error raised by the core derives from SwaakonError so the service layer
can recover at the boundary of a single comparison request:

    InputValidationError   — query text outside the accepted length band
    EmbeddingError         — endpoint failure ("transport") or bad body ("shape")
    DimensionMismatchError — two vectors of unequal length were compared
    EmptyCorpusError       — no stored course has an embedding
    ExplanationError       — the LLM call behind an explanation failed
"""


class SwaakonError(Exception):
    """Base class for all course-overlap errors."""


class InputValidationError(SwaakonError):
    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field


class EmbeddingError(SwaakonError):
    TRANSPORT = "transport"
    SHAPE     = "shape"

    def __init__(self, kind: str, message: str):
        if kind not in (self.TRANSPORT, self.SHAPE):
            raise ValueError(f"Unknown embedding error kind: {kind!r}")
        super().__init__(message)
        self.kind = kind


class DimensionMismatchError(SwaakonError, ValueError):
    def __init__(self, dim_a: int, dim_b: int):
        super().__init__(f"Vector dimensions do not match: {dim_a} != {dim_b}")
        self.dim_a = dim_a
        self.dim_b = dim_b


class EmptyCorpusError(SwaakonError):
    """No stored course is available to compare against (ingestion problem)."""


class ExplanationError(SwaakonError):
    pass

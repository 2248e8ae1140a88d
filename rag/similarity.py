"""
Vector similarity with the overlap-percent curve shown to users.

Two stages:
    cosine_similarity         raw cosine, raised to the power 1.5 unless the
                              vectors are identical (then exactly 1.0)
    course_similarity_percent 0–100 with a tiered boost:
                                  ≥ 70  → min(99.9, score × 1.2)
                                  40–70 → score × 1.1
                                  < 40  → score × 0.8
                              rounded to one decimal

100.0 is reserved for identical vectors. The review thresholds used by the
explanation prompt (≥ 60 %) are calibrated against this exact curve.
"""

import logging
import math

import numpy as np

from rag.errors import DimensionMismatchError

log = logging.getLogger(__name__)

IDENTICAL_EPS = 1e-10
CONTRAST_EXPONENT = 1.5
MAX_NON_IDENTICAL = 99.9


def _as_vector(v) -> np.ndarray:
    if v is None:
        raise ValueError("Invalid vector: None")
    return np.asarray(v, dtype=np.float64).ravel()


def cosine_similarity(a, b) -> float:
    """
    Contrast-enhanced cosine similarity of two equal-length vectors.

    Returns 1.0 for identical vectors, 0.0 when either vector has zero
    magnitude. Negative cosines clamp to 0.0 before the exponent.
    """
    va, vb = _as_vector(a), _as_vector(b)
    if va.shape != vb.shape:
        raise DimensionMismatchError(va.size, vb.size)

    if np.all(np.abs(va - vb) < IDENTICAL_EPS):
        return 1.0

    mag_a = float(np.linalg.norm(va))
    mag_b = float(np.linalg.norm(vb))
    if mag_a == 0.0 or mag_b == 0.0:
        log.debug("Zero magnitude vector (|a|=%s, |b|=%s)", mag_a, mag_b)
        return 0.0

    raw = float(np.dot(va, vb)) / (mag_a * mag_b)
    raw = min(max(raw, 0.0), 1.0)
    return raw ** CONTRAST_EXPONENT


def course_similarity_percent(a, b) -> float:
    """Overlap percent in [0, 100] as displayed to users."""
    similarity = cosine_similarity(a, b)
    if similarity == 1.0:
        return 100.0

    score = similarity * 100
    if score >= 70:
        score = min(MAX_NON_IDENTICAL, score * 1.2)
    elif score >= 40:
        score = score * 1.1
    else:
        score = score * 0.8

    # half-up, not banker's rounding
    return math.floor(score * 10 + 0.5) / 10

"""
Data model for the comparison pipeline.

    CourseRecord     — one stored course (read-only to the core)
    QueryCourse      — the candidate course a user submits, never persisted
    SimilarityResult — one ranked row: course + overlap percent (+ explanation)
    FilterState      — similarity range + per-field enabled categorical values

CourseRecord.from_dict accepts both the English field names used here and the
Norwegian column names of the course database (kurskode, kursnavn, språk, …).
"""

import hashlib
from dataclasses import dataclass, field, fields, replace
from typing import Any

import numpy as np

# Categorical fields a FilterState can constrain, in display order.
FILTER_FIELDS = (
    "level",
    "language",
    "credits",
    "semester",
    "portfolio",
    "area",
    "coordinator",
    "institute",
)

# Fields matched by the free-text search box.
SEARCH_FIELDS = (
    "code",
    "name",
    "level",
    "language",
    "coordinator",
    "institute",
    "area",
    "content",
    "knowledge",
)

# field → accepted source keys, first match wins
_ALIASES: dict[str, tuple[str, ...]] = {
    "code":               ("code", "kurskode", "course_code"),
    "name":               ("name", "kursnavn", "title"),
    "credits":            ("credits",),
    "level":              ("level", "level_of_study"),
    "language":           ("language", "språk"),
    "semester":           ("semester",),
    "portfolio":          ("portfolio",),
    "institute":          ("institute", "ansvarlig_institutt"),
    "area":               ("area", "ansvarlig_område"),
    "coordinator":        ("coordinator", "academic_coordinator"),
    "content":            ("content", "course_content"),
    "knowledge":          ("knowledge", "learning_outcome_knowledge"),
    "skills":             ("skills", "learning_outcome_skills"),
    "general_competence": ("general_competence", "learning_outcome_general_competence"),
    "literature":         ("literature", "pensum", "syllabus"),
    "link_nb":            ("link_nb",),
    "link_en":            ("link_en",),
}


@dataclass
class CourseRecord:
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
    embedding: np.ndarray | None = field(default=None, repr=False, compare=False)

    @classmethod
    def from_dict(cls, row: dict[str, Any], embedding: np.ndarray | None = None) -> "CourseRecord":
        values: dict[str, Any] = {}
        for name, keys in _ALIASES.items():
            for key in keys:
                if row.get(key) not in (None, ""):
                    values[name] = str(row[key])
                    break
        values.setdefault("code", "")
        return cls(**values, embedding=embedding)

    def to_dict(self, include_embedding: bool = False) -> dict[str, Any]:
        out = {f.name: getattr(self, f.name) for f in fields(self) if f.name != "embedding"}
        if include_embedding:
            out["embedding"] = None if self.embedding is None else self.embedding.tolist()
        return out

    def without_embedding(self) -> "CourseRecord":
        return replace(self, embedding=None)


@dataclass(frozen=True)
class QueryCourse:
    name: str
    description: str
    literature: str | None = None

    @property
    def identity(self) -> str:
        """Stable identity of the submitted text, used to key explanations."""
        digest = hashlib.sha1(
            "\x1f".join([self.name.strip(), self.description.strip(), (self.literature or "").strip()])
            .encode("utf-8")
        ).hexdigest()
        return f"{self.name.strip()}#{digest[:12]}"

    def as_course(self) -> CourseRecord:
        """The candidate as a course: the description stands in for both
        the knowledge outcome and the content."""
        description = self.description.strip()
        return CourseRecord(
            code="",
            name=self.name.strip(),
            knowledge=description,
            content=description,
            literature=(self.literature or "").strip() or None,
        )


@dataclass
class SimilarityResult:
    course: CourseRecord
    similarity: float
    explanation: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out = self.course.to_dict()
        out["similarity"] = self.similarity
        out["explanation"] = self.explanation
        return out


@dataclass(frozen=True)
class FilterState:
    similarity_range: tuple[float, float] = (0.0, 100.0)
    selections: dict[str, frozenset[str]] = field(default_factory=dict)

    def enabled(self, name: str) -> frozenset[str]:
        return self.selections.get(name, frozenset())

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "FilterState":
        """
        Build from a plain dict, e.g.
            {"similarity_range": [50, 100], "level": {"Master": true}}
        Categorical values may be given as {value: bool} or as a list.
        """
        data = data or {}
        lo, hi = data.get("similarity_range") or (0.0, 100.0)
        selections: dict[str, frozenset[str]] = {}
        for name in FILTER_FIELDS:
            raw = data.get(name)
            if not raw:
                continue
            if isinstance(raw, dict):
                chosen = [str(v) for v, on in raw.items() if on is True]
            else:
                chosen = [str(v) for v in raw]
            if chosen:
                selections[name] = frozenset(chosen)
        return cls(similarity_range=(float(lo), float(hi)), selections=selections)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"similarity_range": list(self.similarity_range)}
        for name, values in self.selections.items():
            out[name] = {v: True for v in sorted(values)}
        return out

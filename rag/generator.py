"""
LLM overlap explanation module.

Given the candidate course and one ranked result, formats a prompt and calls
the OpenAI API for a structured Norwegian explanation of where the two
courses overlap. Explanations are generated on demand, one row at a time, and
never block the ranked table.

Each explanation is cached under ExplanationKey(query identity, course code)
in a bounded LRU, so asking twice for the same pair costs one API call.
"""

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass

from openai import OpenAI, OpenAIError

from rag import config
from rag.errors import ExplanationError
from rag.models import QueryCourse, SimilarityResult

log = logging.getLogger(__name__)

REVIEW_THRESHOLD = 60.0


@dataclass(frozen=True)
class ExplanationKey:
    query_identity: str
    course_code: str


class ExplanationCache:
    """Thread-safe LRU of generated explanations."""

    def __init__(self, max_size: int = config.EXPLANATION_CACHE_SIZE):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self._items: OrderedDict[ExplanationKey, str] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, key: ExplanationKey) -> bool:
        with self._lock:
            return key in self._items

    def get(self, key: ExplanationKey) -> str | None:
        with self._lock:
            if key not in self._items:
                return None
            self._items.move_to_end(key)
            return self._items[key]

    def put(self, key: ExplanationKey, value: str) -> None:
        with self._lock:
            self._items[key] = value
            self._items.move_to_end(key)
            while len(self._items) > self.max_size:
                evicted, _ = self._items.popitem(last=False)
                log.debug("Evicted explanation %s", evicted)


# ---------------------------------------------------------------------------
# Prompt builder
# ---------------------------------------------------------------------------

def is_same_course(query: QueryCourse, result: SimilarityResult) -> bool:
    course = result.course
    return bool(course.name) and query.name.strip() == course.name.strip()


def build_prompt(query: QueryCourse, result: SimilarityResult) -> str:
    course = result.course
    score  = result.similarity
    same   = is_same_course(query, result)

    lines = [
        "Du er en akademisk rådgiver som skal forklare overlapp mellom to kurs.",
    ]
    if same:
        lines.append("Dette er samme kurs som sammenlignes med seg selv.")
    lines += [
        "Generer en strukturert forklaring på norsk (maks 250 ord) som sammenligner disse kursene:",
        "",
        f"Kurs A: {query.name.strip()}",
        query.description.strip(),
    ]
    if query.literature:
        lines.append(f"Pensum: {query.literature.strip()}")
    lines += [
        "",
        f"Kurs B: {course.name} ({course.code})",
        course.content or course.knowledge or "Ingen beskrivelse tilgjengelig",
    ]
    if course.literature:
        lines.append(f"Pensum: {course.literature}")
    lines += [
        "",
        f"Similaritet: {score}%",
        "",
        "Formater svaret slik:",
        "",
        "### KURSSAMMENLIGNING",
        "▸ " + ("Dette er samme kurs sammenlignet med seg selv" if same
                else "Kort introduksjon av begge kursene"),
        f"▸ Overordnet vurdering av overlapp ({score}% likhet)",
        "",
        "### HOVEDFOKUS",
        "• Sentrale temaer og konsepter" + (" i kurset" if same else " som overlapper"),
    ]
    if not same:
        lines += [
            f"• Unike aspekter i {query.name.strip()}",
            f"• Unike aspekter i {course.name}",
        ]
    lines += [
        "",
        "### LÆRINGSUTBYTTE",
        "• Sentrale kompetanser" + (" som kurset gir" if same else " som overlapper") + ":",
        "  - [Liste med kompetanser]",
    ]
    if not same:
        lines += [
            f"• Unike kompetanser i {query.name.strip()}:",
            "  - [Liste med unike ferdigheter]",
            f"• Unike kompetanser i {course.name}:",
            "  - [Liste med unike ferdigheter]",
        ]
    lines += ["", "### ANBEFALING"]
    if same:
        lines.append("▸ Dette er samme kurs, så det er ikke relevant å ta det flere ganger")
    else:
        lines.append("▸ Er det hensiktsmessig å ta begge kursene?")
        if score >= REVIEW_THRESHOLD:
            lines.append("▸ Ved høyt overlapp som her bør man vurdere om begge kurs er nødvendige")
        lines += ["▸ Anbefalt rekkefølge (hvis relevant)", "▸ Målgruppe og tilpasning"]

    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Generator
# ---------------------------------------------------------------------------

class ExplanationGenerator:
    def __init__(
        self,
        client: OpenAI | None = None,
        model: str = config.EXPLANATION_MODEL,
        cache: ExplanationCache | None = None,
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ):
        self._client     = client
        self.model       = model
        self.cache       = cache or ExplanationCache()
        self.temperature = temperature
        self.max_tokens  = max_tokens

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            self._client = OpenAI()  # reads OPENAI_API_KEY from env
        return self._client

    def cached(self, query: QueryCourse, course_code: str) -> str | None:
        """Previously generated explanation for this query and course, if any."""
        return self.cache.get(ExplanationKey(query.identity, course_code))

    def explain(self, query: QueryCourse, result: SimilarityResult) -> str:
        key = ExplanationKey(query.identity, result.course.code)
        cached = self.cache.get(key)
        if cached is not None:
            log.info("Explanation cache hit for %s", result.course.code)
            return cached

        log.info("Generating explanation for %s (%.1f%%)…", result.course.code, result.similarity)
        try:
            completion = self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": build_prompt(query, result)}],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except OpenAIError as exc:
            log.error("Explanation failed for %s: %s", result.course.code, exc)
            raise ExplanationError(f"Could not generate explanation: {exc}") from exc

        explanation = (completion.choices[0].message.content or "").strip()
        if not explanation:
            raise ExplanationError("Empty explanation returned by the model")

        self.cache.put(key, explanation)
        return explanation

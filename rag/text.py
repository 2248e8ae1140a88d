"""
Text cleaning for course descriptions.

normalize(text)          → lower-cased, NFKC-normalized text with stopwords and
                           any token that is not purely letters/hyphens removed
extract_keywords(text)   → up to 10 repeated terms, most frequent first

Letters are the ASCII alphabet plus æ/ø/å. Tokens containing digits or
punctuation are dropped whole, so "5G" or "fag." disappear along with the
stopwords. Keep it that way: stored course embeddings were built from text
cleaned exactly like this.
"""

import re
import unicodedata
from collections import Counter

MAX_KEYWORDS = 10

# Bokmål + Nynorsk function words
NORWEGIAN_STOPWORDS = frozenset("""
og i jeg det at en den til er som på de med han av ikke der så var meg seg men
ett har om vi min mitt ha hadde hun nå over da ved fra du ut sin dem oss opp man
kan hans hvor eller hva skal selv sjøl her alle vil bli ble blitt kunne inn når
være kom noen noe ville dere deres kun ja etter ned skulle denne for deg si sine
sitt mot å meget hvorfor dette disse uten hvordan ingen din ditt blir samme
hvilken hvilke sånn inni mellom vår hver hvem vors hvis både bare enn fordi før
mange også slik vært båe begge siden dykk dykkar dei deira deires deim di då eg
ein eit eitt elles honom hjå ho hoe henne hennar hennes hoss hossen ikkje ingi
inkje korleis korso kva kvar kvarhelst kven kvi kvifor me medan mi mine mykje no
nokon noka nokor noko nokre sia sidan so somt somme um upp vere vore verte vort
varte vart
""".split())

ENGLISH_STOPWORDS = frozenset("""
a an the and or but nor so yet if then than as of at by for from in into on onto
to with within without about above after before below between during over under
through up down out off is are was were be been being am have has had do does
did can could may might must shall should will would i me my we our us you your
he him his she her it its they them their this that these those who whom whose
which what when where why how all any both each few more most other some such
no not only own same too very just also there here
""".split())

STOPWORDS = NORWEGIAN_STOPWORDS | ENGLISH_STOPWORDS

_WORD_RE     = re.compile(r"^[a-zæøåA-ZÆØÅ-]+$")
_NON_WORD_RE = re.compile(r"[^a-zæøåA-ZÆØÅ\s-]")
_SPACE_RE    = re.compile(r"\s+")

_QUOTES = str.maketrans({"‘": "'", "’": "'", "“": '"', "”": '"'})


def _prepare(text: str) -> str:
    return unicodedata.normalize("NFKC", text.lower()).translate(_QUOTES)


def normalize(text: str | None) -> str:
    """Drop stopwords and non-word tokens; return the survivors space-joined."""
    if not text:
        return ""
    tokens = _SPACE_RE.split(_prepare(text))
    return " ".join(
        tok for tok in tokens
        if tok not in STOPWORDS and _WORD_RE.match(tok)
    )


def extract_keywords(text: str | None, limit: int = MAX_KEYWORDS) -> list[str]:
    """
    RAKE-style frequency keywords.

    Terms seen only once are noise, so short texts yield no keywords at all.
    Ties keep the order in which the terms first appear.
    """
    if not text:
        return []

    cleaned = _NON_WORD_RE.sub(" ", _prepare(text))
    cleaned = _SPACE_RE.sub(" ", cleaned).strip()

    freq = Counter(word for word in normalize(cleaned).split() if len(word) > 1)
    repeated = [(word, n) for word, n in freq.items() if n > 1]
    repeated.sort(key=lambda item: item[1], reverse=True)
    return [word for word, _ in repeated[:limit]]

"""Local fact extraction from cluster members."""

import re
from typing import Iterable

from ..models.knowledge import MAX_FACTS

MIN_FACT_LENGTH = 15
MAX_FACT_LENGTH = 300

_MARKDOWN_RULES = [
    (re.compile(r"^#{1,6}\s+", re.MULTILINE), ""),
    (re.compile(r"\*\*([^*]+)\*\*"), r"\1"),
    (re.compile(r"\*([^*]+)\*"), r"\1"),
    (re.compile(r"`([^`]+)`"), r"\1"),
    (re.compile(r"\[([^\]]+)\]\([^)]+\)"), r"\1"),
]
_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+|\n+")
_PROPER_NOUN_RE = re.compile(r"[A-Z][a-z]{2,}")
_DIGIT_RE = re.compile(r"\d")
_ASSERTIVE_RE = re.compile(
    r"\b(use[sd]?|prefer|always|never|important|key|critical|must|should|requires?)\b",
    re.IGNORECASE,
)
_VAGUE_START_RE = re.compile(
    r"^(this|that|it|these|those|however|moreover|furthermore|additionally|also|note|see|the following)\b",
    re.IGNORECASE,
)
_BULLET_PREFIX_RE = re.compile(r"^[-*•]\s+")
_WHITESPACE_RE = re.compile(r"\s+")


def strip_markdown(text: str) -> str:
    """Remove heading markers, emphasis, inline code and link syntax."""
    for pattern, repl in _MARKDOWN_RULES:
        text = pattern.sub(repl, text)
    return text


def is_fact(sentence: str) -> bool:
    """Whether a sentence reads as a specific, standalone statement."""
    if not MIN_FACT_LENGTH <= len(sentence) <= MAX_FACT_LENGTH:
        return False
    specific = (
        _PROPER_NOUN_RE.search(sentence[1:])
        or _DIGIT_RE.search(sentence)
        or _ASSERTIVE_RE.search(sentence)
    )
    if not specific:
        return False
    return not _VAGUE_START_RE.match(sentence)


def extract_facts(texts: Iterable[str], limit: int = MAX_FACTS) -> list[str]:
    """Pull up to `limit` fact-like sentences from chunk texts, in order."""
    facts: list[str] = []
    seen: set[str] = set()

    for text in texts:
        for sentence in _SENTENCE_SPLIT_RE.split(strip_markdown(text)):
            sentence = _BULLET_PREFIX_RE.sub("", sentence.strip())
            if not is_fact(sentence):
                continue
            key = _WHITESPACE_RE.sub(" ", sentence.lower())
            if key in seen:
                continue
            seen.add(key)
            facts.append(sentence)
            if len(facts) >= limit:
                return facts

    return facts

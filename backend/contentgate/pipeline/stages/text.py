"""Small text helpers shared by the heuristic stages."""

from __future__ import annotations

import re
from collections.abc import Iterable

_WORD_RE = re.compile(r"[A-Za-z0-9][A-Za-z0-9'\-]*")
_SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")
_PARAGRAPH_SPLIT_RE = re.compile(r"\n\s*\n")
_MD_HEADING_RE = re.compile(r"^(#{1,6})\s+(.+)$", re.MULTILINE)
_HTML_HEADING_RE = re.compile(r"<h([1-6])[^>]*>(.*?)</h\1>", re.IGNORECASE | re.DOTALL)
_LIST_ITEM_RE = re.compile(r"^\s*(?:[-*+]|\d+[.)])\s+\S", re.MULTILINE)
_LINK_RE = re.compile(r"https?://[^\s)\"'>]+")


def words(content: str) -> list[str]:
    """Lowercased word tokens."""
    return [w.lower() for w in _WORD_RE.findall(content)]


def sentences(content: str) -> list[str]:
    # Headings are not sentences
    body = _MD_HEADING_RE.sub("", content)
    return [s.strip() for s in _SENTENCE_SPLIT_RE.split(body) if s.strip()]


def paragraphs(content: str) -> list[str]:
    return [p.strip() for p in _PARAGRAPH_SPLIT_RE.split(content) if p.strip()]


def headings(content: str) -> list[tuple[int, str]]:
    """(level, text) for markdown and HTML headings, in document order."""
    found = [(m.start(), len(m.group(1)), m.group(2).strip()) for m in _MD_HEADING_RE.finditer(content)]
    found += [(m.start(), int(m.group(1)), m.group(2).strip()) for m in _HTML_HEADING_RE.finditer(content)]
    return [(level, text) for _, level, text in sorted(found)]


def list_items(content: str) -> int:
    return len(_LIST_ITEM_RE.findall(content))


def links(content: str) -> list[str]:
    return _LINK_RE.findall(content)


def phrase_counts(content: str, phrases: Iterable[str]) -> dict[str, int]:
    """Whole-word, case-insensitive occurrence count for each phrase (zero counts omitted)."""
    counts: dict[str, int] = {}
    for phrase in phrases:
        pattern = r"\b" + r"\s+".join(re.escape(part) for part in phrase.split()) + r"\b"
        n = len(re.findall(pattern, content, flags=re.IGNORECASE))
        if n:
            counts[phrase] = n
    return counts


def sentence_lengths(content: str) -> list[int]:
    return [len(s.split()) for s in sentences(content)]


def variance(values: list[int]) -> float:
    if not values:
        return 0.0
    mean = sum(values) / len(values)
    return sum((v - mean) ** 2 for v in values) / len(values)


def syllables(content: str) -> int:
    # Vowel groups; approximate
    return len(re.findall(r"[aeiouy]+", content.lower()))


def bounded(score: float, low: float = 0.0, high: float = 100.0) -> float:
    """Keep a heuristic score inside [low, high], rounded to one decimal."""
    return round(max(low, min(high, score)), 1)

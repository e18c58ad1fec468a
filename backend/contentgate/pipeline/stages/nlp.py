"""NLP stage - grammar and readability.

Scores sentence length against a 15-word target, penalizes simple grammar
slips (doubled words, lowercase sentence starts, spacing before punctuation,
"a" before a vowel) and Flesch-Kincaid grades outside 6-16.
"""

from __future__ import annotations

import re

from contentgate.models.results import Dimension, StageResult
from contentgate.pipeline.stages import text
from contentgate.pipeline.stages.base import Stage, StageContext

TARGET_SENTENCE_LENGTH = 15
MAX_COUNTED_ISSUES = 10

_GRAMMAR_PATTERNS: dict[str, re.Pattern[str]] = {
    "doubled_word": re.compile(r"\b(\w+)\s+\1\b", re.IGNORECASE),
    "space_before_punctuation": re.compile(r"\w\s+[,.;:!?](?=\s|$)"),
    "a_before_vowel": re.compile(r"\ba\s+[aeio]\w+", re.IGNORECASE),
}


def grammar_issues(content: str) -> dict[str, int]:
    counts = {name: len(pattern.findall(content)) for name, pattern in _GRAMMAR_PATTERNS.items()}
    counts["lowercase_sentence_start"] = sum(1 for s in text.sentences(content) if s[:1].islower())
    return {name: n for name, n in counts.items() if n}


def flesch_kincaid_grade(content: str) -> float:
    n_words = len(text.words(content))
    n_sentences = len(text.sentences(content))
    if not n_words or not n_sentences:
        return 0.0
    return 0.39 * (n_words / n_sentences) + 11.8 * (text.syllables(content) / n_words) - 15.59


class NLPStage(Stage):
    default_dimension = Dimension.NLP

    def evaluate(self, content: str, context: StageContext) -> StageResult:
        issues: list[str] = []
        lengths = text.sentence_lengths(content)
        if not lengths:
            return self.result(0.0, issues=["Content has no sentences to analyze"])

        avg_length = sum(lengths) / len(lengths)
        score = 100.0 - abs(avg_length - TARGET_SENTENCE_LENGTH) * 2
        if avg_length > TARGET_SENTENCE_LENGTH + 7:
            issues.append("Split long sentences; aim for about 15 words on average")
        elif avg_length < TARGET_SENTENCE_LENGTH - 7:
            issues.append("Combine very short sentences to improve flow")

        found = grammar_issues(content)
        counted = min(MAX_COUNTED_ISSUES, sum(found.values()))
        score -= counted * 3
        if found:
            issues.append("Fix grammar issues: " + ", ".join(k.replace("_", " ") for k in sorted(found)))

        grade = flesch_kincaid_grade(content)
        if grade > 16:
            score -= 10
            issues.append("Simplify vocabulary; reading level is above grade 16")
        elif grade < 6:
            score -= 10

        return self.result(
            text.bounded(score),
            issues=issues,
            average_sentence_length=round(avg_length, 2),
            grammar_issues=found,
            reading_grade=round(grade, 2),
        )

"""Humanization stage - scores how natural (non machine-like) the writing reads.

Signals:
- Stock AI transition phrases lower the score, repeated ones more so
- Contractions, questions and direct address raise it
- Uniform sentence lengths lower it
"""

from __future__ import annotations

import re

from contentgate.models.results import Dimension, StageResult
from contentgate.pipeline.stages import text
from contentgate.pipeline.stages.base import Stage, StageContext

AI_PHRASES = (
    "it is important to note",
    "it's important to note",
    "it's worth noting",
    "it should be noted",
    "furthermore",
    "moreover",
    "in conclusion",
    "to summarize",
    "in summary",
    "cutting-edge solution",
    "comprehensive solution",
    "delve into",
)

_CONTRACTION_RE = re.compile(r"\b\w+'(?:t|re|ve|ll|d|m|s)\b", re.IGNORECASE)
_DIRECT_ADDRESS_RE = re.compile(r"\b(?:I've|you'll|we're|you're|I'm|let's)\b", re.IGNORECASE)

BASE_SCORE = 80.0


class HumanizationStage(Stage):
    default_dimension = Dimension.HUMANIZATION

    def evaluate(self, content: str, context: StageContext) -> StageResult:
        issues: list[str] = []
        score = BASE_SCORE

        ai_hits = text.phrase_counts(content, AI_PHRASES)
        distinct = len(ai_hits)
        if distinct >= 3:
            score -= distinct * 5
        elif distinct >= 1:
            score -= distinct * 2
        repeated = sorted(phrase for phrase, n in ai_hits.items() if n > 2)
        score -= len(repeated) * 5
        if distinct:
            issues.append(
                "Replace stock transition phrases (" + ", ".join(sorted(ai_hits)) + ") with natural wording"
            )

        contractions = len(_CONTRACTION_RE.findall(content))
        score += min(10, contractions * 2)

        questions = content.count("?")
        score += min(8, questions * 3)

        if _DIRECT_ADDRESS_RE.search(content):
            score += 5
        else:
            issues.append("Address the reader directly to make the tone more conversational")

        lengths = text.sentence_lengths(content)
        spread = text.variance(lengths)
        if len(lengths) >= 3 and spread < 10:
            score -= 10
            issues.append("Vary sentence length; uniform sentences read as machine-generated")

        return self.result(
            text.bounded(score),
            issues=issues,
            ai_phrases=ai_hits,
            repeated_phrases=repeated,
            contractions=contractions,
            questions=questions,
            sentence_length_variance=round(spread, 2),
        )

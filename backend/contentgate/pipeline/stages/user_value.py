"""User value stage - actionable, practical guidance for the reader."""

from __future__ import annotations

from contentgate.models.results import Dimension, StageResult
from contentgate.pipeline.stages import text
from contentgate.pipeline.stages.base import Stage, StageContext

VALUE_INDICATORS = ("how to", "step by step", "guide", "tips", "benefits", "solution", "example", "checklist")
SUMMARY_HEADINGS = ("key takeaways", "summary", "next steps", "faq")

BASE_SCORE = 65.0


class UserValueStage(Stage):
    default_dimension = Dimension.USER_VALUE

    def evaluate(self, content: str, context: StageContext) -> StageResult:
        issues: list[str] = []

        indicators = sorted(text.phrase_counts(content, VALUE_INDICATORS))
        score = BASE_SCORE + len(indicators) * 6

        items = text.list_items(content)
        score += min(10, items * 2)
        if not items:
            issues.append("Add a list of concrete, actionable steps")

        heading_texts = [t.lower() for _, t in text.headings(content)]
        has_summary = any(any(s in h for s in SUMMARY_HEADINGS) for h in heading_texts)
        if has_summary:
            score += 5
        else:
            issues.append("End with key takeaways or next steps")

        audience_match = False
        if context.target_audience:
            audience_terms = [w for w in text.words(context.target_audience) if len(w) > 3]
            content_words = set(text.words(content))
            audience_match = any(w in content_words for w in audience_terms)
            if audience_match:
                score += 4
            else:
                issues.append(f"Speak to the target audience ({context.target_audience}) explicitly")

        if len(indicators) < 2:
            issues.insert(0, "Add more actionable value and practical guidance")

        return self.result(
            text.bounded(score),
            issues=issues,
            value_indicators=indicators,
            list_items=items,
            has_summary=has_summary,
            audience_match=audience_match,
        )

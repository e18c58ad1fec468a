"""SEO stage - keyword coverage and on-page structure.

Keyword density (phrase occurrences per 100 words) is optimal in the
0.5-3% band. Heading structure and length add smaller bonuses.
"""

from __future__ import annotations

import re

from contentgate.models.results import Dimension, StageResult
from contentgate.pipeline.stages import text
from contentgate.pipeline.stages.base import Stage, StageContext

OPTIMAL_DENSITY = (0.5, 3.0)
BASE_SCORE = 60.0


def keyword_density(content: str, keyword: str) -> float:
    """Percentage of words accounted for by occurrences of ``keyword``."""
    total = len(text.words(content))
    if total == 0:
        return 0.0
    pattern = r"\b" + r"\s+".join(re.escape(p) for p in keyword.lower().split()) + r"\b"
    occurrences = len(re.findall(pattern, content.lower()))
    return occurrences * len(keyword.split()) / total * 100


class SEOStage(Stage):
    default_dimension = Dimension.SEO

    def evaluate(self, content: str, context: StageContext) -> StageResult:
        issues: list[str] = []
        score = BASE_SCORE

        found_headings = text.headings(content)
        has_h1 = any(level == 1 for level, _ in found_headings)
        h2_count = sum(1 for level, _ in found_headings if level == 2)
        if has_h1:
            score += 10
        else:
            issues.append("Add a single H1 title")
        if h2_count >= 2:
            score += 8
        else:
            issues.append("Break the content into at least two H2 sections")
        if has_h1 and h2_count > 0:
            score += 5

        word_count = len(text.words(content))
        if word_count >= 500:
            score += 5
        if word_count >= 1000:
            score += 3
        if word_count < 300:
            issues.append("Expand thin content to at least 300 words")

        densities: dict[str, float] = {}
        for keyword in context.keywords:
            densities[keyword] = round(keyword_density(content, keyword), 2)

        if densities:
            primary = context.keywords[0]
            density = densities[primary]
            low, high = OPTIMAL_DENSITY
            if low <= density <= high:
                score += 15
            elif density > 0:
                score += 5
                issues.append(f"Adjust density of '{primary}' to {low:g}-{high:g}% (now {density:g}%)")
            else:
                score -= 10
                issues.append(f"Use the primary keyword '{primary}' in the body")
            heading_text = " ".join(t.lower() for _, t in found_headings)
            if any(k.lower() in heading_text for k in context.keywords):
                score += 7
            else:
                issues.append("Place a target keyword in at least one heading")
        else:
            issues.append("No target keywords supplied; keyword coverage not scored")

        return self.result(
            text.bounded(score),
            issues=issues,
            word_count=word_count,
            has_h1=has_h1,
            h2_count=h2_count,
            keyword_density=densities,
        )

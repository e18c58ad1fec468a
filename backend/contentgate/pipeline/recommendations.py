"""Recommendation Engine - prioritized remediation text for failing dimensions.

Ordering:
1. One global warning when the overall score is below the critical bar
2. Failing dimensions by weighted gap, largest first

Weighted gap is ``(threshold - score) * weight``. Severity is taken from the
raw gap (> 10 HIGH, > 5 MEDIUM, else LOW). Ties keep registry order.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

from contentgate.models.results import Dimension, DimensionScore

HIGH_GAP = 10.0
MEDIUM_GAP = 5.0

_DIMENSION_ADVICE: dict[str, str] = {
    Dimension.HUMANIZATION.value: "Rewrite formulaic phrasing in a natural, conversational voice",
    Dimension.AUTHORITY.value: "Cite research, data and named expert sources",
    Dimension.EEAT.value: "Show first-hand experience, credentials and trust signals",
    Dimension.SEO.value: "Improve keyword coverage and heading structure",
    Dimension.NLP.value: "Fix grammar issues and improve readability",
    Dimension.USER_VALUE.value: "Add more actionable value and practical guidance",
}
_GENERIC_ADVICE = "Review this dimension and address the reported issues"


class RecommendationSeverity(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


def severity_for(gap: float) -> RecommendationSeverity:
    if gap > HIGH_GAP:
        return RecommendationSeverity.HIGH
    if gap > MEDIUM_GAP:
        return RecommendationSeverity.MEDIUM
    return RecommendationSeverity.LOW


def _fmt(value: float) -> str:
    # 90.0 -> "90", 87.5 -> "87.5"
    return f"{value:g}"


@dataclass(frozen=True)
class Recommendation:
    """One remediation item for a failing dimension."""

    dimension: str
    severity: RecommendationSeverity
    gap: float
    weighted_gap: float
    score: float
    threshold: float
    advice: str

    def render(self) -> str:
        return (
            f"[{self.severity.value}] {self.dimension}: {self.gap:.1f} points below target "
            f"(Current: {self.score:.1f}, Target: {_fmt(self.threshold)}). {self.advice}"
        )


class RecommendationEngine:
    """Turns dimension scores into an ordered list of recommendations.

    Args:
        critical_threshold: Overall score below which the global warning is emitted.
    """

    def __init__(self, critical_threshold: float) -> None:
        self.critical_threshold = critical_threshold

    def prioritize(self, dimension_scores: Sequence[DimensionScore]) -> list[Recommendation]:
        """Structured recommendations for the failing dimensions, highest priority first."""
        failing = [ds for ds in dimension_scores if not ds.passes]
        # sorted() is stable, so equal weighted gaps keep registry order
        failing = sorted(failing, key=lambda ds: ds.weighted_gap, reverse=True)
        return [
            Recommendation(
                dimension=ds.dimension,
                severity=severity_for(ds.gap),
                gap=ds.gap,
                weighted_gap=ds.weighted_gap,
                score=ds.score,
                threshold=ds.threshold,
                advice=ds.issues[0] if ds.issues else _DIMENSION_ADVICE.get(ds.dimension, _GENERIC_ADVICE),
            )
            for ds in failing
        ]

    def global_warning(self, dimension_scores: Sequence[DimensionScore]) -> str | None:
        overall = round(sum(ds.weighted_score for ds in dimension_scores), 2)
        if overall >= self.critical_threshold:
            return None
        return (
            f"[CRITICAL] Overall quality score {overall:.2f} is below the critical bar of "
            f"{_fmt(self.critical_threshold)}. Address the dimensions below before publishing."
        )

    def recommend(self, dimension_scores: Sequence[DimensionScore]) -> list[str]:
        """Rendered recommendation lines. Pure function of its input."""
        lines = [rec.render() for rec in self.prioritize(dimension_scores)]
        warning = self.global_warning(dimension_scores)
        if warning:
            lines.insert(0, warning)
        return lines

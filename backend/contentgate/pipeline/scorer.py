"""Weighted Aggregator - combines stage results into one QualityScore.

The aggregator is fail-closed:
- the result set must cover exactly the registry's enabled dimensions
- every score must be a finite number in [0, 100]

Anything else raises an AggregationError subclass; no partial score is built.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from contentgate.models.results import (
    MAX_SCORE,
    MIN_SCORE,
    DimensionScore,
    QualityScore,
    StageResult,
    grade_for,
    is_valid_score,
)
from contentgate.pipeline.recommendations import RecommendationEngine
from contentgate.pipeline.registry import StageRegistry

logger = logging.getLogger(__name__)


class AggregationError(Exception):
    """Base class for aggregation contract violations."""


class IncompleteResultsError(AggregationError):
    """Results do not cover exactly the registered dimensions."""

    def __init__(
        self,
        missing: Sequence[str] = (),
        unexpected: Sequence[str] = (),
        duplicated: Sequence[str] = (),
    ) -> None:
        self.missing = list(missing)
        self.unexpected = list(unexpected)
        self.duplicated = list(duplicated)
        parts = []
        if self.missing:
            parts.append(f"missing: {', '.join(self.missing)}")
        if self.unexpected:
            parts.append(f"unexpected: {', '.join(self.unexpected)}")
        if self.duplicated:
            parts.append(f"duplicated: {', '.join(self.duplicated)}")
        super().__init__("Incomplete stage results (" + "; ".join(parts) + ")")


class ScoreRangeError(AggregationError):
    """A stage score is outside [0, 100] or not a finite number."""

    def __init__(self, dimension: str, score: float) -> None:
        self.dimension = dimension
        self.score = score
        super().__init__(f"Score for {dimension!r} out of range [0, 100]: {score!r}")


class WeightedAggregator:
    """Scores a complete result set against a closed registry.

    Args:
        registry: Closed StageRegistry supplying order, weights and thresholds
        global_threshold: Overall pass bar
        recommender: Recommendation engine (defaults to one whose critical bar
            equals ``critical_threshold`` or, when that is None, the global threshold)
    """

    def __init__(
        self,
        registry: StageRegistry,
        global_threshold: float,
        critical_threshold: float | None = None,
        recommender: RecommendationEngine | None = None,
    ) -> None:
        if not (MIN_SCORE <= global_threshold <= MAX_SCORE):
            raise ValueError(f"global_threshold must be in [0, 100], got {global_threshold}")
        self.registry = registry
        self.global_threshold = global_threshold
        self.recommender = recommender or RecommendationEngine(
            global_threshold if critical_threshold is None else critical_threshold
        )

    def _check_complete(self, results: Sequence[StageResult]) -> dict[str, StageResult]:
        expected = self.registry.dimensions
        by_dimension: dict[str, StageResult] = {}
        duplicated: list[str] = []
        for result in results:
            if result.dimension in by_dimension and result.dimension not in duplicated:
                duplicated.append(result.dimension)
            by_dimension[result.dimension] = result

        missing = [d for d in expected if d not in by_dimension]
        unexpected = [d for d in by_dimension if d not in expected]
        if missing or unexpected or duplicated:
            raise IncompleteResultsError(missing, unexpected, duplicated)
        return by_dimension

    def score(
        self,
        results: Iterable[StageResult],
        *,
        fallback_dimensions: frozenset[str] = frozenset(),
    ) -> QualityScore:
        """Aggregate stage results into a QualityScore.

        Args:
            results: One StageResult per registered dimension, in any order
            fallback_dimensions: Dimensions whose result is a degraded-mode fallback

        Raises:
            IncompleteResultsError: Missing, extra or repeated dimensions
            ScoreRangeError: A score outside [0, 100] or NaN
        """
        results = list(results)
        by_dimension = self._check_complete(results)

        for result in results:
            if not is_valid_score(result.score):
                raise ScoreRangeError(result.dimension, result.score)

        dimension_scores = tuple(
            DimensionScore.build(
                dimension=entry.dimension,
                score=float(by_dimension[entry.dimension].score),
                weight=entry.weight,
                threshold=entry.threshold,
                fallback=entry.dimension in fallback_dimensions,
                issues=tuple(by_dimension[entry.dimension].issues),
            )
            for entry in self.registry.resolve()
        )

        overall = round(sum(ds.weighted_score for ds in dimension_scores), 2)
        quality = QualityScore(
            overall_score=overall,
            grade=grade_for(overall),
            dimension_scores=dimension_scores,
            passes_threshold=overall >= self.global_threshold,
            global_threshold=self.global_threshold,
            recommendations=tuple(self.recommender.recommend(dimension_scores)),
            degraded=bool(fallback_dimensions),
        )
        logger.debug(
            "Aggregated %d dimension(s): overall=%.2f grade=%s passes=%s",
            len(dimension_scores),
            quality.overall_score,
            quality.grade.value,
            quality.passes_threshold,
        )
        return quality

"""Stage result and quality score models for the content quality gate.

A pipeline run produces one StageResult (or StageFailure) per registered
dimension. The aggregator turns a complete set of results into DimensionScores
and a single QualityScore:

- StageResult: raw output of one stage, score in [0, 100]
- StageFailure: a stage that exhausted its attempts
- DimensionScore: a result joined with registry weight and threshold
- QualityScore: the aggregate accept/reject decision for one run
"""

from __future__ import annotations

import math
import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

MIN_SCORE = 0.0
MAX_SCORE = 100.0

_DIMENSION_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9_]*$")


class Dimension(str, Enum):
    """Built-in quality dimensions.

    Additional dimensions exist only through registry configuration.
    """

    HUMANIZATION = "humanization"
    AUTHORITY = "authority"
    EEAT = "eeat"
    SEO = "seo"
    NLP = "nlp"
    USER_VALUE = "userValue"


def normalize_dimension(dimension: Dimension | str) -> str:
    """Return the plain string identifier for a dimension.

    Raises:
        ValueError: If the identifier is not a valid dimension name.
    """
    value = dimension.value if isinstance(dimension, Dimension) else str(dimension)
    if not _DIMENSION_PATTERN.match(value):
        raise ValueError(f"Invalid dimension identifier: {value!r}")
    return value


class Grade(str, Enum):
    """Informational letter grade for an overall score."""

    A_PLUS = "A+"
    A = "A"
    B_PLUS = "B+"
    B = "B"
    C_PLUS = "C+"
    C = "C"
    D = "D"
    F = "F"


# Lower bounds, highest first
_GRADE_BOUNDS: tuple[tuple[float, Grade], ...] = (
    (95.0, Grade.A_PLUS),
    (90.0, Grade.A),
    (85.0, Grade.B_PLUS),
    (80.0, Grade.B),
    (75.0, Grade.C_PLUS),
    (70.0, Grade.C),
    (60.0, Grade.D),
)


def is_valid_score(score: Any) -> bool:
    """True for a finite real number in [0, 100]."""
    return (
        isinstance(score, (int, float))
        and not isinstance(score, bool)
        and not math.isnan(score)
        and MIN_SCORE <= score <= MAX_SCORE
    )


def grade_for(overall_score: float) -> Grade:
    """Map an overall score to a letter grade. Never used for gating."""
    for bound, grade in _GRADE_BOUNDS:
        if overall_score >= bound:
            return grade
    return Grade.F


class StageResult(BaseModel):
    """Output of one dimension's evaluation.

    Attributes:
        dimension: Registered dimension identifier.
        score: Score in the closed interval [0, 100]. Out-of-range values
            fail validation; they are never clamped.
        detail: Free-form evidence (matched issues, counts) used for
            recommendation text only.
    """

    model_config = ConfigDict(frozen=True)

    dimension: str = Field(..., description="Registered dimension identifier")
    score: float = Field(..., ge=MIN_SCORE, le=MAX_SCORE, allow_inf_nan=False)
    detail: dict[str, Any] = Field(default_factory=dict)

    @field_validator("dimension", mode="before")
    @classmethod
    def _normalize_dimension(cls, value: Any) -> str:
        return normalize_dimension(value)

    @property
    def issues(self) -> list[str]:
        """Issue hints reported by the stage, if any."""
        raw = self.detail.get("issues") or []
        return [str(item) for item in raw]


class StageFailure(BaseModel):
    """A stage that produced no usable result after all attempts."""

    model_config = ConfigDict(frozen=True)

    dimension: str
    error: str = Field(..., description="Last error observed")
    error_type: str = Field(default="Exception")
    attempts: int = Field(default=0, ge=0)
    timed_out: bool = False

    def describe(self) -> str:
        plural = "s" if self.attempts != 1 else ""
        return f"{self.dimension} failed after {self.attempts} attempt{plural}: {self.error}"


class DimensionScore(BaseModel):
    """A stage score joined with its registry weight and threshold.

    Weight and threshold always come from the registry. A stage never
    reports its own pass bar.
    """

    model_config = ConfigDict(frozen=True)

    dimension: str
    score: float = Field(..., ge=MIN_SCORE, le=MAX_SCORE)
    weight: float = Field(..., ge=0)
    weighted_score: float
    threshold: float = Field(..., ge=MIN_SCORE, le=MAX_SCORE)
    passes: bool
    fallback: bool = False
    issues: tuple[str, ...] = ()

    @model_validator(mode="after")
    def _check_derived_fields(self) -> "DimensionScore":
        if self.passes != (self.score >= self.threshold):
            raise ValueError("passes must equal score >= threshold")
        if abs(self.weighted_score - self.score * self.weight) > 1e-9:
            raise ValueError("weighted_score must equal score * weight")
        return self

    @classmethod
    def build(
        cls,
        *,
        dimension: str,
        score: float,
        weight: float,
        threshold: float,
        fallback: bool = False,
        issues: tuple[str, ...] = (),
    ) -> "DimensionScore":
        return cls(
            dimension=dimension,
            score=score,
            weight=weight,
            weighted_score=score * weight,
            threshold=threshold,
            passes=score >= threshold,
            fallback=fallback,
            issues=issues,
        )

    @property
    def gap(self) -> float:
        """Raw distance below the threshold (0 when passing)."""
        return max(0.0, self.threshold - self.score)

    @property
    def weighted_gap(self) -> float:
        return self.gap * self.weight


class QualityScore(BaseModel):
    """Aggregate decision for one pipeline run."""

    model_config = ConfigDict(frozen=True)

    overall_score: float
    grade: Grade
    dimension_scores: tuple[DimensionScore, ...]
    passes_threshold: bool
    global_threshold: float
    recommendations: tuple[str, ...] = ()
    degraded: bool = False
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def failing_dimensions(self) -> list[str]:
        return [d.dimension for d in self.dimension_scores if not d.passes]

    @property
    def all_dimensions_pass(self) -> bool:
        return all(d.passes for d in self.dimension_scores)

    def dimension(self, name: str) -> DimensionScore:
        for ds in self.dimension_scores:
            if ds.dimension == name:
                return ds
        raise KeyError(name)

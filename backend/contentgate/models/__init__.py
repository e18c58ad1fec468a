"""Pydantic models for the content quality gate."""

from contentgate.models.results import (
    MAX_SCORE,
    MIN_SCORE,
    Dimension,
    DimensionScore,
    Grade,
    QualityScore,
    StageFailure,
    StageResult,
    grade_for,
    is_valid_score,
    normalize_dimension,
)
from contentgate.models.versions import ContentVersion

__all__ = [
    # Results
    "Dimension",
    "StageResult",
    "StageFailure",
    "DimensionScore",
    "QualityScore",
    "Grade",
    "grade_for",
    "is_valid_score",
    "normalize_dimension",
    "MIN_SCORE",
    "MAX_SCORE",
    # Versions
    "ContentVersion",
]

"""Tests for result, score and version models."""

import math

import pytest
from pydantic import ValidationError

from contentgate.models import (
    ContentVersion,
    Dimension,
    DimensionScore,
    StageFailure,
    StageResult,
    is_valid_score,
    normalize_dimension,
)
from factories import make_dimension_score, make_version


class TestDimension:
    def test_enum_values(self):
        assert Dimension.USER_VALUE.value == "userValue"
        assert normalize_dimension(Dimension.EEAT) == "eeat"

    @pytest.mark.parametrize("name", ["seo", "userValue", "custom_dim2"])
    def test_valid_identifiers(self, name):
        assert normalize_dimension(name) == name

    @pytest.mark.parametrize("name", ["", "2seo", "has space", "dash-name"])
    def test_invalid_identifiers(self, name):
        with pytest.raises(ValueError):
            normalize_dimension(name)


class TestStageResult:
    def test_valid_result(self):
        result = StageResult(dimension=Dimension.SEO, score=87.5, detail={"issues": ["Add an H1"]})

        assert result.dimension == "seo"
        assert result.issues == ["Add an H1"]

    @pytest.mark.parametrize("score", [-1.0, 100.1, math.nan, math.inf])
    def test_out_of_range_score_rejected_not_clamped(self, score):
        with pytest.raises(ValidationError):
            StageResult(dimension="seo", score=score)

    def test_frozen(self):
        result = StageResult(dimension="seo", score=50.0)

        with pytest.raises(ValidationError):
            result.score = 60.0

    def test_issues_default_empty(self):
        assert StageResult(dimension="seo", score=50.0).issues == []


class TestIsValidScore:
    @pytest.mark.parametrize("value", [0, 0.0, 50, 100.0])
    def test_valid(self, value):
        assert is_valid_score(value)

    @pytest.mark.parametrize("value", [-0.01, 100.01, math.nan, "90", None, True])
    def test_invalid(self, value):
        assert not is_valid_score(value)


class TestDimensionScore:
    def test_build_derives_fields(self):
        ds = make_dimension_score("seo", score=70.0, weight=0.5, threshold=90.0)

        assert ds.weighted_score == 35.0
        assert ds.passes is False
        assert ds.gap == 20.0
        assert ds.weighted_gap == 10.0

    def test_passing_dimension_has_no_gap(self):
        ds = make_dimension_score("seo", score=95.0, threshold=90.0)
        assert ds.gap == 0.0

    def test_inconsistent_passes_rejected(self):
        with pytest.raises(ValidationError, match="passes must equal"):
            DimensionScore(
                dimension="seo", score=70.0, weight=0.5, weighted_score=35.0, threshold=90.0, passes=True
            )

    def test_inconsistent_weighted_score_rejected(self):
        with pytest.raises(ValidationError, match="weighted_score must equal"):
            DimensionScore(
                dimension="seo", score=70.0, weight=0.5, weighted_score=30.0, threshold=90.0, passes=False
            )


class TestStageFailure:
    def test_describe(self):
        failure = StageFailure(dimension="seo", error="boom", attempts=2)
        assert failure.describe() == "seo failed after 2 attempts: boom"

    def test_describe_single_attempt(self):
        failure = StageFailure(dimension="seo", error="boom", attempts=1)
        assert failure.describe() == "seo failed after 1 attempt: boom"


class TestContentVersion:
    def test_db_row_round_trip(self):
        version = make_version(version_number=3, content="Body text", overall_score=91.0)

        assert ContentVersion.from_db_row(version.to_db_row()) == version

    def test_version_number_starts_at_one(self):
        with pytest.raises(ValidationError):
            make_version(version_number=0)

    def test_is_initial(self):
        assert make_version(version_number=1).is_initial
        assert not make_version(version_number=2).is_initial

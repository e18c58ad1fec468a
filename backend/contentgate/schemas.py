from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from contentgate.models.results import StageFailure
from contentgate.models.versions import ContentVersion
from contentgate.pipeline.orchestrator import RunMode, RunOptions
from contentgate.pipeline.run import RunStatus
from contentgate.pipeline.stages.base import StageContext


class ContextPayload(BaseModel):
    keywords: list[str] = Field(default_factory=list)
    target_audience: str | None = None
    content_type: str | None = None
    extra: dict[str, Any] = Field(default_factory=dict)

    def to_context(self) -> StageContext:
        return StageContext(
            keywords=tuple(self.keywords),
            target_audience=self.target_audience,
            content_type=self.content_type,
            extra=dict(self.extra),
        )


class OptionsPayload(BaseModel):
    mode: RunMode = RunMode.STRICT
    stage_timeout_s: float | None = Field(default=None, gt=0)
    deadline_s: float | None = Field(default=None, gt=0)
    fallback_scores: dict[str, float] = Field(default_factory=dict)
    max_retries: int | None = Field(default=None, ge=0)

    def to_options(self) -> RunOptions:
        return RunOptions(
            mode=self.mode,
            stage_timeout_s=self.stage_timeout_s,
            deadline_s=self.deadline_s,
            fallback_scores=dict(self.fallback_scores),
            max_retries=self.max_retries,
        )


class EvaluateRequest(BaseModel):
    content_id: str = Field(min_length=1)
    content: str
    context: ContextPayload = Field(default_factory=ContextPayload)
    options: OptionsPayload = Field(default_factory=OptionsPayload)
    persist: bool = False
    author: str = Field(default="generator", min_length=1)


class DimensionScoreOut(BaseModel):
    dimension: str
    score: float
    weight: float
    weighted_score: float
    threshold: float
    passes: bool
    fallback: bool = False


class QualityScoreOut(BaseModel):
    overall_score: float
    grade: str
    passes_threshold: bool
    global_threshold: float
    degraded: bool
    timestamp: str
    dimension_scores: list[DimensionScoreOut]
    recommendations: list[str]


class VersionOut(BaseModel):
    content_id: str
    version_id: str
    version_number: int
    timestamp: str
    content: str
    change_summary: str
    tokens_added: int
    tokens_removed: int
    author: str
    overall_score: float | None = None

    @classmethod
    def from_version(cls, version: ContentVersion) -> "VersionOut":
        return cls(
            content_id=version.content_id,
            version_id=version.version_id,
            version_number=version.version_number,
            timestamp=version.timestamp.isoformat(),
            content=version.content,
            change_summary=version.change_summary,
            tokens_added=version.tokens_added,
            tokens_removed=version.tokens_removed,
            author=version.author,
            overall_score=version.overall_score,
        )


class EvaluateResponse(BaseModel):
    content_id: str
    status: RunStatus
    publishable: bool
    quality_score: QualityScoreOut | None = None
    failures: list[StageFailure] = Field(default_factory=list)
    error: str | None = None
    version: VersionOut | None = None
    duration_ms: float


class DimensionConfigOut(BaseModel):
    dimension: str
    stage: str
    weight: float
    threshold: float
    enabled: bool


class QualityConfigResponse(BaseModel):
    global_threshold: float
    critical_threshold: float
    stage_timeout_s: float
    run_deadline_s: float
    max_retries: int
    max_in_flight: int
    dimensions: list[DimensionConfigOut]


class RevisionRequest(BaseModel):
    content: str
    author: str = Field(default="editor", min_length=1)
    overall_score: float | None = Field(default=None, ge=0, le=100)


class VersionHistoryResponse(BaseModel):
    content_id: str
    versions: list[VersionOut]


class AppStatus(BaseModel):
    status: str
    version: str
    dimensions: list[str]
    version_store: str

"""Caller-facing pipeline: run, decide, optionally persist, emit telemetry.

QualityPipeline wires one closed registry, aggregator, orchestrator and
version recorder together. It is built once per process by build_pipeline();
configuration errors surface there, never during an evaluation.
"""

from __future__ import annotations

import logging
import time
from enum import Enum
from typing import Any

import anyio
from pydantic import BaseModel, ConfigDict, Field

from contentgate import config_store
from contentgate.db import SqliteVersionStore
from contentgate.models.results import QualityScore, StageFailure
from contentgate.models.versions import ContentVersion
from contentgate.pipeline.events import EventEmitter, EventType
from contentgate.pipeline.orchestrator import (
    PipelineOrchestrator,
    RetryPolicy,
    RunAbortedError,
    RunCancelledError,
    RunOptions,
)
from contentgate.pipeline.registry import (
    DEFAULT_STAGE_CONFIG,
    ConfigurationError,
    StageRegistry,
    build_registry,
)
from contentgate.pipeline.scorer import AggregationError, WeightedAggregator
from contentgate.pipeline.stages import builtin_stages
from contentgate.pipeline.stages.base import Stage, StageContext
from contentgate.pipeline.versioning import InMemoryVersionStore, VersionRecorder, VersionStore
from contentgate.settings import Settings, VersionStoreEnum

logger = logging.getLogger(__name__)


class RunStatus(str, Enum):
    COMPLETED = "completed"
    DEGRADED = "degraded"
    ABORTED = "aborted"
    CANCELLED = "cancelled"


_EVENT_FOR_STATUS = {
    RunStatus.COMPLETED: EventType.RUN_COMPLETED,
    RunStatus.DEGRADED: EventType.RUN_DEGRADED,
    RunStatus.ABORTED: EventType.RUN_ABORTED,
    RunStatus.CANCELLED: EventType.RUN_CANCELLED,
}


class EvaluationResult(BaseModel):
    """Outcome of one QualityPipeline.evaluate call."""

    model_config = ConfigDict(frozen=True)

    content_id: str
    status: RunStatus
    quality_score: QualityScore | None = None
    failures: tuple[StageFailure, ...] = ()
    error: str | None = None
    version: ContentVersion | None = None
    duration_ms: float = Field(default=0.0, ge=0)

    @property
    def publishable(self) -> bool:
        return (
            self.status in (RunStatus.COMPLETED, RunStatus.DEGRADED)
            and self.quality_score is not None
            and self.quality_score.passes_threshold
        )


class QualityPipeline:
    """Content quality gate for one process."""

    def __init__(
        self,
        registry: StageRegistry,
        orchestrator: PipelineOrchestrator,
        recorder: VersionRecorder,
        emitter: EventEmitter | None = None,
    ) -> None:
        self.registry = registry
        self.orchestrator = orchestrator
        self.recorder = recorder
        self.emitter = emitter or EventEmitter()

    @property
    def aggregator(self) -> WeightedAggregator:
        return self.orchestrator.aggregator

    async def evaluate(
        self,
        content_id: str,
        content: str,
        context: StageContext | None = None,
        options: RunOptions | None = None,
        *,
        persist: bool = False,
        author: str = "generator",
    ) -> EvaluationResult:
        """Score ``content`` and return the decision.

        Aborted and cancelled runs are returned as results with the matching
        status and error text; they are never raised. With ``persist`` a
        completed or degraded run is recorded as a new version, whether or not
        it passes the threshold. A persistence failure leaves ``version`` unset
        and is reported in ``error``; the decision itself still stands.
        """
        started = time.perf_counter()
        quality: QualityScore | None = None
        failures: list[StageFailure] = []
        error: str | None = None
        version: ContentVersion | None = None

        try:
            quality, failures = await self.orchestrator.run(content, context, options)
            status = RunStatus.DEGRADED if quality.degraded else RunStatus.COMPLETED
        except RunAbortedError as e:
            status, failures, error = RunStatus.ABORTED, e.failures, str(e)
        except AggregationError as e:
            status, error = RunStatus.ABORTED, str(e)
            logger.error("Aggregation failed for %s: %s", content_id, e)
        except RunCancelledError as e:
            status, error = RunStatus.CANCELLED, str(e)

        if quality is not None and persist:
            try:
                version = await anyio.to_thread.run_sync(
                    self.recorder.record_revision, content_id, content, author, quality.overall_score
                )
            except Exception as e:  # noqa: BLE001 - reported in the result, never raised
                error = f"Version not recorded: {type(e).__name__}: {e}"
                logger.error("Persisting %s failed: %s", content_id, e, exc_info=True)

        duration_ms = (time.perf_counter() - started) * 1000
        result = EvaluationResult(
            content_id=content_id,
            status=status,
            quality_score=quality,
            failures=tuple(failures),
            error=error,
            version=version,
            duration_ms=round(duration_ms, 2),
        )
        self._emit(result)
        if quality is not None:
            logger.info(
                "Evaluated %s: status=%s overall=%.2f passes=%s (%.0f ms)",
                content_id, status.value, quality.overall_score, quality.passes_threshold, duration_ms,
            )
        else:
            logger.warning(
                "Evaluation of %s ended %s: %s (%.0f ms)", content_id, status.value, error, duration_ms
            )
        return result

    def _emit(self, result: EvaluationResult) -> None:
        quality = result.quality_score
        data: dict[str, Any] = {
            "content_id": result.content_id,
            "status": result.status.value,
            "overall_score": quality.overall_score if quality else None,
            "passes_threshold": quality.passes_threshold if quality else False,
            "dimensions": {ds.dimension: ds.passes for ds in quality.dimension_scores} if quality else {},
            "failed_stages": [f.dimension for f in result.failures],
            "duration_ms": result.duration_ms,
        }
        self.emitter.emit(_EVENT_FOR_STATUS[result.status], data)


def load_stage_config(settings: Settings) -> dict[str, Any]:
    """Stage config from YAML when configured, else the built-in defaults."""
    path = settings.resolved_stages_config_path
    if path is None:
        return DEFAULT_STAGE_CONFIG
    try:
        return config_store.load_yaml(path)
    except config_store.ConfigFileError as e:
        raise ConfigurationError(str(e)) from e


def build_version_store(settings: Settings) -> VersionStore:
    if settings.version_store == VersionStoreEnum.MEMORY:
        return InMemoryVersionStore()
    return SqliteVersionStore(settings.db_path)


def build_pipeline(
    settings: Settings,
    *,
    stages: dict[str, Stage] | None = None,
    config: dict[str, Any] | None = None,
    store: VersionStore | None = None,
    emitter: EventEmitter | None = None,
) -> QualityPipeline:
    """Build a ready pipeline.

    Raises:
        ConfigurationError: For any invalid stage configuration.
    """
    registry = build_registry(
        config if config is not None else load_stage_config(settings),
        stages if stages is not None else builtin_stages(),
    )
    aggregator = WeightedAggregator(
        registry,
        global_threshold=settings.global_threshold,
        critical_threshold=settings.effective_critical_threshold,
    )
    orchestrator = PipelineOrchestrator(
        registry,
        aggregator,
        stage_timeout_s=settings.stage_timeout_s,
        run_deadline_s=settings.run_deadline_s,
        retry=RetryPolicy(max_retries=settings.max_retries, backoff_s=settings.retry_backoff_s),
        max_in_flight=settings.max_in_flight,
    )
    recorder = VersionRecorder(store if store is not None else build_version_store(settings))
    return QualityPipeline(registry, orchestrator, recorder, emitter)

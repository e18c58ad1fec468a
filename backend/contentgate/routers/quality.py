"""Quality API router - evaluate content and inspect the gate configuration."""

from fastapi import APIRouter, HTTPException, Request

from contentgate.limits import limiter
from contentgate.pipeline.run import EvaluationResult, QualityPipeline
from contentgate.schemas import (
    DimensionConfigOut,
    DimensionScoreOut,
    EvaluateRequest,
    EvaluateResponse,
    QualityConfigResponse,
    QualityScoreOut,
    VersionOut,
)
from contentgate.settings import settings

router = APIRouter(prefix="/api/quality", tags=["quality"])


def get_pipeline(request: Request) -> QualityPipeline:
    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        raise HTTPException(status_code=503, detail="Quality pipeline not initialized")
    return pipeline


def _to_response(result: EvaluationResult) -> EvaluateResponse:
    quality = result.quality_score
    quality_out = None
    if quality is not None:
        quality_out = QualityScoreOut(
            overall_score=quality.overall_score,
            grade=quality.grade.value,
            passes_threshold=quality.passes_threshold,
            global_threshold=quality.global_threshold,
            degraded=quality.degraded,
            timestamp=quality.timestamp.isoformat(),
            dimension_scores=[
                DimensionScoreOut(
                    dimension=ds.dimension,
                    score=ds.score,
                    weight=ds.weight,
                    weighted_score=ds.weighted_score,
                    threshold=ds.threshold,
                    passes=ds.passes,
                    fallback=ds.fallback,
                )
                for ds in quality.dimension_scores
            ],
            recommendations=list(quality.recommendations),
        )
    return EvaluateResponse(
        content_id=result.content_id,
        status=result.status,
        publishable=result.publishable,
        quality_score=quality_out,
        failures=list(result.failures),
        error=result.error,
        version=VersionOut.from_version(result.version) if result.version else None,
        duration_ms=result.duration_ms,
    )


@router.post("/evaluate", response_model=EvaluateResponse)
@limiter.limit(settings.evaluate_rate_limit)
async def api_evaluate(request: Request, body: EvaluateRequest) -> EvaluateResponse:
    """Run the quality gate on one content payload.

    Aborted and cancelled runs are reported through ``status``, not as errors.
    """
    pipeline = get_pipeline(request)
    try:
        options = body.options.to_options()
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e

    result = await pipeline.evaluate(
        body.content_id,
        body.content,
        body.context.to_context(),
        options,
        persist=body.persist,
        author=body.author,
    )
    return _to_response(result)


@router.get("/config", response_model=QualityConfigResponse)
def api_get_config(request: Request) -> QualityConfigResponse:
    """Registered dimensions with their weights and thresholds."""
    pipeline = get_pipeline(request)
    orchestrator = pipeline.orchestrator
    return QualityConfigResponse(
        global_threshold=pipeline.aggregator.global_threshold,
        critical_threshold=pipeline.aggregator.recommender.critical_threshold,
        stage_timeout_s=orchestrator.stage_timeout_s,
        run_deadline_s=orchestrator.run_deadline_s,
        max_retries=orchestrator.retry.max_retries,
        max_in_flight=orchestrator.max_in_flight,
        dimensions=[DimensionConfigOut(**entry) for entry in pipeline.registry.describe()],
    )

"""Tests for concurrent stage dispatch, retries, timeouts and run policies."""

import asyncio

import pytest

from contentgate.models import StageResult
from contentgate.pipeline.orchestrator import (
    PipelineOrchestrator,
    RetryPolicy,
    RunAbortedError,
    RunCancelledError,
    RunMode,
    RunOptions,
)
from contentgate.pipeline.registry import StageRegistry
from contentgate.pipeline.scorer import WeightedAggregator
from contentgate.pipeline.stages.doubles import (
    ConcurrencyProbeStage,
    FailingStage,
    FixedScoreStage,
    FlakyStage,
    RawResultStage,
    SlowStage,
)
from factories import SCENARIO_GLOBAL_THRESHOLD, fixed_stages, make_scenario_registry

CONTENT = "Some content to evaluate."


def _orchestrator(stages: dict, **kwargs) -> PipelineOrchestrator:
    registry = make_scenario_registry(stages)
    aggregator = WeightedAggregator(registry, global_threshold=SCENARIO_GLOBAL_THRESHOLD)
    kwargs.setdefault("stage_timeout_s", 2.0)
    kwargs.setdefault("run_deadline_s", 5.0)
    return PipelineOrchestrator(registry, aggregator, **kwargs)


class TestRetryPolicy:
    def test_immediate_by_default(self):
        assert RetryPolicy().delay(0) == 0.0

    def test_exponential_backoff_capped(self):
        policy = RetryPolicy(max_retries=10, backoff_s=1.0)
        assert [policy.delay(n) for n in range(6)] == [1.0, 2.0, 4.0, 8.0, 16.0, 20.0]

    def test_negative_retries_rejected(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_retries=-1)


class TestRunOptions:
    def test_fallback_score_out_of_range_rejected(self):
        with pytest.raises(ValueError, match="Fallback score"):
            RunOptions(mode=RunMode.DEGRADED, fallback_scores={"seo": 120.0})

    def test_non_positive_timeout_rejected(self):
        with pytest.raises(ValueError):
            RunOptions(stage_timeout_s=0)


class TestHappyPath:
    @pytest.mark.asyncio
    async def test_all_stages_run_once(self):
        stages = fixed_stages()
        orchestrator = _orchestrator(stages)

        quality, failures = await orchestrator.run(CONTENT)

        assert failures == []
        assert quality.overall_score == 93.2
        assert all(stage.calls == 1 for stage in stages.values())

    @pytest.mark.asyncio
    async def test_output_in_registry_order_regardless_of_finish_order(self):
        stages = {
            "seo": SlowStage("seo", 96.0, delay_s=0.2),
            "eeat": SlowStage("eeat", 92.0, delay_s=0.1),
            "humanization": FixedScoreStage("humanization", 88.0),
        }
        orchestrator = _orchestrator(stages)

        quality, _ = await orchestrator.run(CONTENT)
        assert [ds.dimension for ds in quality.dimension_scores] == ["seo", "eeat", "humanization"]

    @pytest.mark.asyncio
    async def test_stages_run_concurrently(self):
        stages = {
            "seo": SlowStage("seo", 96.0, delay_s=0.3),
            "eeat": SlowStage("eeat", 92.0, delay_s=0.3),
            "humanization": SlowStage("humanization", 88.0, delay_s=0.3),
        }
        orchestrator = _orchestrator(stages)
        loop = asyncio.get_running_loop()

        started = loop.time()
        await orchestrator.run(CONTENT)
        assert loop.time() - started < 0.8


class TestRetries:
    @pytest.mark.asyncio
    async def test_transient_failure_retried(self):
        stages = fixed_stages()
        flaky = FlakyStage("seo", 96.0, failures=1)
        stages["seo"] = flaky
        orchestrator = _orchestrator(stages)

        quality, failures = await orchestrator.run(CONTENT)

        assert failures == []
        assert flaky.calls == 2
        assert quality.dimension("seo").score == 96.0

    @pytest.mark.asyncio
    async def test_retry_budget_exhausted(self):
        stages = fixed_stages()
        failing = FailingStage("eeat", ValueError("analyzer crashed"))
        stages["eeat"] = failing
        orchestrator = _orchestrator(stages)

        with pytest.raises(RunAbortedError) as exc_info:
            await orchestrator.run(CONTENT)

        assert failing.calls == 2
        (failure,) = exc_info.value.failures
        assert failure.dimension == "eeat"
        assert failure.attempts == 2
        assert failure.error_type == "ValueError"
        assert failure.error == "analyzer crashed"
        assert not failure.timed_out

    @pytest.mark.asyncio
    async def test_backoff_sleeps_between_attempts(self):
        delays = []

        async def fake_sleep(delay):
            delays.append(delay)

        stages = fixed_stages()
        stages["seo"] = FlakyStage("seo", 96.0, failures=2)
        orchestrator = _orchestrator(
            stages, retry=RetryPolicy(max_retries=2, backoff_s=0.5), sleep_fn=fake_sleep
        )

        await orchestrator.run(CONTENT)
        assert delays == [0.5, 1.0]

    @pytest.mark.asyncio
    async def test_max_retries_override(self):
        stages = fixed_stages()
        failing = FailingStage("seo")
        stages["seo"] = failing
        orchestrator = _orchestrator(stages)

        with pytest.raises(RunAbortedError):
            await orchestrator.run(CONTENT, options=RunOptions(max_retries=3))
        assert failing.calls == 4


class TestContractViolations:
    @pytest.mark.asyncio
    async def test_wrong_dimension_is_a_stage_failure(self):
        stages = fixed_stages()
        stages["seo"] = RawResultStage("seo", StageResult(dimension="nlp", score=90.0))
        orchestrator = _orchestrator(stages)

        with pytest.raises(RunAbortedError) as exc_info:
            await orchestrator.run(CONTENT)

        failure = exc_info.value.failures[0]
        assert failure.error_type == "StageContractError"
        assert "'nlp'" in failure.error

    @pytest.mark.asyncio
    async def test_out_of_range_score_is_a_stage_failure(self):
        stages = fixed_stages()
        stages["seo"] = RawResultStage("seo", StageResult.model_construct(dimension="seo", score=140.0, detail={}))
        orchestrator = _orchestrator(stages)

        with pytest.raises(RunAbortedError) as exc_info:
            await orchestrator.run(CONTENT)
        assert "out of range" in exc_info.value.failures[0].error

    @pytest.mark.asyncio
    async def test_non_result_return_is_a_stage_failure(self):
        stages = fixed_stages()
        stages["seo"] = RawResultStage("seo", {"score": 90})
        orchestrator = _orchestrator(stages)

        with pytest.raises(RunAbortedError) as exc_info:
            await orchestrator.run(CONTENT)
        assert "expected StageResult" in exc_info.value.failures[0].error


class TestTimeoutsAndDegradedMode:
    @pytest.mark.asyncio
    async def test_timeout_twice_aborts_in_strict_mode(self):
        stages = fixed_stages()
        slow = SlowStage("eeat", 92.0, delay_s=0.5)
        stages["eeat"] = slow
        orchestrator = _orchestrator(stages, stage_timeout_s=0.05)

        with pytest.raises(RunAbortedError) as exc_info:
            await orchestrator.run(CONTENT)

        (failure,) = exc_info.value.failures
        assert failure.dimension == "eeat"
        assert failure.timed_out
        assert failure.attempts == 2
        assert slow.calls == 2

    @pytest.mark.asyncio
    async def test_degraded_mode_uses_fallback(self):
        stages = fixed_stages()
        stages["eeat"] = SlowStage("eeat", 92.0, delay_s=0.5)
        orchestrator = _orchestrator(stages, stage_timeout_s=0.05)
        options = RunOptions(mode=RunMode.DEGRADED, fallback_scores={"eeat": 75.0})

        quality, failures = await orchestrator.run(CONTENT, options=options)

        eeat = quality.dimension("eeat")
        assert eeat.score == 75.0
        assert eeat.fallback
        assert quality.degraded
        # 96*0.5 + 75*0.3 + 88*0.2
        assert quality.overall_score == 88.1
        assert [f.dimension for f in failures] == ["eeat"]
        assert failures[0].timed_out

    @pytest.mark.asyncio
    async def test_degraded_mode_without_fallback_aborts(self):
        stages = fixed_stages()
        stages["seo"] = FailingStage("seo")
        orchestrator = _orchestrator(stages)
        options = RunOptions(mode=RunMode.DEGRADED, fallback_scores={"eeat": 75.0})

        with pytest.raises(RunAbortedError, match="no fallback score for seo"):
            await orchestrator.run(CONTENT, options=options)

    @pytest.mark.asyncio
    async def test_per_run_timeout_override(self):
        stages = fixed_stages()
        stages["seo"] = SlowStage("seo", 96.0, delay_s=0.2)
        orchestrator = _orchestrator(stages, stage_timeout_s=0.05)

        quality, failures = await orchestrator.run(CONTENT, options=RunOptions(stage_timeout_s=2.0))
        assert failures == []
        assert quality.dimension("seo").score == 96.0


class TestDeadline:
    @pytest.mark.asyncio
    async def test_outstanding_stages_fail_at_deadline(self):
        stages = fixed_stages()
        stages["humanization"] = SlowStage("humanization", 88.0, delay_s=0.5)
        orchestrator = _orchestrator(stages, stage_timeout_s=5.0)
        loop = asyncio.get_running_loop()

        started = loop.time()
        with pytest.raises(RunAbortedError) as exc_info:
            await orchestrator.run(CONTENT, options=RunOptions(deadline_s=0.1))

        assert loop.time() - started < 0.4
        (failure,) = exc_info.value.failures
        assert failure.dimension == "humanization"
        assert failure.error_type == "DeadlineExceeded"
        assert failure.timed_out
        assert failure.attempts == 1

    @pytest.mark.asyncio
    async def test_deadline_failure_can_fall_back(self):
        stages = fixed_stages()
        stages["humanization"] = SlowStage("humanization", 88.0, delay_s=0.5)
        orchestrator = _orchestrator(stages, stage_timeout_s=5.0)
        options = RunOptions(mode=RunMode.DEGRADED, deadline_s=0.1, fallback_scores={"humanization": 60.0})

        quality, failures = await orchestrator.run(CONTENT, options=options)
        assert quality.dimension("humanization").score == 60.0
        assert len(failures) == 1


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_event_aborts_run(self):
        stages = {
            "seo": SlowStage("seo", 96.0, delay_s=0.5),
            "eeat": SlowStage("eeat", 92.0, delay_s=0.5),
            "humanization": FixedScoreStage("humanization", 88.0),
        }
        orchestrator = _orchestrator(stages)
        cancel = asyncio.Event()
        loop = asyncio.get_running_loop()
        loop.call_later(0.05, cancel.set)

        started = loop.time()
        with pytest.raises(RunCancelledError):
            await orchestrator.run(CONTENT, options=RunOptions(cancel_event=cancel))
        assert loop.time() - started < 0.4

    @pytest.mark.asyncio
    async def test_already_cancelled_run_dispatches_nothing(self):
        stages = fixed_stages()
        orchestrator = _orchestrator(stages)
        cancel = asyncio.Event()
        cancel.set()

        with pytest.raises(RunCancelledError):
            await orchestrator.run(CONTENT, options=RunOptions(cancel_event=cancel))
        assert all(stage.calls == 0 for stage in stages.values())

    @pytest.mark.asyncio
    async def test_cancelling_caller_task_propagates(self):
        stages = {
            "seo": SlowStage("seo", 96.0, delay_s=0.5),
            "eeat": FixedScoreStage("eeat", 92.0),
            "humanization": FixedScoreStage("humanization", 88.0),
        }
        orchestrator = _orchestrator(stages)

        task = asyncio.create_task(orchestrator.run(CONTENT))
        await asyncio.sleep(0.05)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task


class TestConcurrencyBound:
    @pytest.mark.asyncio
    async def test_in_flight_stages_never_exceed_bound(self):
        tracker = ConcurrencyProbeStage.Tracker()
        dimensions = ["d1", "d2", "d3", "d4", "d5", "d6"]
        registry = StageRegistry()
        for name in dimensions:
            registry.register(name, ConcurrencyProbeStage(name, 80.0, tracker), weight=1 / 6, threshold=50)
        registry.close()
        orchestrator = PipelineOrchestrator(
            registry,
            WeightedAggregator(registry, global_threshold=50.0),
            max_in_flight=2,
        )

        quality, _ = await orchestrator.run(CONTENT)

        assert tracker.peak <= 2
        assert quality.overall_score == 80.0

    @pytest.mark.asyncio
    async def test_bound_is_shared_across_runs(self):
        tracker = ConcurrencyProbeStage.Tracker()
        registry = StageRegistry()
        for name in ("a", "b"):
            registry.register(name, ConcurrencyProbeStage(name, 80.0, tracker), weight=0.5, threshold=50)
        registry.close()
        orchestrator = PipelineOrchestrator(
            registry,
            WeightedAggregator(registry, global_threshold=50.0),
            max_in_flight=3,
        )

        await asyncio.gather(*(orchestrator.run(CONTENT) for _ in range(3)))
        assert tracker.peak <= 3

    @pytest.mark.asyncio
    async def test_timed_out_evaluations_keep_their_slot(self):
        tracker = ConcurrencyProbeStage.Tracker()
        registry = StageRegistry()
        for name in ("a", "b", "c"):
            registry.register(
                name, ConcurrencyProbeStage(name, 80.0, tracker, delay_s=0.2), weight=1 / 3, threshold=50
            )
        registry.close()
        orchestrator = PipelineOrchestrator(
            registry,
            WeightedAggregator(registry, global_threshold=50.0),
            stage_timeout_s=0.05,
            run_deadline_s=5.0,
            retry=RetryPolicy(max_retries=0),
            max_in_flight=1,
        )

        with pytest.raises(RunAbortedError) as exc_info:
            await orchestrator.run(CONTENT)
        # Let the last timed-out thread finish before reading the peak
        await asyncio.sleep(0.3)

        assert all(f.timed_out for f in exc_info.value.failures)
        assert tracker.peak == 1
        assert tracker.active == 0

    @pytest.mark.asyncio
    async def test_retry_waits_for_timed_out_attempt(self):
        tracker = ConcurrencyProbeStage.Tracker()
        registry = StageRegistry()
        registry.register("a", ConcurrencyProbeStage("a", 80.0, tracker, delay_s=0.15), weight=1.0, threshold=50)
        registry.close()
        orchestrator = PipelineOrchestrator(
            registry,
            WeightedAggregator(registry, global_threshold=50.0),
            stage_timeout_s=0.05,
            run_deadline_s=5.0,
            retry=RetryPolicy(max_retries=2),
            max_in_flight=1,
        )

        with pytest.raises(RunAbortedError) as exc_info:
            await orchestrator.run(CONTENT)
        await asyncio.sleep(0.25)

        assert exc_info.value.failures[0].attempts == 3
        assert tracker.peak == 1

    def test_invalid_bound_rejected(self, scenario_registry, scenario_aggregator):
        with pytest.raises(ValueError):
            PipelineOrchestrator(scenario_registry, scenario_aggregator, max_in_flight=0)

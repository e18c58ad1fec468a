"""Pipeline Orchestrator - concurrent, bounded, fault-isolated stage dispatch.

Every registered stage runs as its own asyncio task. The synchronous
``Stage.evaluate`` call is pushed to a worker thread with
``anyio.to_thread.run_sync`` so a slow stage never blocks the event loop.

Per stage:
- a per-attempt timeout
- a bounded retry policy (immediate by default, optional exponential backoff)
- any exception, timeout or contract violation becomes a StageFailure

Across runs, at most ``max_in_flight`` evaluations occupy worker threads at
once. A timed-out evaluation keeps its slot until its thread returns.

Per run:
- a run-level deadline; stages still outstanding at expiry become failures
- cooperative cancellation through ``RunOptions.cancel_event``
- output in registry order regardless of completion order
- STRICT mode aborts on any failure; DEGRADED mode substitutes the caller's
  fallback scores and still aborts when a failed dimension has none
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from functools import partial

import anyio

from contentgate.models.results import QualityScore, StageFailure, StageResult, is_valid_score
from contentgate.pipeline.registry import RegisteredStage, StageRegistry
from contentgate.pipeline.scorer import WeightedAggregator
from contentgate.pipeline.stages.base import StageContext

logger = logging.getLogger(__name__)

MAX_BACKOFF_S = 20.0


class RunMode(str, Enum):
    STRICT = "strict"
    DEGRADED = "degraded"


class StageContractError(Exception):
    """A stage returned something other than a valid result for its dimension."""

    def __init__(self, dimension: str, message: str) -> None:
        self.dimension = dimension
        super().__init__(f"{dimension}: {message}")


class RunAbortedError(Exception):
    """The run could not produce a complete result set."""

    def __init__(self, failures: list[StageFailure], message: str | None = None) -> None:
        self.failures = failures
        dims = ", ".join(f.dimension for f in failures)
        super().__init__(message or f"Run aborted: stage(s) failed: {dims}")


class RunCancelledError(Exception):
    """The caller cancelled the run; partial results were discarded."""


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retries per stage.

    ``backoff_s`` of 0 retries immediately. Otherwise the delay before retry
    ``n`` (0-based) is ``backoff_s * 2**n``, capped at ``max_backoff_s``.
    """

    max_retries: int = 1
    backoff_s: float = 0.0
    max_backoff_s: float = MAX_BACKOFF_S

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.backoff_s < 0:
            raise ValueError("backoff_s must be >= 0")

    def delay(self, attempt: int) -> float:
        if self.backoff_s <= 0:
            return 0.0
        return min(self.max_backoff_s, self.backoff_s * (1 << attempt))


@dataclass
class RunOptions:
    """Per-run overrides of the orchestrator defaults.

    Attributes:
        mode: STRICT (abort on any failure) or DEGRADED (use fallback scores)
        stage_timeout_s: Per-attempt stage timeout
        deadline_s: Whole-run deadline
        fallback_scores: Score per dimension to substitute in DEGRADED mode
        max_retries: Retries per stage
        cancel_event: Set it to cancel the run
    """

    mode: RunMode = RunMode.STRICT
    stage_timeout_s: float | None = None
    deadline_s: float | None = None
    fallback_scores: Mapping[str, float] = field(default_factory=dict)
    max_retries: int | None = None
    cancel_event: asyncio.Event | None = None

    def __post_init__(self) -> None:
        for dimension, score in self.fallback_scores.items():
            if not is_valid_score(score):
                raise ValueError(f"Fallback score for {dimension!r} must be in [0, 100], got {score!r}")
        if self.stage_timeout_s is not None and self.stage_timeout_s <= 0:
            raise ValueError("stage_timeout_s must be > 0")
        if self.deadline_s is not None and self.deadline_s <= 0:
            raise ValueError("deadline_s must be > 0")
        if self.max_retries is not None and self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")


class PipelineOrchestrator:
    """Runs all registered stages for one content payload.

    Args:
        registry: Closed registry of stages
        aggregator: Aggregator bound to the same registry
        stage_timeout_s: Default per-attempt stage timeout
        run_deadline_s: Default whole-run deadline
        retry: Default retry policy
        max_in_flight: Stage evaluations allowed at once, across all runs
        sleep_fn: Awaitable sleep used between retries
    """

    def __init__(
        self,
        registry: StageRegistry,
        aggregator: WeightedAggregator,
        *,
        stage_timeout_s: float = 10.0,
        run_deadline_s: float = 30.0,
        retry: RetryPolicy | None = None,
        max_in_flight: int = 8,
        sleep_fn: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_in_flight < 1:
            raise ValueError("max_in_flight must be >= 1")
        self.registry = registry
        self.aggregator = aggregator
        self.stage_timeout_s = stage_timeout_s
        self.run_deadline_s = run_deadline_s
        self.retry = retry or RetryPolicy()
        self.max_in_flight = max_in_flight
        self._semaphore = asyncio.Semaphore(max_in_flight)
        self._sleep_fn = sleep_fn

    def _check_result(self, entry: RegisteredStage, raw: object) -> StageResult:
        if not isinstance(raw, StageResult):
            raise StageContractError(entry.dimension, f"expected StageResult, got {type(raw).__name__}")
        if raw.dimension != entry.dimension:
            raise StageContractError(
                entry.dimension, f"result reported for dimension {raw.dimension!r}"
            )
        if not is_valid_score(raw.score):
            raise StageContractError(entry.dimension, f"score out of range [0, 100]: {raw.score!r}")
        return raw

    async def _dispatch(
        self, entry: RegisteredStage, content: str, context: StageContext
    ) -> asyncio.Task:
        """Start one evaluation in a worker thread once an in-flight slot is free.

        The slot is released when the thread returns, not when the caller stops
        waiting, so timed-out, deadline-expired and cancelled evaluations still
        count against ``max_in_flight`` until they actually finish.
        """
        await self._semaphore.acquire()
        worker = asyncio.create_task(
            anyio.to_thread.run_sync(partial(entry.stage.evaluate, content, context)),
            name=f"evaluate:{entry.dimension}",
        )
        worker.add_done_callback(self._release_slot)
        return worker

    def _release_slot(self, worker: asyncio.Task) -> None:
        self._semaphore.release()
        if not worker.cancelled():
            # Abandoned workers are never awaited; mark any exception as retrieved
            worker.exception()

    async def _run_stage(
        self,
        entry: RegisteredStage,
        content: str,
        context: StageContext,
        timeout_s: float,
        max_retries: int,
        attempts: dict[str, int],
    ) -> StageResult | StageFailure:
        """Evaluate one stage with timeout and retries. Never raises Exception."""
        dimension = entry.dimension
        last_error: BaseException | None = None
        timed_out = False

        for attempt in range(max_retries + 1):
            if attempt:
                delay = self.retry.delay(attempt - 1)
                if delay:
                    await self._sleep_fn(delay)
            attempts[dimension] = attempt + 1
            try:
                raw = await asyncio.wait_for(
                    asyncio.shield(await self._dispatch(entry, content, context)),
                    timeout=timeout_s,
                )
                return self._check_result(entry, raw)
            except asyncio.TimeoutError:
                last_error = TimeoutError(f"stage timed out after {timeout_s}s")
                timed_out = True
            except Exception as e:  # noqa: BLE001 - stage isolation boundary
                last_error = e
                timed_out = False

            if attempt < max_retries:
                logger.warning(
                    "Stage %s attempt %d/%d failed: %s; retrying",
                    dimension, attempt + 1, max_retries + 1, last_error,
                )

        logger.warning(
            "Stage %s failed after %d attempt(s): %s", dimension, max_retries + 1, last_error
        )
        return StageFailure(
            dimension=dimension,
            error=str(last_error),
            error_type=type(last_error).__name__,
            attempts=max_retries + 1,
            timed_out=timed_out,
        )

    async def run(
        self,
        content: str,
        context: StageContext | None = None,
        options: RunOptions | None = None,
    ) -> tuple[QualityScore, list[StageFailure]]:
        """Run every registered stage and aggregate the results.

        Returns:
            (QualityScore, failures). ``failures`` is non-empty only in DEGRADED
            mode, where it lists the dimensions that used a fallback score.

        Raises:
            RunAbortedError: A stage failed and no fallback applies
            RunCancelledError: ``options.cancel_event`` was set
            AggregationError: The result set violated the aggregation contract
        """
        context = context or StageContext()
        options = options or RunOptions()
        timeout_s = options.stage_timeout_s or self.stage_timeout_s
        deadline_s = options.deadline_s or self.run_deadline_s
        max_retries = self.retry.max_retries if options.max_retries is None else options.max_retries
        cancel_event = options.cancel_event

        if cancel_event is not None and cancel_event.is_set():
            raise RunCancelledError("Run cancelled before dispatch")

        entries = self.registry.resolve()
        attempts: dict[str, int] = {}
        tasks: dict[asyncio.Task, str] = {
            asyncio.create_task(
                self._run_stage(entry, content, context, timeout_s, max_retries, attempts),
                name=f"stage:{entry.dimension}",
            ): entry.dimension
            for entry in entries
        }
        cancel_waiter = asyncio.create_task(cancel_event.wait()) if cancel_event is not None else None
        outcomes: dict[str, StageResult | StageFailure] = {}

        loop = asyncio.get_running_loop()
        deadline = loop.time() + deadline_s
        try:
            pending = set(tasks)
            while pending:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    break
                waiting = pending | {cancel_waiter} if cancel_waiter is not None else pending
                done, _ = await asyncio.wait(
                    waiting, timeout=remaining, return_when=asyncio.FIRST_COMPLETED
                )
                if cancel_waiter is not None and cancel_waiter in done:
                    logger.info("Run cancelled with %d stage(s) in flight", len(pending))
                    raise RunCancelledError("Run cancelled by caller")
                for task in done:
                    pending.discard(task)
                    outcomes[tasks[task]] = task.result()

            for task in pending:
                dimension = tasks[task]
                logger.warning("Stage %s did not finish before the %ss run deadline", dimension, deadline_s)
                outcomes[dimension] = StageFailure(
                    dimension=dimension,
                    error=f"run deadline of {deadline_s}s exceeded",
                    error_type="DeadlineExceeded",
                    attempts=attempts.get(dimension, 0),
                    timed_out=True,
                )
        finally:
            unfinished = [task for task in tasks if not task.done()]
            if cancel_waiter is not None:
                cancel_waiter.cancel()
                unfinished.append(cancel_waiter)
            for task in unfinished:
                task.cancel()
            if unfinished:
                await asyncio.gather(*unfinished, return_exceptions=True)

        return self._apply_policy(entries, outcomes, options)

    def _apply_policy(
        self,
        entries: tuple[RegisteredStage, ...],
        outcomes: Mapping[str, StageResult | StageFailure],
        options: RunOptions,
    ) -> tuple[QualityScore, list[StageFailure]]:
        results: list[StageResult] = []
        failures: list[StageFailure] = []
        for entry in entries:
            outcome = outcomes[entry.dimension]
            if isinstance(outcome, StageFailure):
                failures.append(outcome)
            else:
                results.append(outcome)

        if not failures:
            return self.aggregator.score(results), []

        if options.mode is RunMode.STRICT:
            logger.warning("Run aborted in strict mode: %d stage failure(s)", len(failures))
            raise RunAbortedError(failures)

        uncovered = [f.dimension for f in failures if f.dimension not in options.fallback_scores]
        if uncovered:
            logger.warning("Run aborted in degraded mode: no fallback for %s", ", ".join(uncovered))
            raise RunAbortedError(
                failures, f"Run aborted: no fallback score for {', '.join(uncovered)}"
            )

        for failure in failures:
            results.append(
                StageResult(
                    dimension=failure.dimension,
                    score=options.fallback_scores[failure.dimension],
                    detail={"fallback": True, "error": failure.error},
                )
            )
        logger.info(
            "Degraded run: fallback scores used for %s",
            ", ".join(f.dimension for f in failures),
        )
        quality = self.aggregator.score(
            results, fallback_dimensions=frozenset(f.dimension for f in failures)
        )
        return quality, failures

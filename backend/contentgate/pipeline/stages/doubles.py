"""Deterministic stage doubles for tests and local wiring.

These implement the Stage contract with controllable behavior: fixed
scores, failures, delays, flakiness and concurrency probing.
"""

from __future__ import annotations

import threading
import time
from typing import Any

from contentgate.models.results import Dimension, StageResult
from contentgate.pipeline.stages.base import Stage, StageContext


class FixedScoreStage(Stage):
    """Always returns the same score."""

    def __init__(self, dimension: Dimension | str, score: float, **detail: Any) -> None:
        super().__init__(dimension)
        self._score = score
        self._detail = detail
        self.calls = 0

    def evaluate(self, content: str, context: StageContext) -> StageResult:
        self.calls += 1
        return self.result(self._score, **self._detail)


class FailingStage(Stage):
    """Always raises ``error`` (a RuntimeError by default)."""

    def __init__(self, dimension: Dimension | str, error: Exception | None = None) -> None:
        super().__init__(dimension)
        self._error = error or RuntimeError(f"{dimension} analyzer crashed")
        self.calls = 0

    def evaluate(self, content: str, context: StageContext) -> StageResult:
        self.calls += 1
        raise self._error


class SlowStage(Stage):
    """Sleeps ``delay_s`` before returning ``score``."""

    def __init__(self, dimension: Dimension | str, score: float, delay_s: float) -> None:
        super().__init__(dimension)
        self._score = score
        self._delay_s = delay_s
        self.calls = 0

    def evaluate(self, content: str, context: StageContext) -> StageResult:
        self.calls += 1
        time.sleep(self._delay_s)
        return self.result(self._score)


class FlakyStage(Stage):
    """Fails the first ``failures`` calls, then returns ``score``."""

    def __init__(self, dimension: Dimension | str, score: float, failures: int = 1) -> None:
        super().__init__(dimension)
        self._score = score
        self._failures = failures
        self._lock = threading.Lock()
        self.calls = 0

    def evaluate(self, content: str, context: StageContext) -> StageResult:
        with self._lock:
            self.calls += 1
            call = self.calls
        if call <= self._failures:
            raise ConnectionError(f"transient failure {call}/{self._failures}")
        return self.result(self._score)


class ConcurrencyProbeStage(Stage):
    """Records how many probe evaluations overlap.

    Every probe built with the same ``tracker`` shares one counter, so the
    peak across a whole run can be asserted.
    """

    class Tracker:
        def __init__(self) -> None:
            self._lock = threading.Lock()
            self.active = 0
            self.peak = 0

        def enter(self) -> None:
            with self._lock:
                self.active += 1
                self.peak = max(self.peak, self.active)

        def exit(self) -> None:
            with self._lock:
                self.active -= 1

    def __init__(
        self,
        dimension: Dimension | str,
        score: float,
        tracker: "ConcurrencyProbeStage.Tracker",
        delay_s: float = 0.05,
    ) -> None:
        super().__init__(dimension)
        self._score = score
        self._tracker = tracker
        self._delay_s = delay_s

    def evaluate(self, content: str, context: StageContext) -> StageResult:
        self._tracker.enter()
        try:
            time.sleep(self._delay_s)
        finally:
            self._tracker.exit()
        return self.result(self._score)


class RawResultStage(Stage):
    """Returns a pre-built result object unchanged (bypasses validation)."""

    def __init__(self, dimension: Dimension | str, result: Any) -> None:
        super().__init__(dimension)
        self._raw = result

    def evaluate(self, content: str, context: StageContext) -> StageResult:
        return self._raw

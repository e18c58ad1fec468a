"""Abstract base class for quality stages.

Each stage inherits from Stage and implements:
- name: A string identifier for logging
- evaluate(): A pure, synchronous scoring function of the content

Stages hold no mutable state shared between runs; the orchestrator may call
the same instance from several threads at once.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from contentgate.models.results import Dimension, StageResult, normalize_dimension


@dataclass(frozen=True)
class StageContext:
    """Caller-supplied requirements a stage may score against.

    Attributes:
        keywords: Target keywords for topical coverage checks.
        target_audience: Intended readership, free text.
        content_type: Caller's content category (informational only).
        extra: Any additional requirement data.
    """

    keywords: tuple[str, ...] = ()
    target_audience: str | None = None
    content_type: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)


class Stage(ABC):
    """Abstract base class for all quality stages.

    Subclasses must implement:
    - evaluate(): return a StageResult for the stage's dimension

    The base class provides:
    - dimension: the identifier this instance reports under
    - result(): helper to build a StageResult for that dimension

    Example:
        class WordCountStage(Stage):
            def evaluate(self, content: str, context: StageContext) -> StageResult:
                words = len(content.split())
                return self.result(min(100.0, words / 10), words=words)
    """

    default_dimension: Dimension | str = ""

    def __init__(self, dimension: Dimension | str | None = None) -> None:
        self._dimension = normalize_dimension(dimension or self.default_dimension)

    @property
    def dimension(self) -> str:
        return self._dimension

    @property
    def name(self) -> str:
        """Return the stage name for logging."""
        return type(self).__name__

    @abstractmethod
    def evaluate(self, content: str, context: StageContext) -> StageResult:
        """Score ``content`` for this stage's dimension.

        Args:
            content: The content payload
            context: Caller requirements

        Returns:
            StageResult with a score in [0, 100]
        """
        ...

    def result(self, score: float, **detail: Any) -> StageResult:
        """Build a StageResult for this stage's dimension."""
        return StageResult(dimension=self.dimension, score=score, detail=detail)

    def __repr__(self) -> str:
        return f"{self.name}(dimension={self.dimension!r})"

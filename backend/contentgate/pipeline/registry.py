"""Stage Registry - dimension name to stage, weight and pass threshold.

The registry is populated once at process start, then closed. Closing
validates the whole configuration:
- no duplicate dimensions
- every weight >= 0
- every threshold in [0, 100]
- the enabled subset is non-empty and its weights sum to 1.0 (+/- 0.001)

After close() the registry is read-only; any further register() call raises
RegistryClosedError. resolve() only works on a closed registry.
"""

from __future__ import annotations

import logging
import math
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from contentgate.models.results import MAX_SCORE, MIN_SCORE, Dimension, normalize_dimension
from contentgate.pipeline.stages.base import Stage

logger = logging.getLogger(__name__)

WEIGHT_SUM_TOLERANCE = 1e-3

DEFAULT_STAGE_CONFIG: dict[str, Any] = {
    "dimensions": [
        {"name": Dimension.HUMANIZATION.value, "weight": 0.20, "threshold": 85.0},
        {"name": Dimension.AUTHORITY.value, "weight": 0.15, "threshold": 88.0},
        {"name": Dimension.EEAT.value, "weight": 0.20, "threshold": 90.0},
        {"name": Dimension.SEO.value, "weight": 0.20, "threshold": 95.0},
        {"name": Dimension.NLP.value, "weight": 0.10, "threshold": 92.0},
        {"name": Dimension.USER_VALUE.value, "weight": 0.15, "threshold": 88.0},
    ]
}


class ConfigurationError(Exception):
    """Raised for an invalid stage configuration. Fatal at startup."""

    def __init__(self, message: str, problems: list[str] | None = None) -> None:
        self.problems = problems or [message]
        super().__init__(message)


class RegistryClosedError(ConfigurationError):
    """Raised when the registry is mutated after close()."""


@dataclass(frozen=True)
class RegisteredStage:
    """One registry entry."""

    dimension: str
    stage: Stage
    weight: float
    threshold: float
    enabled: bool = True


class StageRegistry:
    """Ordered mapping of dimension to stage, weight and threshold.

    Example:
        registry = StageRegistry()
        registry.register("seo", SEOStage(), weight=0.5, threshold=90)
        registry.register("eeat", EEATStage(), weight=0.5, threshold=85)
        registry.close()

        for entry in registry.resolve():
            ...
    """

    def __init__(self) -> None:
        self._entries: list[RegisteredStage] = []
        self._closed = False
        self._lock = threading.Lock()
        self._resolved: tuple[RegisteredStage, ...] = ()

    @property
    def closed(self) -> bool:
        return self._closed

    def register(
        self,
        dimension: Dimension | str,
        stage: Stage,
        weight: float,
        threshold: float,
        *,
        enabled: bool = True,
    ) -> None:
        """Add a stage. Validation is deferred to close().

        Raises:
            ConfigurationError: If the dimension identifier is malformed.
            RegistryClosedError: If the registry has already been closed.
        """
        try:
            name = normalize_dimension(dimension)
        except ValueError as e:
            raise ConfigurationError(str(e)) from e

        with self._lock:
            if self._closed:
                raise RegistryClosedError(
                    f"Cannot register dimension {dimension!r}: registry is closed"
                )
            self._entries.append(
                RegisteredStage(
                    dimension=name,
                    stage=stage,
                    weight=float(weight),
                    threshold=float(threshold),
                    enabled=enabled,
                )
            )

    def close(self) -> None:
        """Validate the configuration and freeze the registry.

        Raises:
            ConfigurationError: Listing every problem found.
        """
        with self._lock:
            if self._closed:
                return
            problems = self._validate()
            if problems:
                for problem in problems:
                    logger.error("Stage configuration error: %s", problem)
                raise ConfigurationError(
                    "Invalid stage configuration: " + "; ".join(problems), problems
                )
            self._resolved = tuple(e for e in self._entries if e.enabled)
            self._closed = True
        logger.info(
            "Stage registry closed with %d enabled dimension(s): %s",
            len(self._resolved),
            ", ".join(e.dimension for e in self._resolved),
        )

    def _validate(self) -> list[str]:
        problems: list[str] = []
        seen: set[str] = set()
        for entry in self._entries:
            if entry.dimension in seen:
                problems.append(f"duplicate dimension {entry.dimension!r}")
            seen.add(entry.dimension)
            if math.isnan(entry.weight) or entry.weight < 0:
                problems.append(f"weight for {entry.dimension!r} must be >= 0 (got {entry.weight})")
            if not (MIN_SCORE <= entry.threshold <= MAX_SCORE):
                problems.append(
                    f"threshold for {entry.dimension!r} must be in [0, 100] (got {entry.threshold})"
                )

        enabled = [e for e in self._entries if e.enabled]
        if not enabled:
            problems.append("no enabled dimensions")
        else:
            total = sum(e.weight for e in enabled)
            if not abs(total - 1.0) <= WEIGHT_SUM_TOLERANCE:
                problems.append(
                    f"enabled weights must sum to 1.0 +/- {WEIGHT_SUM_TOLERANCE} (got {total:.4f})"
                )
        return problems

    def resolve(self) -> tuple[RegisteredStage, ...]:
        """Return the enabled entries in declaration order.

        Raises:
            ConfigurationError: If the registry has not been closed.
        """
        if not self._closed:
            raise ConfigurationError("Registry must be closed before it is resolved")
        return self._resolved

    @property
    def dimensions(self) -> tuple[str, ...]:
        return tuple(e.dimension for e in self.resolve())

    def get(self, dimension: str) -> RegisteredStage:
        for entry in self.resolve():
            if entry.dimension == dimension:
                return entry
        raise KeyError(dimension)

    def describe(self) -> list[dict[str, Any]]:
        """JSON-ready view of every entry, enabled or not."""
        return [
            {
                "dimension": e.dimension,
                "stage": e.stage.name,
                "weight": e.weight,
                "threshold": e.threshold,
                "enabled": e.enabled,
            }
            for e in self._entries
        ]


def build_registry(
    config: Mapping[str, Any],
    stages: Mapping[str, Stage],
) -> StageRegistry:
    """Build and close a registry from a configuration mapping.

    Args:
        config: Mapping with a ``dimensions`` list of
            ``{name, weight, threshold, enabled}`` items
        stages: Stage implementation per dimension name

    Returns:
        A closed StageRegistry

    Raises:
        ConfigurationError: For malformed config, unknown dimensions or any
            registry validation failure
    """
    items = config.get("dimensions")
    if not isinstance(items, list) or not items:
        raise ConfigurationError("Stage configuration needs a non-empty 'dimensions' list")

    registry = StageRegistry()
    for index, item in enumerate(items):
        if not isinstance(item, Mapping):
            raise ConfigurationError(f"dimensions[{index}] must be a mapping")
        try:
            name = normalize_dimension(item["name"])
            weight = float(item["weight"])
            threshold = float(item["threshold"])
        except KeyError as e:
            raise ConfigurationError(f"dimensions[{index}] is missing {e.args[0]!r}") from e
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"dimensions[{index}] is invalid: {e}") from e

        stage = stages.get(name)
        if stage is None:
            raise ConfigurationError(f"unknown dimension {name!r}: no stage implementation")
        registry.register(name, stage, weight, threshold, enabled=bool(item.get("enabled", True)))

    registry.close()
    return registry

"""YAML-backed configuration files for the quality gate."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml


class ConfigFileError(ValueError):
    """Raised when a configuration file is missing or not a YAML mapping."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        super().__init__(f"Invalid configuration file {path}: {reason}")


def load_yaml(path: Path) -> dict[str, Any]:
    """Load a YAML mapping from ``path``.

    Empty files load as an empty mapping. A file whose top level is not a
    mapping (a list, a scalar) is rejected rather than silently ignored.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise ConfigFileError(path, "file not found") from e

    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigFileError(path, f"YAML parse error: {e}") from e

    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigFileError(path, f"expected a mapping, got {type(loaded).__name__}")
    return loaded


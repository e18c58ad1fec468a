"""Content quality gate: staged scoring, weighted gating and version history."""

__version__ = "0.1.0"

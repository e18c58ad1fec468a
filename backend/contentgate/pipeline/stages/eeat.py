"""E-E-A-T stage - experience, expertise, authoritativeness and trust signals."""

from __future__ import annotations

from contentgate.models.results import Dimension, StageResult
from contentgate.pipeline.stages import text
from contentgate.pipeline.stages.base import Stage, StageContext

# signal group -> (terms, points per matched term)
SIGNAL_GROUPS: dict[str, tuple[tuple[str, ...], float]] = {
    "experience": (("experience", "years", "worked with", "i've seen", "in practice", "hands-on"), 5.0),
    "expertise": (("research shows", "studies indicate", "according to", "data reveals", "methodology"), 5.0),
    "authoritativeness": (("published", "peer-reviewed", "certified", "licensed", "credentials"), 5.0),
    "trust": (("transparent", "honest", "accurate", "verified", "updated"), 3.0),
}

_GROUP_ADVICE = {
    "experience": "Add first-hand experience: concrete projects, years in the field, lessons learned",
    "expertise": "Back key statements with research, data or a described methodology",
    "authoritativeness": "Mention author credentials, certifications or publications",
    "trust": "Add trust signals such as verification notes or update dates",
}

BASE_SCORE = 50.0


class EEATStage(Stage):
    default_dimension = Dimension.EEAT

    def evaluate(self, content: str, context: StageContext) -> StageResult:
        score = BASE_SCORE
        groups: dict[str, list[str]] = {}
        issues: list[str] = []

        for group, (terms, points) in SIGNAL_GROUPS.items():
            hits = sorted(text.phrase_counts(content, terms))
            groups[group] = hits
            score += len(hits) * points
            if not hits:
                issues.append(_GROUP_ADVICE[group])

        return self.result(text.bounded(score), issues=issues, signals=groups)

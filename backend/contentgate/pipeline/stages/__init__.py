"""Quality stages module.

Contains the Stage base class and the built-in heuristic stages, one per
built-in dimension:
- humanization: natural, non machine-like phrasing
- authority: research, data and named sources
- eeat: experience, expertise, authoritativeness, trust
- seo: keyword coverage and on-page structure
- nlp: grammar and readability
- userValue: actionable guidance for the reader
"""

from contentgate.models.results import Dimension
from contentgate.pipeline.stages.authority import AuthorityStage
from contentgate.pipeline.stages.base import Stage, StageContext
from contentgate.pipeline.stages.eeat import EEATStage
from contentgate.pipeline.stages.humanization import HumanizationStage
from contentgate.pipeline.stages.nlp import NLPStage
from contentgate.pipeline.stages.seo import SEOStage
from contentgate.pipeline.stages.user_value import UserValueStage

BUILTIN_STAGES: dict[str, type[Stage]] = {
    Dimension.HUMANIZATION.value: HumanizationStage,
    Dimension.AUTHORITY.value: AuthorityStage,
    Dimension.EEAT.value: EEATStage,
    Dimension.SEO.value: SEOStage,
    Dimension.NLP.value: NLPStage,
    Dimension.USER_VALUE.value: UserValueStage,
}


def builtin_stages() -> dict[str, Stage]:
    """Fresh instances of every built-in stage, keyed by dimension."""
    return {name: cls() for name, cls in BUILTIN_STAGES.items()}


__all__ = [
    "Stage",
    "StageContext",
    "HumanizationStage",
    "AuthorityStage",
    "EEATStage",
    "SEOStage",
    "NLPStage",
    "UserValueStage",
    "BUILTIN_STAGES",
    "builtin_stages",
]

"""Authority stage - scores references to research, data and named sources."""

from __future__ import annotations

import re

from contentgate.models.results import Dimension, StageResult
from contentgate.pipeline.stages import text
from contentgate.pipeline.stages.base import Stage, StageContext

AUTHORITY_KEYWORDS = ("expert", "research", "study", "proven", "data")
ATTRIBUTION_PHRASES = ("according to", "research shows", "studies indicate", "data reveals", "reports suggest")

_NAMED_SOURCE_RE = re.compile(
    r"\b(?:[A-Z][a-z]+ (?:University|Institute|Foundation|Association|Journal)"
    r"|Harvard|MIT|Stanford|McKinsey|Deloitte|PwC|Gartner|Forrester)\b"
)
_CITATION_RE = re.compile(r"\[\d+\]|\(\s*[A-Z][A-Za-z]+(?: et al\.)?,? (?:19|20)\d{2}\s*\)")

BASE_SCORE = 60.0


class AuthorityStage(Stage):
    default_dimension = Dimension.AUTHORITY

    def evaluate(self, content: str, context: StageContext) -> StageResult:
        issues: list[str] = []
        lowered = content.lower()

        matched = [kw for kw in AUTHORITY_KEYWORDS if kw in lowered]
        score = BASE_SCORE + len(matched) * 8

        citations = len(_CITATION_RE.findall(content))
        score += min(12, citations * 4)

        external = len(text.links(content))
        score += min(9, external * 3)

        named_sources = len(_NAMED_SOURCE_RE.findall(content))
        attributions = sum(text.phrase_counts(content, ATTRIBUTION_PHRASES).values())
        unattributed = max(0, attributions - named_sources - citations)
        score -= unattributed * 4

        if len(matched) < 3:
            issues.append("Add more authoritative sources and expert references")
        if unattributed:
            issues.append("Name the source behind each 'research shows' style claim")
        if not citations and not external:
            issues.append("Cite or link at least one primary source")

        return self.result(
            text.bounded(score),
            issues=issues,
            authority_keywords=matched,
            citations=citations,
            external_links=external,
            named_sources=named_sources,
            unattributed_claims=unattributed,
        )

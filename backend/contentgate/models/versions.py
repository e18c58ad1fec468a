"""ContentVersion model: one immutable, accepted revision of a content item."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Sequence

from pydantic import BaseModel, ConfigDict, Field


class ContentVersion(BaseModel):
    """An immutable record of one accepted revision.

    Versions form an append-only sequence per content identity. The current
    state of a content item is always the last element of its sequence.

    Attributes:
        content_id: Stable key the version sequence is tracked under.
        version_id: Unique identifier, sortable by creation time.
        version_number: 1-based position in the content's sequence.
        timestamp: Creation instant (UTC).
        content: Full content snapshot (never a delta).
        change_summary: Approximate diff description against the previous version.
        tokens_added: Tokens present now but not in the previous version.
        tokens_removed: Tokens present before but not in this version.
        author: Provenance tag, e.g. "generator" or "editor".
        overall_score: Quality score of the run that produced this revision, if any.
    """

    model_config = ConfigDict(frozen=True)

    content_id: Annotated[str, Field(min_length=1)]
    version_id: Annotated[str, Field(min_length=1)]
    version_number: int = Field(..., ge=1)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    content: str
    change_summary: str
    tokens_added: int = Field(default=0, ge=0)
    tokens_removed: int = Field(default=0, ge=0)
    author: Annotated[str, Field(min_length=1)]
    overall_score: float | None = Field(default=None, ge=0, le=100)

    @property
    def is_initial(self) -> bool:
        return self.version_number == 1

    def to_db_row(self) -> tuple:
        """Convert to a row tuple matching the content_versions column order.

        (content_id, version_number, version_id, created_at_utc, author,
         content, change_summary, tokens_added, tokens_removed, overall_score)
        """
        return (
            self.content_id,
            self.version_number,
            self.version_id,
            self.timestamp.isoformat(),
            self.author,
            self.content,
            self.change_summary,
            self.tokens_added,
            self.tokens_removed,
            self.overall_score,
        )

    @classmethod
    def from_db_row(cls, row: Sequence) -> "ContentVersion":
        """Rebuild a ContentVersion from a row in ``to_db_row`` order."""
        return cls(
            content_id=row[0],
            version_number=row[1],
            version_id=row[2],
            timestamp=datetime.fromisoformat(row[3]),
            author=row[4],
            content=row[5],
            change_summary=row[6],
            tokens_added=row[7],
            tokens_removed=row[8],
            overall_score=row[9],
        )

"""
Content Versioning & Change Summaries

Every accepted revision of a content item is stored as an immutable
ContentVersion. Versions are append-only per content identity:
- version numbers start at 1 and increase by exactly one
- a version is never mutated or deleted once appended
- the current state is the last version

Change summaries are approximate: a multiset word diff against the previous
version plus markdown section counts. They describe a revision, they are not
a patch format.
"""
from __future__ import annotations

import logging
import re
import threading
import time
import uuid
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Protocol

from contentgate.models.versions import ContentVersion

logger = logging.getLogger(__name__)

_TOKEN_PATTERN = re.compile(r"\w+(?:'\w+)?")
_HEADING_PATTERN = re.compile(r"^(#{1,6})\s+(.+)$")


class VersionConflictError(Exception):
    """A version could not be appended at the expected position."""

    def __init__(self, content_id: str, message: str) -> None:
        self.content_id = content_id
        super().__init__(message)


@dataclass(frozen=True)
class ChangeSummary:
    """Approximate description of one revision."""

    tokens_added: int
    tokens_removed: int
    sections_added: int = 0
    sections_removed: int = 0
    initial: bool = False

    def describe(self) -> str:
        if self.initial:
            return f"Initial version ({self.tokens_added} tokens)"
        if not (self.tokens_added or self.tokens_removed or self.sections_added or self.sections_removed):
            return "No changes"
        parts = [f"+{self.tokens_added} / -{self.tokens_removed} tokens"]
        if self.sections_added:
            parts.append(f"{self.sections_added} section(s) added")
        if self.sections_removed:
            parts.append(f"{self.sections_removed} section(s) removed")
        return ", ".join(parts)


def tokenize(content: str) -> list[str]:
    """Lowercased word tokens."""
    return [t.lower() for t in _TOKEN_PATTERN.findall(content)]


def normalize_section_heading(heading: str) -> str:
    """Normalize heading for comparison (lowercase, strip, remove numbering)."""
    heading = heading.lower().strip()
    heading = re.sub(r"^[\d.]+\s*", "", heading)
    heading = re.sub(r"^[a-z]\)\s*", "", heading)
    return heading


def section_headings(markdown: str) -> list[str]:
    """Normalized markdown headings in document order."""
    return [
        normalize_section_heading(m.group(2))
        for m in (_HEADING_PATTERN.match(line.strip()) for line in markdown.splitlines())
        if m
    ]


def summarize_changes(previous: str | None, current: str) -> ChangeSummary:
    """Diff ``current`` against ``previous`` (None for an initial version)."""
    new_tokens = Counter(tokenize(current))
    if previous is None:
        return ChangeSummary(tokens_added=sum(new_tokens.values()), tokens_removed=0, initial=True)

    old_tokens = Counter(tokenize(previous))
    old_sections = Counter(section_headings(previous))
    new_sections = Counter(section_headings(current))
    return ChangeSummary(
        tokens_added=sum((new_tokens - old_tokens).values()),
        tokens_removed=sum((old_tokens - new_tokens).values()),
        sections_added=sum((new_sections - old_sections).values()),
        sections_removed=sum((old_sections - new_sections).values()),
    )


_id_lock = threading.Lock()
_last_id_ns = 0


def new_version_id() -> str:
    """Unique id whose lexical order follows creation order within the process."""
    global _last_id_ns
    with _id_lock:
        _last_id_ns = max(time.time_ns(), _last_id_ns + 1)
        stamp = _last_id_ns
    return f"{stamp:020d}{uuid.uuid4().hex[:8]}"


class VersionStore(Protocol):
    """Persistence boundary for version history.

    ``append`` must reject a version whose number is not exactly one past the
    current latest for its content identity.
    """

    def latest(self, content_id: str) -> ContentVersion | None: ...

    def list(self, content_id: str) -> list[ContentVersion]: ...

    def append(self, version: ContentVersion) -> None: ...


class InMemoryVersionStore:
    """Process-local VersionStore."""

    def __init__(self) -> None:
        self._versions: dict[str, list[ContentVersion]] = {}
        self._lock = threading.Lock()

    def latest(self, content_id: str) -> ContentVersion | None:
        with self._lock:
            versions = self._versions.get(content_id)
            return versions[-1] if versions else None

    def list(self, content_id: str) -> list[ContentVersion]:
        with self._lock:
            return list(self._versions.get(content_id, ()))

    def append(self, version: ContentVersion) -> None:
        with self._lock:
            versions = self._versions.setdefault(version.content_id, [])
            expected = len(versions) + 1
            if version.version_number != expected:
                raise VersionConflictError(
                    version.content_id,
                    f"Expected version {expected} for {version.content_id!r}, "
                    f"got {version.version_number}",
                )
            versions.append(version)


class VersionRecorder:
    """Records accepted revisions with derived change summaries.

    Appends for the same content identity are serialized; different
    identities never wait on each other.
    """

    def __init__(self, store: VersionStore) -> None:
        self.store = store
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, content_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(content_id)
            if lock is None:
                lock = self._locks[content_id] = threading.Lock()
            return lock

    def _append(
        self,
        content_id: str,
        content: str,
        author: str,
        overall_score: float | None,
        *,
        initial_only: bool,
    ) -> ContentVersion:
        if not content_id:
            raise ValueError("content_id must not be empty")
        with self._lock_for(content_id):
            previous = self.store.latest(content_id)
            if previous is not None and initial_only:
                raise VersionConflictError(
                    content_id, f"Content {content_id!r} already has {previous.version_number} version(s)"
                )
            summary = summarize_changes(previous.content if previous else None, content)
            version = ContentVersion(
                content_id=content_id,
                version_id=new_version_id(),
                version_number=previous.version_number + 1 if previous else 1,
                timestamp=datetime.now(timezone.utc),
                content=content,
                change_summary=summary.describe(),
                tokens_added=summary.tokens_added,
                tokens_removed=summary.tokens_removed,
                author=author,
                overall_score=overall_score,
            )
            self.store.append(version)

        logger.info(
            "Recorded version %d of %s by %s (%s)",
            version.version_number, content_id, author, version.change_summary,
        )
        return version

    def record_initial(
        self,
        content_id: str,
        content: str,
        author: str,
        overall_score: float | None = None,
    ) -> ContentVersion:
        """Record version 1.

        Raises:
            VersionConflictError: If ``content_id`` already has history.
        """
        return self._append(content_id, content, author, overall_score, initial_only=True)

    def record_revision(
        self,
        content_id: str,
        new_content: str,
        author: str,
        overall_score: float | None = None,
    ) -> ContentVersion:
        """Append a revision; an unknown ``content_id`` gets version 1."""
        return self._append(content_id, new_content, author, overall_score, initial_only=False)

    def history(self, content_id: str) -> list[ContentVersion]:
        """All versions in order; empty for an unknown identity."""
        return self.store.list(content_id)

    def latest(self, content_id: str) -> ContentVersion | None:
        return self.store.latest(content_id)

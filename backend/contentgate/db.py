from __future__ import annotations

import contextlib
import sqlite3
from pathlib import Path

from contentgate.models.versions import ContentVersion
from contentgate.pipeline.versioning import VersionConflictError

_VERSION_COLUMNS = (
    "content_id, version_number, version_id, created_at_utc, author, "
    "content, change_summary, tokens_added, tokens_removed, overall_score"
)


def _connect(db_path: Path) -> sqlite3.Connection:
    """Open a connection configured for concurrent writers.

    IMMEDIATE isolation takes the write lock at BEGIN, so reading the current
    latest version and inserting the next one happen under the same lock.
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(
        str(db_path),
        timeout=30.0,
        isolation_level="IMMEDIATE",
        check_same_thread=False,
    )
    conn.row_factory = sqlite3.Row
    return conn


def init_db(db_path: Path) -> None:
    with contextlib.closing(_connect(db_path)) as conn, conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS content_versions (
              content_id TEXT NOT NULL,
              version_number INTEGER NOT NULL,
              version_id TEXT NOT NULL UNIQUE,
              created_at_utc TEXT NOT NULL,
              author TEXT NOT NULL,
              content TEXT NOT NULL,
              change_summary TEXT NOT NULL,
              tokens_added INTEGER NOT NULL DEFAULT 0,
              tokens_removed INTEGER NOT NULL DEFAULT 0,
              overall_score REAL,
              PRIMARY KEY (content_id, version_number)
            )
            """
        )
        # Append-only: history rows can never be rewritten
        conn.execute(
            """
            CREATE TRIGGER IF NOT EXISTS content_versions_no_update
            BEFORE UPDATE ON content_versions
            BEGIN
              SELECT RAISE(ABORT, 'content_versions is append-only');
            END
            """
        )
        conn.execute(
            """
            CREATE TRIGGER IF NOT EXISTS content_versions_no_delete
            BEFORE DELETE ON content_versions
            BEGIN
              SELECT RAISE(ABORT, 'content_versions is append-only');
            END
            """
        )


def append_version(db_path: Path, version: ContentVersion) -> None:
    """Insert ``version`` if it directly follows the stored latest.

    The check and the insert run in one BEGIN IMMEDIATE transaction.

    Raises:
        VersionConflictError: If the version number is not latest + 1.
    """
    conn = _connect(db_path)
    try:
        conn.execute("BEGIN IMMEDIATE")
        try:
            row = conn.execute(
                """
                SELECT COALESCE(MAX(version_number), 0) + 1 AS next_version
                FROM content_versions
                WHERE content_id = ?
                """,
                (version.content_id,),
            ).fetchone()
            if row["next_version"] != version.version_number:
                raise VersionConflictError(
                    version.content_id,
                    f"Expected version {row['next_version']} for {version.content_id!r}, "
                    f"got {version.version_number}",
                )
            conn.execute(
                f"INSERT INTO content_versions({_VERSION_COLUMNS}) VALUES(?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                version.to_db_row(),
            )
            conn.execute("COMMIT")
        except Exception:
            conn.execute("ROLLBACK")
            raise
    finally:
        conn.close()


def list_versions(db_path: Path, content_id: str) -> list[ContentVersion]:
    """All versions of a content item, oldest first."""
    conn = _connect(db_path)
    try:
        rows = conn.execute(
            f"SELECT {_VERSION_COLUMNS} FROM content_versions WHERE content_id = ? ORDER BY version_number",
            (content_id,),
        ).fetchall()
    finally:
        conn.close()
    return [ContentVersion.from_db_row(tuple(r)) for r in rows]


def latest_version(db_path: Path, content_id: str) -> ContentVersion | None:
    conn = _connect(db_path)
    try:
        row = conn.execute(
            f"""
            SELECT {_VERSION_COLUMNS} FROM content_versions
            WHERE content_id = ?
            ORDER BY version_number DESC
            LIMIT 1
            """,
            (content_id,),
        ).fetchone()
    finally:
        conn.close()
    return ContentVersion.from_db_row(tuple(row)) if row else None


class SqliteVersionStore:
    """VersionStore backed by the ``content_versions`` table."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        init_db(db_path)

    def latest(self, content_id: str) -> ContentVersion | None:
        return latest_version(self.db_path, content_id)

    def list(self, content_id: str) -> list[ContentVersion]:
        return list_versions(self.db_path, content_id)

    def append(self, version: ContentVersion) -> None:
        append_version(self.db_path, version)

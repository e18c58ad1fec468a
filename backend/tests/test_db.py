"""Tests for the sqlite-backed version store."""

import sqlite3
import threading

import pytest

from contentgate import db
from contentgate.pipeline.versioning import VersionConflictError, VersionRecorder
from factories import make_version


class TestSqliteVersionStore:
    def test_append_and_read_back(self, temp_db_path):
        store = db.SqliteVersionStore(temp_db_path)
        version = make_version(content="Hello world", overall_score=88.5)

        store.append(version)

        assert store.list("post-1") == [version]
        assert store.latest("post-1") == version

    def test_unknown_identity(self, temp_db_path):
        store = db.SqliteVersionStore(temp_db_path)

        assert store.list("missing") == []
        assert store.latest("missing") is None

    def test_version_gap_rejected(self, temp_db_path):
        store = db.SqliteVersionStore(temp_db_path)

        with pytest.raises(VersionConflictError):
            store.append(make_version(version_number=2))
        assert store.list("post-1") == []

    def test_init_is_idempotent(self, temp_db_path):
        db.SqliteVersionStore(temp_db_path).append(make_version())

        reopened = db.SqliteVersionStore(temp_db_path)
        assert len(reopened.list("post-1")) == 1


class TestAppendOnly:
    def test_update_blocked_by_trigger(self, temp_db_path):
        db.SqliteVersionStore(temp_db_path).append(make_version())

        conn = sqlite3.connect(temp_db_path)
        try:
            with pytest.raises(sqlite3.IntegrityError, match="append-only"):
                conn.execute("UPDATE content_versions SET content = 'tampered'")
        finally:
            conn.close()

    def test_delete_blocked_by_trigger(self, temp_db_path):
        db.SqliteVersionStore(temp_db_path).append(make_version())

        conn = sqlite3.connect(temp_db_path)
        try:
            with pytest.raises(sqlite3.IntegrityError, match="append-only"):
                conn.execute("DELETE FROM content_versions")
        finally:
            conn.close()

        assert len(db.list_versions(temp_db_path, "post-1")) == 1


class TestRecorderOnSqlite:
    def test_concurrent_revisions(self, temp_db_path):
        recorder = VersionRecorder(db.SqliteVersionStore(temp_db_path))
        recorder.record_initial("post-1", "base", "generator")

        threads = [
            threading.Thread(target=recorder.record_revision, args=("post-1", f"base {n}", "editor"))
            for n in range(8)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        numbers = [v.version_number for v in recorder.history("post-1")]
        assert numbers == list(range(1, 10))

    def test_separate_recorders_share_one_sequence(self, temp_db_path):
        first = VersionRecorder(db.SqliteVersionStore(temp_db_path))
        second = VersionRecorder(db.SqliteVersionStore(temp_db_path))

        first.record_initial("post-1", "base", "generator")
        v2 = second.record_revision("post-1", "base edited", "editor")

        assert v2.version_number == 2
        assert [v.version_number for v in first.history("post-1")] == [1, 2]

"""
Tests for SyncService.

Runs real syncs from throwaway git repositories into a temporary database.
"""

import logging
import sqlite3
import threading
from datetime import timedelta
from pathlib import Path
from unittest.mock import patch

import pytest

from conftest import BOB, make_document
from tagindex.database import Database, get_repository_data, get_tag_paths, load_tag, mark_synced
from tagindex.errors import (
    DuplicateTagName,
    MalformedTagDocument,
    RepositoryCorrupt,
    SourceUnavailable,
    StorageError,
)
from tagindex.services import RepositoryService, SyncRequest, SyncService, SyncState


@pytest.fixture
def registry(config, db_path):
    return RepositoryService(config, db_path=db_path)


@pytest.fixture
def repository(registry, source_repo):
    return registry.add("github:octo/tags", url=source_repo.url)


@pytest.fixture
def service(config, db_path, clock):
    service = SyncService(config, db_path=db_path, clock=clock)
    yield service
    service.shutdown()


def document_ids(db_path, repository):
    with Database(db_path=db_path) as db:
        return set(get_tag_paths(db, repository.id).values())


def repository_data(db_path, repository):
    with Database(db_path=db_path) as db:
        return get_repository_data(db, repository.id)


def load_by_document(db_path, repository, document_id):
    with Database(db_path=db_path) as db:
        db.execute(
            "SELECT id FROM tag WHERE repository_id = ? AND document_id = ?",
            (repository.id, document_id)
        )
        return load_tag(db, db.fetchone()["id"])


class TestFirstSync:

    def test_inserts_documents(self, service, repository, source_repo, db_path, clock):
        """Test a first sync reads every document under the tag directory."""
        source_repo.write("tags/hello.md", make_document("hello", "hello", alias=["hi"]))
        source_repo.write("tags/bye.md", make_document("bye", "bye"))
        head = source_repo.commit("initial")

        report = service.sync(repository)

        assert report.request == SyncRequest.ACCEPTED
        assert not report.failed
        assert report.previous_revision is None
        assert report.revision == head
        assert report.inserted == 2
        assert document_ids(db_path, repository) == {"hello", "bye"}

        data = repository_data(db_path, repository)
        assert data.revision == head
        assert data.updated == clock.now
        assert data.checked == clock.now

    def test_ignores_hidden_and_outside_files(self, service, repository, source_repo, db_path):
        """Test dotfiles and files outside the tag directory are not documents."""
        source_repo.write("tags/.gitkeep", "")
        source_repo.write("tags/hello.md", make_document("hello", "hello"))
        source_repo.write("README.md", "Not a tag")
        source_repo.commit()

        report = service.sync(repository)
        assert report.inserted == 1
        assert report.skipped == []

    def test_history_attribution(self, service, repository, source_repo, db_path, clock):
        """Test created and modified come from the file's commits."""
        source_repo.write("tags/hello.md", make_document("hello", "hello"))
        source_repo.commit("create")
        source_repo.write("tags/hello.md", make_document("hello", "hello", body="Edited"))
        source_repo.commit("edit", author=BOB)

        service.sync(repository)
        tag = load_by_document(db_path, repository, "hello")
        assert tag.meta.created_by.name == "Alice"
        assert tag.meta.modified_by.name == "Bob"
        assert tag.meta.created < tag.meta.modified
        assert {a.name for a in tag.authors} == {"Alice", "Bob"}
        assert tag.content == "Edited"

    def test_descriptor(self, service, registry, repository, source_repo, db_path):
        """Test tagindex.yaml sets metadata and moves the tag directory."""
        source_repo.write(
            "tagindex.yaml",
            "name: Community\ndescription: Shared tags\npublic: true\nlanguage: en\n"
            "category: [Games]\ndirectory: docs\n"
        )
        source_repo.write("docs/hello.md", make_document("hello", "hello"))
        source_repo.write("tags/ignored.md", make_document("ignored", "ignored"))
        source_repo.commit()

        report = service.sync(repository)
        assert report.inserted == 1
        assert document_ids(db_path, repository) == {"hello"}

        _, meta = registry.status(repository)
        assert meta.name == "Community"
        assert meta.public
        assert meta.categories == ("Games",)
        assert [r.identifier for r in registry.public_repositories(category="games")] == [repository.identifier]

    def test_identifier_path(self, service, registry, source_repo, db_path):
        """Test a catalog in a sub-directory only reads that sub-directory."""
        source_repo.write("sub/tags/inner.md", make_document("inner", "inner"))
        source_repo.write("tags/outer.md", make_document("outer", "outer"))
        source_repo.commit()

        nested = registry.add("github:octo/tags/sub", url=source_repo.url)
        service.sync(nested)
        assert document_ids(db_path, nested) == {"inner"}

    def test_malformed_document_skipped(self, service, registry, repository, source_repo, db_path):
        """Test a broken document is skipped and logged, the rest is stored."""
        source_repo.write("tags/bad.md", "---\ntag: no id\n---\nbody\n")
        source_repo.write("tags/good.md", make_document("good", "good"))
        source_repo.commit()

        report = service.sync(repository)
        assert report.inserted == 1
        assert [path for path, _ in report.skipped] == ["tags/bad.md"]
        assert isinstance(report.skipped[0][1], MalformedTagDocument)

        errors = registry.errors(repository.identifier)
        assert [(e["path"], e["error_type"]) for e in errors] == [("tags/bad.md", "malformed_document")]

    def test_duplicate_names_first_path_wins(self, service, repository, source_repo, db_path):
        source_repo.write("tags/a.md", make_document("a", "same"))
        source_repo.write("tags/b.md", make_document("b", "same"))
        source_repo.commit()

        report = service.sync(repository)
        assert document_ids(db_path, repository) == {"a"}
        assert [path for path, _ in report.skipped] == ["tags/b.md"]


class TestIncrementalSync:

    @pytest.fixture
    def synced(self, service, repository, source_repo, clock):
        source_repo.write("tags/a.md", make_document("a", "alpha"))
        source_repo.write("tags/b.md", make_document("b", "beta"))
        source_repo.commit("initial")
        service.sync(repository)
        clock.advance(61)
        return repository

    def test_up_to_date(self, service, synced, db_path, clock):
        """Test an unchanged remote writes no tags and only records the check."""
        with patch("tagindex.services.sync_service.reconcile") as reconcile:
            report = service.sync(synced)

        reconcile.assert_not_called()
        assert report.state == SyncState.UP_TO_DATE
        data = repository_data(db_path, synced)
        assert data.checked == clock.now
        assert data.updated < clock.now

    def test_changes(self, service, synced, source_repo, db_path):
        """Test modified, removed and added files are applied together."""
        source_repo.write("tags/a.md", make_document("a", "alpha", body="New text"))
        source_repo.remove("tags/b.md")
        source_repo.write("tags/c.md", make_document("c", "gamma"))
        head = source_repo.commit("changes")

        report = service.sync(synced)
        assert (report.inserted, report.updated, report.removed) == (1, 1, 1)
        assert document_ids(db_path, synced) == {"a", "c"}
        assert load_by_document(db_path, synced, "a").content == "New text"
        assert repository_data(db_path, synced).revision == head

    def test_id_change_removes_old_id(self, service, synced, source_repo, db_path):
        """Test a document whose id changed replaces the old tag."""
        source_repo.write("tags/a.md", make_document("a2", "alpha"))
        source_repo.commit()

        report = service.sync(synced)
        assert report.removed == 1
        assert report.inserted == 1
        assert document_ids(db_path, synced) == {"a2", "b"}

    def test_rename_keeps_document(self, service, synced, source_repo, db_path):
        """Test moving a file keeps its document id."""
        source_repo.git("mv", "tags/a.md", "tags/renamed.md")
        source_repo.commit()

        report = service.sync(synced)
        assert report.removed == 0
        assert document_ids(db_path, synced) == {"a", "b"}

    def test_unreachable_revision_resyncs_everything(self, service, synced, source_repo, db_path, clock):
        """Test a vanished base revision falls back to a full listing."""
        with Database(db_path=db_path) as db:
            mark_synced(db, synced.id, "f" * 40, clock.now - timedelta(hours=2))
        source_repo.remove("tags/b.md")
        source_repo.commit()

        report = service.sync(synced)
        assert not report.failed
        assert document_ids(db_path, synced) == {"a"}
        assert report.removed == 1

    def test_storage_error_keeps_revision(self, service, synced, source_repo, db_path, clock):
        """Test a failed write leaves the catalog and revision untouched."""
        before = repository_data(db_path, synced).revision
        source_repo.write("tags/c.md", make_document("c", "gamma"))
        source_repo.commit()

        with patch("tagindex.services.sync_service.reconcile", side_effect=StorageError("disk full")):
            report = service.sync(synced)

        assert report.failed
        assert isinstance(report.error, StorageError)
        data = repository_data(db_path, synced)
        assert data.revision == before
        assert data.checked == clock.now
        assert document_ids(db_path, synced) == {"a", "b"}

    def test_database_error_reported_as_failure(self, service, synced, registry):
        """Test a raw database error ends the sync as failed and is logged for operators."""
        locked = sqlite3.OperationalError("database is locked")
        with patch("tagindex.services.sync_service.mark_checked", side_effect=[locked, None]):
            report = service.sync(synced)

        assert report.failed
        assert isinstance(report.error, StorageError)
        assert service.state(synced.id) == SyncState.IDLE
        [error] = registry.errors(synced.identifier)
        assert error["error_type"] == "storage_error"


class TestDocumentOwnership:
    """Tags belong to the file they were read from."""

    @pytest.fixture
    def synced(self, service, repository, source_repo, clock):
        source_repo.write("tags/a.md", make_document("a", "alpha"))
        source_repo.write("tags/b.md", make_document("b", "beta"))
        source_repo.commit("initial")
        service.sync(repository)
        clock.advance(61)
        return repository

    def test_removing_losing_duplicate_keeps_winner(self, service, synced, source_repo, db_path, clock):
        """Test deleting a file that reused a taken id keeps the original tag."""
        source_repo.write("tags/c.md", make_document("a", "copy"))
        source_repo.commit()
        report = service.sync(synced)
        assert [path for path, _ in report.skipped] == ["tags/c.md"]

        clock.advance(61)
        source_repo.remove("tags/c.md")
        source_repo.commit()
        report = service.sync(synced)

        assert report.removed == 0
        assert document_ids(db_path, synced) == {"a", "b"}
        assert load_by_document(db_path, synced, "a").name == "alpha"

    def test_duplicate_in_first_sync_survives_removal(self, service, repository, source_repo, db_path, clock):
        """Test the first file keeps its tag when the second file with its id goes away."""
        source_repo.write("tags/a.md", make_document("x", "first"))
        source_repo.write("tags/b.md", make_document("x", "second"))
        source_repo.commit()
        service.sync(repository)

        clock.advance(61)
        source_repo.remove("tags/b.md")
        source_repo.commit()
        service.sync(repository)

        assert document_ids(db_path, repository) == {"x"}
        assert load_by_document(db_path, repository, "x").name == "first"

    def test_skipped_duplicate_retried_once_name_is_free(self, service, synced, source_repo, registry, db_path, clock):
        """Test a document rejected for its name is stored after the other file is removed."""
        source_repo.write("tags/c.md", make_document("c", "alpha"))
        source_repo.commit()
        report = service.sync(synced)
        assert isinstance(report.skipped[0][1], DuplicateTagName)

        clock.advance(61)
        source_repo.remove("tags/a.md")
        source_repo.commit()
        report = service.sync(synced)

        assert (report.inserted, report.removed) == (1, 1)
        assert document_ids(db_path, synced) == {"b", "c"}
        assert registry.errors(synced.identifier) == []

    def test_malformed_document_retried_until_fixed(self, service, synced, source_repo, registry, db_path, clock):
        """Test an unchanged broken file stays in the error log and is stored once repaired."""
        source_repo.write("tags/c.md", "---\ntag: gamma\n---\n")
        source_repo.commit()
        service.sync(synced)

        clock.advance(61)
        source_repo.write("tags/b.md", make_document("b", "beta", body="Edited"))
        source_repo.commit()
        service.sync(synced)
        assert [e["path"] for e in registry.errors(synced.identifier)] == ["tags/c.md"]

        clock.advance(61)
        source_repo.write("tags/c.md", make_document("c", "gamma"))
        source_repo.commit()
        service.sync(synced)
        assert document_ids(db_path, synced) == {"a", "b", "c"}

    def test_swapped_names(self, service, synced, source_repo, db_path):
        """Test two documents exchanging names in one commit are both applied."""
        source_repo.write("tags/a.md", make_document("a", "beta"))
        source_repo.write("tags/b.md", make_document("b", "alpha"))
        source_repo.commit()

        report = service.sync(synced)

        assert report.skipped == []
        assert load_by_document(db_path, synced, "a").name == "beta"
        assert load_by_document(db_path, synced, "b").name == "alpha"

    def test_moved_tag_directory_drops_old_tags(self, service, synced, source_repo, db_path):
        """Test tags of the previous directory go away when the descriptor moves it."""
        source_repo.write("tagindex.yaml", "directory: docs\n")
        source_repo.write("docs/c.md", make_document("c", "gamma"))
        source_repo.commit()

        report = service.sync(synced)

        assert (report.inserted, report.removed) == (1, 2)
        assert document_ids(db_path, synced) == {"c"}


class TestRateLimiting:

    def test_forced_sync_within_minimum_interval(self, service, repository, source_repo, clock):
        """Test force never bypasses the minimum interval and the remote is not contacted."""
        source_repo.commit("empty")
        service.sync(repository)
        clock.advance(1)

        with patch.object(service.git, "fetch") as fetch:
            report = service.sync(repository, force=True)

        assert report.request == SyncRequest.RATE_LIMITED
        fetch.assert_not_called()

    def test_check_interval_needs_force(self, service, repository, source_repo, clock):
        """Test between the minimum and regular interval only forced requests run."""
        source_repo.commit("empty")
        service.sync(repository)
        clock.advance(20)

        assert service.sync(repository).request == SyncRequest.RATE_LIMITED
        assert service.sync(repository, force=True).request == SyncRequest.ACCEPTED

    def test_failed_attempt_counts_as_check(self, service, registry, tmp_path, clock):
        broken = registry.add("github:octo/missing", url=str(tmp_path / "missing"))
        assert service.sync(broken).failed
        clock.advance(1)
        assert service.sync(broken, force=True).request == SyncRequest.RATE_LIMITED

    def test_in_flight_request_rejected(self, service, repository, source_repo):
        """Test a repository is never synced twice at the same time."""
        source_repo.write("tags/a.md", make_document("a", "alpha"))
        source_repo.commit()

        started = threading.Event()
        release = threading.Event()
        real_fetch = service.git.fetch

        def slow_fetch(path):
            started.set()
            release.wait(10)
            real_fetch(path)

        with patch.object(service.git, "fetch", side_effect=slow_fetch):
            request, future = service.submit(repository, force=True)
            assert request == SyncRequest.ACCEPTED
            assert started.wait(10)
            assert service.state(repository.id) == SyncState.CHECKING
            assert service.request_sync(repository, force=True) == SyncRequest.RATE_LIMITED
            release.set()
            report = future.result(timeout=30)

        assert report.inserted == 1
        assert service.state(repository.id) == SyncState.IDLE

    def test_crash_on_worker_is_logged(self, service, repository, caplog):
        """Test an unexpected exception in a pooled sync is logged and frees the repository."""
        with patch.object(service, "_sync_repository", side_effect=RuntimeError("boom")):
            with caplog.at_level(logging.ERROR, logger="tagindex"):
                request, future = service.submit(repository, force=True)
                with pytest.raises(RuntimeError):
                    future.result(timeout=30)
                service.shutdown()

        assert request == SyncRequest.ACCEPTED
        assert "crashed: boom" in caplog.text
        assert service.state(repository.id) == SyncState.IDLE


class TestFailures:

    def test_unreachable_source(self, service, registry, db_path, tmp_path, clock):
        """Test a failed clone is recorded and still counts as checked."""
        broken = registry.add("github:octo/missing", url=str(tmp_path / "missing"))

        report = service.sync(broken)

        assert report.state == SyncState.FAILED
        assert isinstance(report.error, SourceUnavailable)
        data = repository_data(db_path, broken)
        assert data.checked == clock.now
        assert data.revision is None

        errors = registry.errors(broken.identifier)
        assert errors[0]["path"] is None
        assert errors[0]["error_type"] == "source_unavailable"

    def test_corrupt_working_copy_recloned(self, service, repository, source_repo, db_path, clock):
        """Test a broken working copy is removed and cloned again on the next attempt."""
        source_repo.write("tags/a.md", make_document("a", "alpha"))
        source_repo.commit()
        directory = Path(repository.directory)
        directory.mkdir(parents=True)
        (directory / "junk").write_text("not a repository")

        report = service.sync(repository)
        assert report.failed
        assert isinstance(report.error, RepositoryCorrupt)
        assert not directory.exists()

        clock.advance(11)
        report = service.sync(repository, force=True)
        assert not report.failed
        assert document_ids(db_path, repository) == {"a"}


class TestSyncAll:

    def test_sync_all(self, service, registry, repository, source_repo, tmp_path):
        source_repo.write("tags/a.md", make_document("a", "alpha"))
        source_repo.commit()
        broken = registry.add("github:octo/missing", url=str(tmp_path / "missing"))

        reports = {r.repository: r for r in service.sync_all([repository, broken])}
        assert reports[repository.identifier].inserted == 1
        assert reports[broken.identifier].failed

    def test_sync_all_reports_rate_limited(self, service, repository, source_repo, clock):
        source_repo.commit()
        service.sync(repository)
        reports = list(service.sync_all([repository], force=True))
        assert [r.request for r in reports] == [SyncRequest.RATE_LIMITED]

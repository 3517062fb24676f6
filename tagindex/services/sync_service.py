"""
Sync service for tagindex.

Brings the catalog of one repository up to date with its remote:

    IDLE -> CHECKING -> UP_TO_DATE -> IDLE
                     -> SYNCING -> IDLE
                     -> SYNCING -> FAILED -> IDLE

Syncs of different repositories run concurrently on a bounded worker
pool. Syncs of the same repository never overlap: a request for a
repository that is in flight, or that was checked less than the minimum
interval ago, is rate limited without touching the remote.
"""

import logging
import posixpath
import shutil
import sqlite3
import threading
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from functools import partial
from pathlib import Path
from typing import Any, Callable, Dict, Generator, Iterable, List, Optional, Set, Tuple

from ..config import get_sync_settings
from ..database import (
    Database,
    ParsedDocument,
    get_db_path,
    get_tag_paths,
    get_repository_data,
    mark_checked,
    reconcile,
    record_sync_errors,
)
from ..document import DESCRIPTOR_FILE, parse_descriptor, parse_document
from ..domain.repository import Repository, RepositoryData, RepositoryDescriptor
from ..errors import (
    FileMissing,
    MalformedTagDocument,
    RepositoryCorrupt,
    SourceUnavailable,
    StorageError,
    TagIndexError,
)
from ..history import resolve_history
from ..infra.git_client import GitClient
from ..utils import utcnow

logger = logging.getLogger(__name__)


class SyncState(Enum):
    IDLE = "idle"
    CHECKING = "checking"
    UP_TO_DATE = "up_to_date"
    SYNCING = "syncing"
    FAILED = "failed"


class SyncRequest(Enum):
    ACCEPTED = "accepted"
    RATE_LIMITED = "rate_limited"


@dataclass
class SyncReport:
    """Outcome of one sync attempt."""
    repository: str
    request: SyncRequest = SyncRequest.ACCEPTED
    state: SyncState = SyncState.IDLE
    previous_revision: Optional[str] = None
    revision: Optional[str] = None
    inserted: int = 0
    updated: int = 0
    removed: int = 0
    skipped: List[Tuple[str, TagIndexError]] = field(default_factory=list)
    error: Optional[TagIndexError] = None

    @property
    def failed(self) -> bool:
        return self.state == SyncState.FAILED

    def to_dict(self) -> Dict[str, Any]:
        return {
            'repository': self.repository,
            'request': self.request.value,
            'state': self.state.value,
            'previous_revision': self.previous_revision,
            'revision': self.revision,
            'inserted': self.inserted,
            'updated': self.updated,
            'removed': self.removed,
            'skipped': [
                {'path': path, 'type': error.error_type, 'message': str(error)}
                for path, error in self.skipped
            ],
            'error': str(self.error) if self.error else None,
        }


class SyncService:
    """
    Service for synchronizing repositories into the catalog.

    Example:
        service = SyncService(config)
        report = service.sync(repository)
        print(f"{report.repository}: {report.state.value}")

        # Non-blocking, on the worker pool
        request, future = service.submit(repository, force=True)
    """

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        db_path: Optional[Path] = None,
        git_client: Optional[GitClient] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Initialize SyncService.

        Args:
            config: Configuration dict
            db_path: Database file (resolved from config if None)
            git_client: Git client instance (creates default if None)
            clock: Source of the current time, naive UTC
        """
        self.config = config or {}
        settings = get_sync_settings(self.config)
        self.min_check_interval = timedelta(minutes=settings['min_check_minutes'])
        self.check_interval = timedelta(minutes=settings['check_interval_minutes'])
        self.workers = max(1, settings['workers'])
        self.db_path = db_path or get_db_path(self.config)
        self.git = git_client or GitClient(timeout=settings['fetch_timeout_seconds'])
        self.clock = clock

        self._lock = threading.Lock()
        self._in_flight: Set[int] = set()
        self._states: Dict[int, SyncState] = {}
        self._executor: Optional[ThreadPoolExecutor] = None

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def state(self, repository_id: int) -> SyncState:
        with self._lock:
            return self._states.get(repository_id, SyncState.IDLE)

    def request_sync(self, repository: Repository, force: bool = False) -> SyncRequest:
        """Queue a sync on the worker pool. Returns immediately."""
        request, _ = self.submit(repository, force)
        return request

    def submit(
        self,
        repository: Repository,
        force: bool = False,
    ) -> Tuple[SyncRequest, Optional['Future[SyncReport]']]:
        """
        Queue a sync on the worker pool.

        Returns:
            (request, future). The future is None when the request was rate limited.
        """
        if not self._admit(repository, force):
            return SyncRequest.RATE_LIMITED, None

        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.workers, thread_name_prefix="tagindex-sync"
                )
            executor = self._executor
        future = executor.submit(self._run, repository)
        future.add_done_callback(partial(_log_crash, repository))
        return SyncRequest.ACCEPTED, future

    def sync(self, repository: Repository, force: bool = False) -> SyncReport:
        """Sync one repository on the calling thread."""
        if not self._admit(repository, force):
            return SyncReport(repository=repository.identifier, request=SyncRequest.RATE_LIMITED)
        return self._run(repository)

    def sync_all(
        self,
        repositories: Iterable[Repository],
        force: bool = False,
    ) -> Generator[SyncReport, None, None]:
        """Sync several repositories on the worker pool, yielding reports as they finish."""
        futures = {}
        for repository in repositories:
            request, future = self.submit(repository, force)
            if future is None:
                yield SyncReport(repository=repository.identifier, request=request)
            else:
                futures[future] = repository

        for future in as_completed(futures):
            yield future.result()

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=wait)

    def _admit(self, repository: Repository, force: bool) -> bool:
        """
        Reserve the repository for a sync, or reject the request.

        The minimum interval always applies. Without ``force`` the
        repository must also be due by the regular check interval.
        """
        now = self.clock()
        with Database(db_path=self.db_path) as db:
            data = get_repository_data(db, repository.id)

        with self._lock:
            if repository.id in self._in_flight:
                logger.info(f"{repository.identifier}: sync already running")
                return False
            if data.checked is not None:
                elapsed = now - data.checked
                if elapsed < self.min_check_interval or (not force and elapsed < self.check_interval):
                    logger.info(f"{repository.identifier}: checked {elapsed} ago, not syncing")
                    return False
            self._in_flight.add(repository.id)
            return True

    def _run(self, repository: Repository) -> SyncReport:
        report = SyncReport(repository=repository.identifier)
        try:
            return self._sync_repository(repository, report)
        except sqlite3.Error as e:
            error = StorageError(f"Database error while syncing {repository.identifier}: {e}")
            return self._fail(repository, report, error, self.clock(), report.revision)
        finally:
            with self._lock:
                self._in_flight.discard(repository.id)
                self._states[repository.id] = SyncState.IDLE

    def _set_state(self, repository: Repository, state: SyncState) -> None:
        with self._lock:
            self._states[repository.id] = state
        logger.debug(f"{repository.identifier}: {state.value}")

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    def _sync_repository(self, repository: Repository, report: SyncReport) -> SyncReport:
        now = self.clock()

        with Database(db_path=self.db_path) as db:
            data = get_repository_data(db, repository.id)
        report.previous_revision = data.revision

        self._set_state(repository, SyncState.CHECKING)
        logger.info(f"Checking {repository.identifier}")
        try:
            head = self._fetch_head(repository)
        except (SourceUnavailable, RepositoryCorrupt) as e:
            return self._fail(repository, report, e, now, data.revision)
        report.revision = head

        if head == data.revision:
            with Database(db_path=self.db_path) as db:
                mark_checked(db, repository.id, now)
            self._set_state(repository, SyncState.UP_TO_DATE)
            report.state = SyncState.UP_TO_DATE
            logger.info(f"{repository.identifier} is up to date at {head[:12]}")
            return report

        self._set_state(repository, SyncState.SYNCING)
        try:
            documents, removed_paths, skipped, descriptor = self._collect(repository, data, head)
        except (SourceUnavailable, RepositoryCorrupt) as e:
            return self._fail(repository, report, e, now, head)

        try:
            with Database(db_path=self.db_path) as db:
                result = reconcile(
                    db,
                    repository.id,
                    documents,
                    removed_paths,
                    head,
                    now,
                    meta=descriptor.to_meta(),
                    skipped=skipped,
                )
        except StorageError as e:
            return self._fail(repository, report, e, now, head)

        report.inserted = result.inserted
        report.updated = result.updated
        report.removed = result.removed
        report.skipped = skipped + result.skipped
        report.state = SyncState.IDLE
        logger.info(
            f"Synced {repository.identifier} to {head[:12]}: "
            f"{result.inserted} added, {result.updated} updated, "
            f"{result.removed} removed, {len(report.skipped)} skipped"
        )
        return report

    def _fetch_head(self, repository: Repository) -> str:
        try:
            self.git.open(repository.url, repository.directory)
            self.git.fetch(repository.directory)
            head = self.git.head_revision(repository.directory)
            self.git.checkout(repository.directory, head)
        except RepositoryCorrupt:
            # Next attempt clones from scratch
            logger.warning(f"Removing corrupt working copy {repository.directory}")
            shutil.rmtree(repository.directory, ignore_errors=True)
            raise
        return head

    def _collect(
        self,
        repository: Repository,
        data: RepositoryData,
        head: str,
    ) -> Tuple[List[ParsedDocument], Set[str], List[Tuple[str, TagIndexError]], RepositoryDescriptor]:
        """
        Read the documents to reconcile at ``head``.

        These are the files changed since the synced revision, plus every
        file at head that has no tag yet, so a document skipped earlier is
        retried once whatever blocked it is gone.
        """
        directory = repository.directory
        identifier = repository.parsed_identifier
        root = identifier.path if identifier and identifier.path else ""

        descriptor = self._read_descriptor(directory, head, root)
        tags_path = posixpath.join(root, descriptor.directory) if root else descriptor.directory

        with Database(db_path=self.db_path) as db:
            persisted = set(get_tag_paths(db, repository.id))

        previous = data.revision
        if previous is not None and not self.git.has_revision(directory, previous):
            logger.warning(
                f"{repository.identifier}: revision {previous[:12]} is gone upstream, resyncing all documents"
            )
            previous = None
        elif previous is not None and any(not _is_under(path, tags_path) for path in persisted):
            logger.warning(f"{repository.identifier}: tags moved to {tags_path}, resyncing all documents")
            previous = None

        present = {path for path in self.git.list_files(directory, head, tags_path) if not _is_hidden(path)}
        if previous is None:
            changed = present
            removed_paths = persisted - present
        else:
            diff = self.git.diff(directory, previous, head, tags_path)
            changed = (diff.added | diff.modified) & present
            changed |= present - persisted
            removed_paths = set(diff.removed)
        commit = self.git.commit(directory, head)

        documents: List[ParsedDocument] = []
        skipped: List[Tuple[str, TagIndexError]] = []

        for path in sorted(changed):
            try:
                document = parse_document(self.git.read_file(directory, head, path))
            except FileMissing as e:
                logger.warning(f"Skipping {path}: {e}")
                skipped.append((path, e))
                removed_paths.add(path)
                continue
            except MalformedTagDocument as e:
                logger.warning(f"Skipping {path}: {e}")
                skipped.append((path, e))
                continue

            history = resolve_history(self.git.history(directory, path, head), commit)
            documents.append(ParsedDocument(path=path, document=document, history=history))

        return documents, removed_paths, skipped, descriptor

    def _read_descriptor(self, directory: str, revision: str, root: str) -> RepositoryDescriptor:
        path = posixpath.join(root, DESCRIPTOR_FILE) if root else DESCRIPTOR_FILE
        try:
            return parse_descriptor(self.git.read_file(directory, revision, path))
        except FileMissing:
            return RepositoryDescriptor()

    def _fail(
        self,
        repository: Repository,
        report: SyncReport,
        error: TagIndexError,
        now: datetime,
        revision: Optional[str],
    ) -> SyncReport:
        """Record a failed attempt. The synced revision stays where it was."""
        self._set_state(repository, SyncState.FAILED)
        logger.error(f"Sync of {repository.identifier} failed: {error}")
        try:
            with Database(db_path=self.db_path) as db:
                mark_checked(db, repository.id, now)
                record_sync_errors(db, repository.id, [(None, error)], revision)
        except sqlite3.Error as e:
            logger.error(f"Could not record failed sync of {repository.identifier}: {e}")
        report.state = SyncState.FAILED
        report.error = error
        return report


def _is_hidden(path: str) -> bool:
    return posixpath.basename(path).startswith('.')


def _is_under(path: str, directory: str) -> bool:
    return not directory or path.startswith(directory.rstrip('/') + '/')


def _log_crash(repository: Repository, future: 'Future[SyncReport]') -> None:
    """Log a sync that died with an unexpected exception on the worker pool."""
    if future.cancelled():
        return
    error = future.exception()
    if error is not None:
        logger.error(f"Sync of {repository.identifier} crashed: {error}", exc_info=error)

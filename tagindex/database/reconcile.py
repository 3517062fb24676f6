"""
Reconciliation of parsed tag documents into the database.

One call handles one repository's batch of changed and removed files
inside a single transaction, so readers see the catalog either before or
after the batch. Every tag remembers the file it was read from: a batch
owns the tags of the paths it touches, while tags of untouched files keep
their ids and names. A document that collides with those, or with an
earlier document of the batch, is reported as skipped; the rest of the
batch is kept.
"""

import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from ..domain.repository import RepositoryMeta
from ..domain.tag import TagDocument
from ..errors import DuplicateTagName, MalformedTagDocument, StorageError, TagIndexError
from ..history import FileHistory
from ..utils import format_timestamp
from .connection import Database, transaction
from .errors import record_sync_errors
from .references import upsert_author, upsert_categories
from .repository import mark_synced, upsert_repository_meta

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParsedDocument:
    """A tag document ready for reconciliation."""
    path: str
    document: TagDocument
    history: FileHistory


@dataclass
class ReconcileReport:
    """Outcome of one reconciliation batch."""
    inserted: int = 0
    updated: int = 0
    removed: int = 0
    skipped: List[Tuple[str, TagIndexError]] = field(default_factory=list)

    @property
    def changed(self) -> int:
        return self.inserted + self.updated + self.removed


def reconcile(
    db: Database,
    repository_id: int,
    documents: Sequence[ParsedDocument],
    removed_paths: Iterable[str],
    revision: str,
    now: datetime,
    meta: Optional[RepositoryMeta] = None,
    skipped: Sequence[Tuple[str, TagIndexError]] = (),
) -> ReconcileReport:
    """
    Apply a sync batch to the database.

    Collisions are judged against the state after the batch: a name or id
    given up by a removed, renamed or rewritten file can be taken by any
    document of the same batch, so two documents may swap names. Among
    documents of the batch the earlier one wins. Tags of batch paths that
    no accepted document carries anymore are deleted. The repository
    revision only advances if the whole batch commits.

    Args:
        db: Database connection
        repository_id: Repository the batch belongs to
        documents: Documents of added, modified or retried files
        removed_paths: Files that no longer exist
        revision: Revision the batch was read at
        now: Sync time
        meta: Repository metadata from the descriptor, if any
        skipped: Paths already rejected before reconciliation, logged
            together with the ones rejected here

    Raises:
        StorageError: the database rejected the batch; nothing was written
    """
    report = ReconcileReport()
    batch_paths = set(removed_paths) | {parsed.path for parsed in documents}

    try:
        with transaction(db):
            db.execute(
                "SELECT id, path, document_id, name FROM tag WHERE repository_id = ?",
                (repository_id,)
            )
            rows = [dict(row) for row in db.fetchall()]

            accepted = _accept(documents, [row for row in rows if row['path'] not in batch_paths], report)
            accepted_ids = {parsed.document.id for parsed in accepted}

            for row in rows:
                if row['path'] in batch_paths and row['document_id'] not in accepted_ids:
                    db.execute("DELETE FROM tag WHERE id = ?", (row['id'],))
                    report.removed += 1

            existing = {row['document_id']: row for row in rows if row['document_id'] in accepted_ids}
            _release_names(db, accepted, existing)

            for parsed in accepted:
                if _apply_document(db, repository_id, parsed, existing.get(parsed.document.id)):
                    report.inserted += 1
                else:
                    report.updated += 1

            if meta is not None:
                upsert_repository_meta(db, repository_id, meta)
            mark_synced(db, repository_id, revision, now)
            record_sync_errors(db, repository_id, [*skipped, *report.skipped], revision)
    except sqlite3.Error as e:
        logger.error(f"Reconciliation of repository {repository_id} at {revision} failed: {e}")
        raise StorageError(f"Could not store sync of {revision}: {e}") from e

    return report


def _accept(
    documents: Sequence[ParsedDocument],
    kept_rows: Iterable[Dict],
    report: ReconcileReport,
) -> List[ParsedDocument]:
    """Documents that claim neither a kept tag's id or name, nor one claimed earlier in the batch."""
    ids: Set[str] = set()
    names: Set[str] = set()
    for row in kept_rows:
        ids.add(row['document_id'])
        names.add(row['name'])

    accepted = []
    for parsed in documents:
        doc = parsed.document
        error: Optional[TagIndexError] = None
        if doc.id in ids:
            error = MalformedTagDocument('id', f"Document id '{doc.id}' is used by another file")
        elif doc.tag in names:
            error = DuplicateTagName(doc.tag, doc.id)

        if error is not None:
            logger.warning(f"Skipping {parsed.path}: {error}")
            report.skipped.append((parsed.path, error))
            continue

        ids.add(doc.id)
        names.add(doc.tag)
        accepted.append(parsed)
    return accepted


def _release_names(db: Database, accepted: Sequence[ParsedDocument], existing: Dict[str, Dict]) -> None:
    """Park the names of tags about to be renamed, so renames within the batch cannot collide."""
    for parsed in accepted:
        row = existing.get(parsed.document.id)
        if row is not None and row['name'] != parsed.document.tag:
            # Placeholder until _apply_document sets the final name
            db.execute(
                "UPDATE tag SET name = '#' || id || '#' || hex(randomblob(8)) WHERE id = ?",
                (row['id'],)
            )


def _apply_document(
    db: Database,
    repository_id: int,
    parsed: ParsedDocument,
    row: Optional[Dict],
) -> bool:
    """Upsert one tag with its links. Returns True if the tag was inserted."""
    doc = parsed.document

    if row is not None:
        tag_id = row['id']
        db.execute(
            "UPDATE tag SET path = ?, name = ?, content = ? WHERE id = ?",
            (parsed.path, doc.tag, doc.content, tag_id)
        )
    else:
        db.execute(
            "INSERT INTO tag (repository_id, document_id, path, name, content) VALUES (?, ?, ?, ?, ?)",
            (repository_id, doc.id, parsed.path, doc.tag, doc.content)
        )
        tag_id = db.lastrowid

    history = parsed.history
    created_by = upsert_author(db, history.created.author)
    modified_by = upsert_author(db, history.modified.author)
    db.execute(
        """INSERT INTO tag_meta (tag_id, image, created, created_by, modified, modified_by)
           VALUES (?, ?, ?, ?, ?, ?)
           ON CONFLICT (tag_id) DO UPDATE SET
               image = excluded.image,
               modified = excluded.modified,
               modified_by = excluded.modified_by""",
        (
            tag_id,
            doc.image,
            format_timestamp(history.created.when),
            created_by,
            format_timestamp(history.modified.when),
            modified_by,
        )
    )

    _replace_set(db, "tag_alias", "alias", tag_id, set(doc.alias))
    _replace_set(db, "tag_category", "category_id", tag_id, set(upsert_categories(db, doc.category)))
    author_ids = {upsert_author(db, author) for author in history.contributors}
    _replace_set(db, "tag_author", "author_id", tag_id, author_ids)

    return row is None


def _replace_set(db: Database, table: str, column: str, tag_id: int, values: Set) -> None:
    """Make the rows of ``table`` for ``tag_id`` exactly ``values``."""
    db.execute(f"SELECT {column} FROM {table} WHERE tag_id = ?", (tag_id,))
    current = {row[column] for row in db.fetchall()}

    for value in values - current:
        db.execute(f"INSERT INTO {table} (tag_id, {column}) VALUES (?, ?)", (tag_id, value))
    for value in current - values:
        db.execute(f"DELETE FROM {table} WHERE tag_id = ? AND {column} = ?", (tag_id, value))

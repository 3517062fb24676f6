"""
Repository database operations for tagindex.

Provides CRUD operations for registered repositories, their descriptive
metadata and their sync bookkeeping, mapping between domain objects and
database records.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, Generator, List, Optional

from ..domain.repository import Repository, RepositoryData, RepositoryMeta
from ..utils import format_timestamp, parse_timestamp
from .connection import Database
from .references import upsert_categories


def add_repository(db: Database, identifier: str, url: str, directory: str) -> int:
    """
    Register a repository, or update url/directory of an existing one.

    Returns:
        Row ID of the repository
    """
    db.execute("SELECT id FROM repository WHERE identifier = ?", (identifier,))
    existing = db.fetchone()

    if existing:
        db.execute(
            "UPDATE repository SET url = ?, directory = ? WHERE id = ?",
            (url, directory, existing['id'])
        )
        return existing['id']

    db.execute(
        "INSERT INTO repository (url, identifier, directory) VALUES (?, ?, ?)",
        (url, identifier, directory)
    )
    return db.lastrowid or 0


def get_repository_by_id(db: Database, repository_id: int) -> Optional[Repository]:
    """Get repository by ID."""
    db.execute("SELECT * FROM repository WHERE id = ?", (repository_id,))
    row = db.fetchone()
    return record_to_domain(dict(row)) if row else None


def get_repository_by_identifier(db: Database, identifier: str) -> Optional[Repository]:
    """Get repository by its identifier string."""
    db.execute("SELECT * FROM repository WHERE identifier = ?", (identifier,))
    row = db.fetchone()
    return record_to_domain(dict(row)) if row else None


def get_all_repositories(db: Database) -> Generator[Repository, None, None]:
    """All repositories in registration order."""
    db.execute("SELECT * FROM repository ORDER BY id")
    for row in db.fetchall():
        yield record_to_domain(dict(row))


def delete_repository(db: Database, repository_id: int) -> bool:
    """Delete a repository. Tags, subscriptions and bookkeeping cascade."""
    db.execute("DELETE FROM repository WHERE id = ?", (repository_id,))
    return db.rowcount > 0


def get_tag_paths(db: Database, repository_id: int) -> Dict[str, str]:
    """Source path to document id of every persisted tag of a repository."""
    db.execute("SELECT path, document_id FROM tag WHERE repository_id = ?", (repository_id,))
    return {row['path']: row['document_id'] for row in db.fetchall()}


def get_repository_count(db: Database) -> int:
    db.execute("SELECT COUNT(*) FROM repository")
    row = db.fetchone()
    return row[0] if row else 0


# =============================================================================
# SYNC BOOKKEEPING
# =============================================================================

def get_repository_data(db: Database, repository_id: int) -> RepositoryData:
    """Sync bookkeeping; empty RepositoryData for a never-checked repository."""
    db.execute(
        "SELECT updated, checked, revision FROM repository_data WHERE repository_id = ?",
        (repository_id,)
    )
    row = db.fetchone()
    if not row:
        return RepositoryData()
    return RepositoryData(
        updated=parse_timestamp(row['updated']),
        checked=parse_timestamp(row['checked']),
        revision=row['revision'],
    )


def mark_checked(db: Database, repository_id: int, checked: datetime) -> None:
    """Record a sync attempt without touching the synced revision."""
    db.execute(
        """INSERT INTO repository_data (repository_id, checked) VALUES (?, ?)
           ON CONFLICT (repository_id) DO UPDATE SET checked = excluded.checked""",
        (repository_id, format_timestamp(checked))
    )


def mark_synced(db: Database, repository_id: int, revision: str, when: datetime) -> None:
    """Record a successful sync of ``revision``."""
    stamp = format_timestamp(when)
    db.execute(
        """INSERT INTO repository_data (repository_id, updated, checked, revision) VALUES (?, ?, ?, ?)
           ON CONFLICT (repository_id) DO UPDATE SET
               updated = excluded.updated,
               checked = excluded.checked,
               revision = excluded.revision""",
        (repository_id, stamp, stamp, revision)
    )


def get_due_repositories(db: Database, interval: timedelta, now: datetime) -> List[Repository]:
    """Repositories never checked or last checked at least ``interval`` ago."""
    cutoff = format_timestamp(now - interval)
    db.execute(
        """SELECT r.*
           FROM repository r
           LEFT JOIN repository_data d ON d.repository_id = r.id
           WHERE d.checked IS NULL OR d.checked <= ?
           ORDER BY d.checked IS NOT NULL, d.checked, r.id""",
        (cutoff,)
    )
    return [record_to_domain(dict(row)) for row in db.fetchall()]


# =============================================================================
# DESCRIPTIVE METADATA
# =============================================================================

def upsert_repository_meta(db: Database, repository_id: int, meta: RepositoryMeta) -> None:
    """Replace metadata and repository categories."""
    db.execute(
        """INSERT INTO repository_meta (repository_id, name, description, public_flag, language)
           VALUES (?, ?, ?, ?, ?)
           ON CONFLICT (repository_id) DO UPDATE SET
               name = excluded.name,
               description = excluded.description,
               public_flag = excluded.public_flag,
               language = excluded.language""",
        (repository_id, meta.name, meta.description, bool(meta.public_flag), meta.language)
    )

    category_ids = set(upsert_categories(db, meta.categories))
    db.execute("SELECT category_id FROM repository_category WHERE repository_id = ?", (repository_id,))
    current = {row['category_id'] for row in db.fetchall()}

    for category_id in category_ids - current:
        db.execute(
            "INSERT INTO repository_category (repository_id, category_id) VALUES (?, ?)",
            (repository_id, category_id)
        )
    for category_id in current - category_ids:
        db.execute(
            "DELETE FROM repository_category WHERE repository_id = ? AND category_id = ?",
            (repository_id, category_id)
        )


def get_repository_meta(db: Database, repository_id: int) -> RepositoryMeta:
    db.execute("SELECT * FROM repository_meta WHERE repository_id = ?", (repository_id,))
    row = db.fetchone()
    db.execute(
        """SELECT c.name FROM repository_category rc
           JOIN category c ON c.id = rc.category_id
           WHERE rc.repository_id = ?
           ORDER BY c.name COLLATE NOCASE""",
        (repository_id,)
    )
    categories = tuple(r['name'] for r in db.fetchall())
    if not row:
        return RepositoryMeta(categories=categories)
    return RepositoryMeta(
        name=row['name'],
        description=row['description'],
        public_flag=bool(row['public_flag']),
        language=row['language'],
        categories=categories,
    )


def get_public_repositories(
    db: Database,
    category: Optional[str] = None,
    language: Optional[str] = None,
) -> List[Repository]:
    """Publicly listable repositories, optionally filtered."""
    sql = """SELECT DISTINCT r.*
             FROM repository r
             JOIN repository_meta m ON m.repository_id = r.id
             LEFT JOIN repository_category rc ON rc.repository_id = r.id
             LEFT JOIN category c ON c.id = rc.category_id
             WHERE m.public"""
    params: List[Any] = []
    if category:
        sql += " AND c.name = ? COLLATE NOCASE"
        params.append(category)
    if language:
        sql += " AND m.language = ? COLLATE NOCASE"
        params.append(language)
    sql += " ORDER BY r.identifier"
    db.execute(sql, tuple(params))
    return [record_to_domain(dict(row)) for row in db.fetchall()]


def record_to_domain(record: Dict[str, Any]) -> Repository:
    """
    Convert a database record to a Repository domain object.

    Args:
        record: Database row as dictionary

    Returns:
        Repository domain object
    """
    return Repository(
        id=record['id'],
        url=record['url'],
        identifier=record['identifier'],
        directory=record['directory'],
    )

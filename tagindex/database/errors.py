"""
Sync error tracking for tagindex.

Records documents skipped during a sync, and syncs that failed outright,
so operators can see why a tag is missing. Each sync replaces the
previous entries of its repository.
"""

from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..errors import TagIndexError
from .connection import Database


def record_sync_errors(
    db: Database,
    repository_id: int,
    errors: Iterable[Tuple[Optional[str], TagIndexError]],
    revision: Optional[str] = None,
) -> int:
    """
    Replace the recorded errors of a repository.

    Args:
        db: Database connection
        repository_id: Repository that was synced
        errors: (path, error) pairs; path is None for repository level failures
        revision: Revision the sync was working on

    Returns:
        Number of errors recorded
    """
    db.execute("DELETE FROM sync_errors WHERE repository_id = ?", (repository_id,))

    rows = [
        (repository_id, path, error.error_type, str(error), revision)
        for path, error in errors
    ]
    if rows:
        db.executemany(
            """INSERT INTO sync_errors (repository_id, path, error_type, error_message, revision)
               VALUES (?, ?, ?, ?, ?)""",
            rows
        )
    return len(rows)


def get_sync_errors(
    db: Database,
    repository_id: Optional[int] = None,
    limit: Optional[int] = None,
) -> List[Dict[str, Any]]:
    """
    Get recorded sync errors, newest first.

    Args:
        db: Database connection
        repository_id: Only errors of this repository
        limit: Maximum number of errors to return

    Returns:
        List of error records as dictionaries, with the repository identifier
    """
    sql = """SELECT e.*, r.identifier
             FROM sync_errors e
             JOIN repository r ON r.id = e.repository_id"""
    params: tuple = ()
    if repository_id is not None:
        sql += " WHERE e.repository_id = ?"
        params = (repository_id,)
    sql += " ORDER BY e.recorded_at DESC, e.id"
    if limit:
        sql += f" LIMIT {int(limit)}"

    db.execute(sql, params)
    return [dict(row) for row in db.fetchall()]


def get_sync_error_count(db: Database) -> int:
    """Get total count of sync errors."""
    db.execute("SELECT COUNT(*) as count FROM sync_errors")
    row = db.fetchone()
    return row['count'] if row else 0


def clear_sync_errors(db: Database, repository_id: Optional[int] = None) -> int:
    """
    Clear sync errors, of one repository or all.

    Returns:
        Number of errors cleared
    """
    if repository_id is None:
        db.execute("DELETE FROM sync_errors")
    else:
        db.execute("DELETE FROM sync_errors WHERE repository_id = ?", (repository_id,))
    return db.rowcount

"""
Database connection management for tagindex.

Uses SQLite with WAL mode so ranking reads can run while a sync writes.
Connections run in autocommit mode; multi-statement writes go through
``transaction()``, which holds the write lock for the whole batch.
"""

import os
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Optional, Generator

from .schema import ensure_schema

# Seconds a writer waits for the lock before failing with "database is locked"
BUSY_TIMEOUT = 30.0


def get_db_path(config: Optional[dict] = None) -> Path:
    """
    Get the database file path.

    Checks in order:
    1. TAGINDEX_DB environment variable
    2. config['database']['path'] if provided
    3. Default: ~/.tagindex/index.db
    """
    if 'TAGINDEX_DB' in os.environ:
        return Path(os.environ['TAGINDEX_DB'])

    if config and 'database' in config and 'path' in config['database']:
        return Path(config['database']['path']).expanduser()

    return Path.home() / '.tagindex' / 'index.db'


def get_connection(
    db_path: Optional[Path] = None,
    config: Optional[dict] = None,
    read_only: bool = False
) -> sqlite3.Connection:
    """
    Get a database connection.

    Creates the database and applies schema if it doesn't exist.

    Args:
        db_path: Optional explicit path to database
        config: Optional configuration dictionary
        read_only: If True, open in read-only mode

    Returns:
        SQLite connection
    """
    if db_path is None:
        db_path = get_db_path(config)

    db_path.parent.mkdir(parents=True, exist_ok=True)

    if read_only:
        uri = f"file:{db_path}?mode=ro"
        conn = sqlite3.connect(uri, uri=True, timeout=BUSY_TIMEOUT, isolation_level=None)
    else:
        conn = sqlite3.connect(str(db_path), timeout=BUSY_TIMEOUT, isolation_level=None)

    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")

    if not read_only:
        conn.execute("PRAGMA journal_mode = WAL")
        conn.execute("PRAGMA synchronous = NORMAL")
        ensure_schema(conn)

    return conn


class Database:
    """
    Database context manager for tagindex.

    Usage:
        with Database(db_path=path) as db:
            db.execute("SELECT * FROM tag WHERE repository_id = ?", (1,))
            for row in db.fetchall():
                print(row['name'])

        # Read-only mode
        with Database(config=config, read_only=True) as db:
            ...
    """

    def __init__(
        self,
        db_path: Optional[Path] = None,
        config: Optional[dict] = None,
        read_only: bool = False
    ):
        self.db_path = db_path
        self.config = config
        self.read_only = read_only
        self._conn: Optional[sqlite3.Connection] = None
        self._cursor: Optional[sqlite3.Cursor] = None

    def __enter__(self) -> 'Database':
        self._conn = get_connection(
            db_path=self.db_path,
            config=self.config,
            read_only=self.read_only
        )
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._cursor:
            self._cursor.close()
        if self._conn:
            if self._conn.in_transaction:
                if exc_type is None and not self.read_only:
                    self._conn.commit()
                else:
                    self._conn.rollback()
            self._conn.close()

    @property
    def conn(self) -> sqlite3.Connection:
        """Get the underlying connection."""
        if self._conn is None:
            raise RuntimeError("Database not connected. Use 'with Database() as db:'")
        return self._conn

    def execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        """Execute SQL statement."""
        self._cursor = self.conn.execute(sql, params)
        return self._cursor

    def executemany(self, sql: str, params_seq) -> sqlite3.Cursor:
        """Execute SQL statement with multiple parameter sets."""
        self._cursor = self.conn.executemany(sql, params_seq)
        return self._cursor

    def fetchone(self) -> Optional[sqlite3.Row]:
        """Fetch one row from last query."""
        if self._cursor is None:
            return None
        return self._cursor.fetchone()

    def fetchall(self) -> list:
        """Fetch all rows from last query."""
        if self._cursor is None:
            return []
        return self._cursor.fetchall()

    def commit(self) -> None:
        """Commit current transaction."""
        self.conn.commit()

    def rollback(self) -> None:
        """Rollback current transaction."""
        self.conn.rollback()

    @property
    def lastrowid(self) -> Optional[int]:
        """Get last inserted row ID."""
        if self._cursor is None:
            return None
        return self._cursor.lastrowid

    @property
    def rowcount(self) -> int:
        """Get number of rows affected by last statement."""
        if self._cursor is None:
            return 0
        return self._cursor.rowcount


@contextmanager
def transaction(db: Database) -> Generator[None, None, None]:
    """
    Context manager for explicit transactions.

    Takes the write lock up front (BEGIN IMMEDIATE) so readers see either
    the state before or after the whole block.

    Usage:
        with Database() as db:
            with transaction(db):
                db.execute("INSERT ...")
                db.execute("UPDATE ...")
                # Commits on success, rolls back on exception
    """
    db.execute("BEGIN IMMEDIATE")
    try:
        yield
        db.commit()
    except BaseException:
        db.rollback()
        raise


def reset_database(config: Optional[dict] = None, db_path: Optional[Path] = None) -> None:
    """
    Delete and recreate the database.

    Use with caution - this destroys all data!
    """
    db_path = db_path or get_db_path(config)
    for suffix in ('', '-wal', '-shm'):
        candidate = Path(f"{db_path}{suffix}")
        if candidate.exists():
            candidate.unlink()

    with Database(db_path=db_path) as _db:
        pass  # Schema is applied on connection


def get_database_info(config: Optional[dict] = None, db_path: Optional[Path] = None) -> dict:
    """
    Get information about the database.

    Returns:
        Dictionary with database stats
    """
    db_path = db_path or get_db_path(config)

    if not db_path.exists():
        return {
            'exists': False,
            'path': str(db_path),
        }

    counts = {}
    with Database(db_path=db_path, read_only=True) as db:
        for table in ('repository', 'tag', 'tag_alias', 'category', 'author', 'guild_repository'):
            db.execute(f"SELECT COUNT(*) FROM {table}")
            row = db.fetchone()
            counts[table] = row[0] if row else 0

        db.execute("SELECT MAX(version) FROM _schema_info")
        row = db.fetchone()
        schema_version = row[0] if row else 0

    return {
        'exists': True,
        'path': str(db_path),
        'size_bytes': db_path.stat().st_size,
        'schema_version': schema_version,
        'repositories': counts['repository'],
        'tags': counts['tag'],
        'aliases': counts['tag_alias'],
        'categories': counts['category'],
        'authors': counts['author'],
        'subscriptions': counts['guild_repository'],
    }

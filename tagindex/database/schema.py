"""
Database schema for tagindex.

This module defines the SQLite schema and tracks its version.
The schema is designed to:
- Enforce per-repository uniqueness of document ids and tag names
- Cascade repository and tag deletion to every owned row
- Keep categories and authors as shared rows that outlive their links
- Expose primary names and aliases through one ranked view
"""

import logging
import sqlite3

logger = logging.getLogger(__name__)

# Current schema version - increment when schema changes
# v1: Initial schema
CURRENT_VERSION = 1

SCHEMA_V1 = """
-- Schema version tracking
CREATE TABLE IF NOT EXISTS _schema_info (
    version INTEGER PRIMARY KEY,
    applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    description TEXT
);

-- Registered tag sources
CREATE TABLE IF NOT EXISTS repository (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    url TEXT NOT NULL,
    identifier TEXT UNIQUE NOT NULL,  -- platform:user/repo[/path]
    directory TEXT NOT NULL           -- local working copy
);

CREATE TABLE IF NOT EXISTS repository_meta (
    repository_id INTEGER PRIMARY KEY,
    name TEXT,
    description TEXT,
    public_flag BOOLEAN NOT NULL DEFAULT 0,
    language TEXT,
    public BOOLEAN GENERATED ALWAYS AS (
        public_flag AND COALESCE(description, '') != '' AND COALESCE(language, '') != ''
    ) STORED,
    FOREIGN KEY (repository_id) REFERENCES repository(id) ON DELETE CASCADE
);

-- Sync bookkeeping
CREATE TABLE IF NOT EXISTS repository_data (
    repository_id INTEGER PRIMARY KEY,
    updated TIMESTAMP,   -- last successful sync
    checked TIMESTAMP,   -- last attempt, successful or not
    revision TEXT,       -- last synced revision
    FOREIGN KEY (repository_id) REFERENCES repository(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS tag (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    repository_id INTEGER NOT NULL,
    document_id TEXT NOT NULL,
    path TEXT NOT NULL,               -- source file at the synced revision
    name TEXT NOT NULL,
    content TEXT NOT NULL,
    UNIQUE (repository_id, document_id),
    UNIQUE (repository_id, name),
    FOREIGN KEY (repository_id) REFERENCES repository(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS tag_alias (
    tag_id INTEGER NOT NULL,
    alias TEXT NOT NULL,
    PRIMARY KEY (tag_id, alias),
    FOREIGN KEY (tag_id) REFERENCES tag(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS author (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    contact TEXT NOT NULL,
    UNIQUE (name, contact)
);

CREATE TABLE IF NOT EXISTS tag_meta (
    tag_id INTEGER PRIMARY KEY,
    image TEXT,
    created TIMESTAMP NOT NULL,
    created_by INTEGER NOT NULL,
    modified TIMESTAMP NOT NULL,
    modified_by INTEGER NOT NULL,
    FOREIGN KEY (tag_id) REFERENCES tag(id) ON DELETE CASCADE,
    FOREIGN KEY (created_by) REFERENCES author(id),
    FOREIGN KEY (modified_by) REFERENCES author(id)
);

CREATE TABLE IF NOT EXISTS category (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS tag_category (
    tag_id INTEGER NOT NULL,
    category_id INTEGER NOT NULL,
    PRIMARY KEY (tag_id, category_id),
    FOREIGN KEY (tag_id) REFERENCES tag(id) ON DELETE CASCADE,
    FOREIGN KEY (category_id) REFERENCES category(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS repository_category (
    repository_id INTEGER NOT NULL,
    category_id INTEGER NOT NULL,
    PRIMARY KEY (repository_id, category_id),
    FOREIGN KEY (repository_id) REFERENCES repository(id) ON DELETE CASCADE,
    FOREIGN KEY (category_id) REFERENCES category(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS tag_author (
    tag_id INTEGER NOT NULL,
    author_id INTEGER NOT NULL,
    PRIMARY KEY (tag_id, author_id),
    FOREIGN KEY (tag_id) REFERENCES tag(id) ON DELETE CASCADE,
    FOREIGN KEY (author_id) REFERENCES author(id) ON DELETE CASCADE
);

-- Guild subscriptions, higher priority wins name collisions
CREATE TABLE IF NOT EXISTS guild_repository (
    guild_id INTEGER NOT NULL,
    repository_id INTEGER NOT NULL,
    priority INTEGER NOT NULL DEFAULT 1,
    PRIMARY KEY (guild_id, repository_id),
    FOREIGN KEY (repository_id) REFERENCES repository(id) ON DELETE CASCADE
);

-- Per guild usage counters
CREATE TABLE IF NOT EXISTS tag_stat (
    guild_id INTEGER NOT NULL,
    tag_id INTEGER NOT NULL,
    views INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (guild_id, tag_id),
    FOREIGN KEY (tag_id) REFERENCES tag(id) ON DELETE CASCADE
);

-- Documents skipped or syncs failed, for operators
CREATE TABLE IF NOT EXISTS sync_errors (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    repository_id INTEGER NOT NULL,
    path TEXT,           -- NULL for repository level failures
    error_type TEXT NOT NULL,
    error_message TEXT,
    revision TEXT,
    recorded_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (repository_id) REFERENCES repository(id) ON DELETE CASCADE
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_category_name ON category(name COLLATE NOCASE);
CREATE INDEX IF NOT EXISTS idx_tag_name ON tag(name);
CREATE INDEX IF NOT EXISTS idx_tag_alias_alias ON tag_alias(alias);
CREATE INDEX IF NOT EXISTS idx_guild_repository_repo ON guild_repository(repository_id);
CREATE INDEX IF NOT EXISTS idx_sync_errors_repo ON sync_errors(repository_id);

-- Every lookup name of every tag. Primary names rank 1, aliases rank 2.
CREATE VIEW IF NOT EXISTS repo_tags AS
SELECT t.repository_id, t.id, t.name AS tag, 1 AS global_rank
FROM tag t
UNION ALL
SELECT t.repository_id, t.id, a.alias AS tag, 2 AS global_rank
FROM tag_alias a
JOIN tag t ON t.id = a.tag_id;
"""


def get_schema_version(conn: sqlite3.Connection) -> int:
    """Get current schema version from database."""
    try:
        cursor = conn.execute("SELECT MAX(version) FROM _schema_info")
        result = cursor.fetchone()
        return result[0] if result[0] is not None else 0
    except sqlite3.OperationalError:
        # Table doesn't exist yet
        return 0


def apply_schema(conn: sqlite3.Connection, version: int = CURRENT_VERSION) -> None:
    """
    Apply schema to database.

    Tags can be re-synced from their repositories, but subscriptions and
    usage counters cannot, so future versions must migrate rather than
    rebuild.
    """
    current = get_schema_version(conn)
    if current > version:
        raise RuntimeError(f"Database schema v{current} is newer than supported v{version}")

    logger.info(f"Applying schema v{version} (was v{current})")
    conn.executescript(SCHEMA_V1)
    conn.execute(
        "INSERT OR REPLACE INTO _schema_info (version, description) VALUES (?, ?)",
        (version, "Initial schema")
    )
    conn.commit()


def ensure_schema(conn: sqlite3.Connection) -> None:
    """Ensure database has current schema, migrating if necessary."""
    current = get_schema_version(conn)

    if current < CURRENT_VERSION:
        apply_schema(conn, CURRENT_VERSION)


"""
Shared reference entities: authors and categories.

Neither is owned by a tag. Rows are matched, inserted when absent and
never updated or deleted by a sync.
"""

from typing import Dict, Iterable, List

from ..domain.tag import Author
from .connection import Database


def upsert_author(db: Database, author: Author) -> int:
    """Id of the author matching exactly (name, contact), inserting if absent."""
    db.execute(
        "INSERT INTO author (name, contact) VALUES (?, ?) ON CONFLICT (name, contact) DO NOTHING",
        (author.name, author.contact)
    )
    db.execute(
        "SELECT id FROM author WHERE name = ? AND contact = ?",
        (author.name, author.contact)
    )
    return db.fetchone()['id']


def upsert_category(db: Database, name: str) -> int:
    """Id of the category matching ``name`` case-insensitively, inserting if absent."""
    db.execute("SELECT id FROM category WHERE name = ? COLLATE NOCASE", (name,))
    row = db.fetchone()
    if row:
        return row['id']
    db.execute("INSERT INTO category (name) VALUES (?)", (name,))
    return db.lastrowid or 0


def upsert_categories(db: Database, names: Iterable[str]) -> List[int]:
    return [upsert_category(db, name) for name in names]


def get_all_categories(db: Database) -> List[str]:
    db.execute("SELECT name FROM category ORDER BY name COLLATE NOCASE")
    return [row['name'] for row in db.fetchall()]


def get_authors_by_ids(db: Database, author_ids: Iterable[int]) -> Dict[int, Author]:
    ids = sorted(set(author_ids))
    if not ids:
        return {}
    placeholders = ', '.join('?' for _ in ids)
    db.execute(f"SELECT id, name, contact FROM author WHERE id IN ({placeholders})", tuple(ids))
    return {row['id']: Author(row['name'], row['contact']) for row in db.fetchall()}

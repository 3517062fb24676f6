"""
Guild-scoped tag resolution and ranking.

Every lookup name of a tag (its primary name and its aliases) comes from
the ``repo_tags`` view with a global rank: 1 for the primary name, 2 for
an alias. Within one guild, names are partitioned across the subscribed
repositories and ordered by

    subscription priority DESC, global rank ASC, repository id ASC

The first row of a partition is the effective rank 1 entry. It keeps the
bare name; every other entry is shown as ``name (identifier)``.
"""

from typing import List, Optional, Union

from ..domain.tag import Author, CompletedTag, RankedTag, Tag, TagMeta
from ..utils import parse_timestamp
from .connection import Database
from .references import get_authors_by_ids
from .repository import get_repository_by_id

COMPLETION_LIMIT = 25

# Lookup names visible to a guild with their effective rank
_RANKED_NAMES = """
    SELECT rt.id,
           rt.tag,
           rt.repository_id,
           r.identifier,
           gr.priority,
           rt.global_rank,
           row_number() OVER (
               PARTITION BY rt.tag
               ORDER BY gr.priority DESC, rt.global_rank ASC, rt.repository_id ASC
           ) AS rank
    FROM guild_repository gr
    JOIN repo_tags rt ON rt.repository_id = gr.repository_id
    JOIN repository r ON r.id = gr.repository_id
    WHERE gr.guild_id = ?
"""


def resolve_tag(db: Database, guild_id: int, name_or_id: Union[str, int]) -> Optional[Tag]:
    """
    Resolve user input to a tag.

    Integer input is a tag id and bypasses ranking; the tag must still
    belong to a repository the guild subscribes to. Anything else is an
    exact name match, answered with the effective rank 1 entry.
    """
    if isinstance(name_or_id, int):
        return get_tag_by_id(db, guild_id, name_or_id)

    value = name_or_id.strip()
    if value.lstrip('-').isdigit():
        return get_tag_by_id(db, guild_id, int(value))
    return get_tag_by_name(db, guild_id, value)


def get_tag_by_name(db: Database, guild_id: int, name: str) -> Optional[Tag]:
    db.execute(
        f"""WITH ranked AS ({_RANKED_NAMES} AND rt.tag = ?)
            SELECT id FROM ranked WHERE rank = 1""",
        (guild_id, name)
    )
    row = db.fetchone()
    return load_tag(db, row['id']) if row else None


def get_tag_by_id(db: Database, guild_id: int, tag_id: int) -> Optional[Tag]:
    db.execute(
        """SELECT t.id
           FROM tag t
           JOIN guild_repository gr ON gr.repository_id = t.repository_id
           WHERE t.id = ? AND gr.guild_id = ?""",
        (tag_id, guild_id)
    )
    row = db.fetchone()
    return load_tag(db, row['id']) if row else None


def complete(db: Database, guild_id: int, value: str, limit: int = COMPLETION_LIMIT) -> List[CompletedTag]:
    """
    Autocomplete suggestions.

    Case-insensitive substring match over primary names and aliases,
    capped at ``limit`` entries.
    """
    pattern = '%' + _escape_like(value.strip()) + '%'
    db.execute(
        f"""WITH ranked AS ({_RANKED_NAMES})
            SELECT id,
                   CASE WHEN rank = 1 THEN tag ELSE tag || ' (' || identifier || ')' END AS name
            FROM ranked
            WHERE tag LIKE ? ESCAPE '\\'
            ORDER BY lower(tag), tag, rank
            LIMIT ?""",
        (guild_id, pattern, min(limit, COMPLETION_LIMIT))
    )
    return [CompletedTag(id=row['id'], name=row['name']) for row in db.fetchall()]


def ranking_page(db: Database, guild_id: int, page: int = 0, size: int = 10) -> List[RankedTag]:
    """
    One page of the usage ranking of a guild, pages counted from 0.

    Tags with equal views share a rank. Names exported by several
    repositories are qualified below the highest priority one. Only
    primary names are compared here: a tag keeps its bare name even when
    resolve_tag would answer that name with another repository's alias.
    """
    page = max(page, 0)
    size = max(size, 1)
    db.execute(
        """WITH ranked AS (
               SELECT t.id,
                      t.name,
                      r.identifier,
                      gr.priority,
                      COALESCE(s.views, 0) AS views,
                      row_number() OVER (
                          PARTITION BY t.name ORDER BY gr.priority DESC, t.repository_id ASC
                      ) AS duplicate,
                      dense_rank() OVER (ORDER BY COALESCE(s.views, 0) DESC) AS rank
               FROM guild_repository gr
               JOIN tag t ON t.repository_id = gr.repository_id
               JOIN repository r ON r.id = gr.repository_id
               LEFT JOIN tag_stat s ON s.tag_id = t.id AND s.guild_id = gr.guild_id
               WHERE gr.guild_id = ?
           )
           SELECT rank,
                  CASE WHEN duplicate = 1 THEN name ELSE name || ' (' || identifier || ')' END AS name,
                  views
           FROM ranked
           ORDER BY views DESC, priority DESC, name, id
           LIMIT ? OFFSET ?""",
        (guild_id, size, size * page)
    )
    return [RankedTag(rank=row['rank'], name=row['name'], views=row['views']) for row in db.fetchall()]


def random_tag(db: Database, guild_id: int) -> Optional[Tag]:
    """A uniformly random tag among those visible to the guild."""
    db.execute(
        """SELECT t.id
           FROM guild_repository gr
           JOIN tag t ON t.repository_id = gr.repository_id
           WHERE gr.guild_id = ?
           ORDER BY random()
           LIMIT 1""",
        (guild_id,)
    )
    row = db.fetchone()
    return load_tag(db, row['id']) if row else None


def used(db: Database, guild_id: int, tag_id: int) -> None:
    """Count one use of a tag. A single upsert, so concurrent calls never lose an increment."""
    db.execute(
        """INSERT INTO tag_stat (guild_id, tag_id, views) VALUES (?, ?, 1)
           ON CONFLICT (guild_id, tag_id) DO UPDATE SET views = views + 1""",
        (guild_id, tag_id)
    )


def get_views(db: Database, guild_id: int, tag_id: int) -> int:
    db.execute(
        "SELECT views FROM tag_stat WHERE guild_id = ? AND tag_id = ?",
        (guild_id, tag_id)
    )
    row = db.fetchone()
    return row['views'] if row else 0


def count(db: Database, guild_id: int) -> int:
    """Number of tags in the repositories a guild subscribes to."""
    db.execute(
        """SELECT COUNT(t.id) AS count
           FROM guild_repository gr
           JOIN tag t ON t.repository_id = gr.repository_id
           WHERE gr.guild_id = ?""",
        (guild_id,)
    )
    row = db.fetchone()
    return row['count'] if row else 0


def load_tag(db: Database, tag_id: int) -> Optional[Tag]:
    """Read a tag with aliases, categories, contributors and meta."""
    db.execute("SELECT * FROM tag WHERE id = ?", (tag_id,))
    row = db.fetchone()
    if not row:
        return None
    record = dict(row)

    repository = get_repository_by_id(db, record['repository_id'])

    db.execute("SELECT alias FROM tag_alias WHERE tag_id = ? ORDER BY alias", (tag_id,))
    aliases = tuple(r['alias'] for r in db.fetchall())

    db.execute(
        """SELECT c.name FROM tag_category tc
           JOIN category c ON c.id = tc.category_id
           WHERE tc.tag_id = ?
           ORDER BY c.name COLLATE NOCASE""",
        (tag_id,)
    )
    categories = tuple(r['name'] for r in db.fetchall())

    db.execute(
        """SELECT a.name, a.contact FROM tag_author ta
           JOIN author a ON a.id = ta.author_id
           WHERE ta.tag_id = ?
           ORDER BY a.name, a.contact""",
        (tag_id,)
    )
    authors = tuple(Author(r['name'], r['contact']) for r in db.fetchall())

    return Tag(
        id=record['id'],
        repository=repository,
        document_id=record['document_id'],
        name=record['name'],
        content=record['content'],
        aliases=aliases,
        categories=categories,
        authors=authors,
        meta=_load_meta(db, tag_id),
        path=record['path'],
    )


def _load_meta(db: Database, tag_id: int) -> Optional[TagMeta]:
    db.execute("SELECT * FROM tag_meta WHERE tag_id = ?", (tag_id,))
    row = db.fetchone()
    if not row:
        return None
    record = dict(row)
    people = get_authors_by_ids(db, (record['created_by'], record['modified_by']))
    return TagMeta(
        image=record['image'],
        created=parse_timestamp(record['created']),
        created_by=people[record['created_by']],
        modified=parse_timestamp(record['modified']),
        modified_by=people[record['modified_by']],
    )


def _escape_like(value: str) -> str:
    return value.replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_')

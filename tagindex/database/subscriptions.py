"""
Guild subscription operations for tagindex.

A subscription links a guild to a repository with a priority. Higher
priority wins when several subscribed repositories export the same name.
"""

from typing import List, Optional

from ..domain.repository import SubscribedRepository, Subscription
from .connection import Database
from .repository import get_repository_meta, record_to_domain


def subscribe(db: Database, guild_id: int, repository_id: int, priority: int = 1) -> Subscription:
    """Subscribe a guild to a repository, or change the priority of an existing subscription."""
    db.execute(
        """INSERT INTO guild_repository (guild_id, repository_id, priority) VALUES (?, ?, ?)
           ON CONFLICT (guild_id, repository_id) DO UPDATE SET priority = excluded.priority""",
        (guild_id, repository_id, priority)
    )
    return Subscription(guild_id=guild_id, repository_id=repository_id, priority=priority)


def unsubscribe(db: Database, guild_id: int, repository_id: int) -> bool:
    """Remove a subscription. Usage counters of the repository's tags are kept."""
    db.execute(
        "DELETE FROM guild_repository WHERE guild_id = ? AND repository_id = ?",
        (guild_id, repository_id)
    )
    return db.rowcount > 0


def get_subscription(db: Database, guild_id: int, repository_id: int) -> Optional[Subscription]:
    db.execute(
        "SELECT priority FROM guild_repository WHERE guild_id = ? AND repository_id = ?",
        (guild_id, repository_id)
    )
    row = db.fetchone()
    if not row:
        return None
    return Subscription(guild_id=guild_id, repository_id=repository_id, priority=row['priority'])


def get_subscriptions(db: Database, guild_id: int) -> List[SubscribedRepository]:
    """Repositories a guild subscribes to, highest priority first."""
    db.execute(
        """SELECT r.*, gr.priority
           FROM guild_repository gr
           JOIN repository r ON r.id = gr.repository_id
           WHERE gr.guild_id = ?
           ORDER BY gr.priority DESC, r.id""",
        (guild_id,)
    )
    rows = [dict(row) for row in db.fetchall()]
    return [
        SubscribedRepository(
            repository=record_to_domain(row),
            priority=row['priority'],
            meta=get_repository_meta(db, row['id']),
        )
        for row in rows
    ]


def get_subscribers(db: Database, repository_id: int) -> List[int]:
    """Guild ids subscribed to a repository."""
    db.execute(
        "SELECT guild_id FROM guild_repository WHERE repository_id = ? ORDER BY guild_id",
        (repository_id,)
    )
    return [row['guild_id'] for row in db.fetchall()]

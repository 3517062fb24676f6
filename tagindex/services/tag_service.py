"""
Tag service for tagindex.

The query surface one guild sees: resolving, completing, ranking and
counting tags across the repositories it subscribes to. Each call opens
its own connection, so one service instance can be shared between threads.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..database import Database, get_db_path
from ..database import ranking
from ..domain.tag import CompletedTag, RankedTag, Tag


class TagService:
    """
    Guild-scoped tag queries.

    Example:
        tags = TagService(guild_id=1234, config=config)
        tag = tags.resolve_tag("hello")
        if tag:
            tags.used(tag)
            print(tag.pages()[0])
    """

    def __init__(
        self,
        guild_id: int,
        config: Optional[Dict[str, Any]] = None,
        db_path: Optional[Path] = None,
    ):
        self.guild_id = guild_id
        self.db_path = db_path or get_db_path(config)

    def resolve_tag(self, name_or_id: Union[str, int]) -> Optional[Tag]:
        """Tag by id, or by name using the guild's repository priorities."""
        with Database(db_path=self.db_path) as db:
            return ranking.resolve_tag(db, self.guild_id, name_or_id)

    def complete(self, value: str) -> List[CompletedTag]:
        with Database(db_path=self.db_path) as db:
            return ranking.complete(db, self.guild_id, value)

    def ranking_page(self, page: int = 0, size: int = 10) -> List[RankedTag]:
        with Database(db_path=self.db_path) as db:
            return ranking.ranking_page(db, self.guild_id, page, size)

    def random(self) -> Optional[Tag]:
        with Database(db_path=self.db_path) as db:
            return ranking.random_tag(db, self.guild_id)

    def used(self, tag: Union[Tag, int]) -> None:
        """Count one use of a tag in this guild."""
        tag_id = tag.id if isinstance(tag, Tag) else tag
        with Database(db_path=self.db_path) as db:
            ranking.used(db, self.guild_id, tag_id)

    def views(self, tag: Union[Tag, int]) -> int:
        tag_id = tag.id if isinstance(tag, Tag) else tag
        with Database(db_path=self.db_path) as db:
            return ranking.get_views(db, self.guild_id, tag_id)

    def count(self) -> int:
        with Database(db_path=self.db_path) as db:
            return ranking.count(db, self.guild_id)

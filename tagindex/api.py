"""
High-level Python API for tagindex.

Example:
    import tagindex

    ti = tagindex.TagIndex()

    # Register and sync a repository
    repo = ti.add("github:octo/tags")
    report = ti.sync(repo.identifier, force=True)

    # Subscribe a guild and look tags up
    ti.subscribe(1234, repo.identifier, priority=2)
    guild = ti.guild(1234)
    tag = guild.resolve_tag("hello")
    guild.used(tag)

    # Low-level access to services
    ti.repository_service
    ti.sync_service
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .config import load_config
from .database import get_db_path
from .domain.repository import Repository, Subscription
from .services import (
    RepositoryService,
    SyncReport,
    SyncRequest,
    SyncScheduler,
    SyncService,
    TagService,
)

logger = logging.getLogger(__name__)


class TagIndex:
    """
    High-level API for tagindex.

    Wires the services to one configuration and one database.
    """

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        db_path: Optional[Union[str, Path]] = None,
    ):
        """
        Initialize TagIndex.

        Args:
            config: Configuration dict (loads from file if None)
            db_path: Database file, overrides the configuration
        """
        self.config = config if config is not None else load_config()
        self.db_path = Path(db_path) if db_path else get_db_path(self.config)
        self.repository_service = RepositoryService(self.config, db_path=self.db_path)
        self.sync_service = SyncService(self.config, db_path=self.db_path)

    def add(self, identifier: str, url: Optional[str] = None) -> Repository:
        return self.repository_service.add(identifier, url=url)

    def remove(self, identifier: Union[str, int]) -> Repository:
        return self.repository_service.remove(identifier)

    def repositories(self) -> List[Repository]:
        return self.repository_service.list()

    def sync(self, identifier: Union[str, int], force: bool = False) -> SyncReport:
        """Sync one repository on the calling thread."""
        return self.sync_service.sync(self.repository_service.get(identifier), force=force)

    def request_sync(self, identifier: Union[str, int], force: bool = False) -> SyncRequest:
        """Queue a sync on the worker pool."""
        return self.sync_service.request_sync(self.repository_service.get(identifier), force=force)

    def subscribe(self, guild_id: int, identifier: Union[str, int], priority: int = 1) -> Subscription:
        return self.repository_service.subscribe(guild_id, identifier, priority)

    def unsubscribe(self, guild_id: int, identifier: Union[str, int]) -> bool:
        return self.repository_service.unsubscribe(guild_id, identifier)

    def guild(self, guild_id: int) -> TagService:
        """Query surface of one guild."""
        return TagService(guild_id, db_path=self.db_path)

    def scheduler(self, tick_seconds: float = 60.0) -> SyncScheduler:
        return SyncScheduler(self.sync_service, tick_seconds=tick_seconds)

    def close(self) -> None:
        self.sync_service.shutdown(wait=True)

    def __enter__(self) -> 'TagIndex':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

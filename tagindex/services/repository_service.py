"""
Repository service for tagindex.

Registers tag repositories, manages guild subscriptions and lists
repositories for operators and for public discovery.
"""

import logging
import shutil
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from ..config import get_repository_locations, get_working_directory
from ..database import (
    Database,
    add_repository,
    clear_sync_errors,
    delete_repository,
    get_all_repositories,
    get_db_path,
    get_public_repositories,
    get_repository_by_id,
    get_repository_by_identifier,
    get_repository_data,
    get_repository_meta,
    get_subscriptions,
    get_sync_errors,
    subscribe,
    unsubscribe,
)
from ..domain.identifier import Identifier
from ..domain.repository import (
    Repository,
    RepositoryData,
    RepositoryMeta,
    SubscribedRepository,
    Subscription,
)
from ..errors import InvalidIdentifier, UnknownRepository

logger = logging.getLogger(__name__)


class RepositoryService:
    """
    Service for registering repositories and managing subscriptions.

    Example:
        service = RepositoryService(config)
        repo = service.add("github:octo/tags")
        service.subscribe(1234, repo.identifier, priority=2)
    """

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        db_path: Optional[Path] = None,
    ):
        """
        Initialize RepositoryService.

        Args:
            config: Configuration dict
            db_path: Database file (resolved from config if None)
        """
        self.config = config or {}
        self.db_path = db_path or get_db_path(self.config)
        self.locations = get_repository_locations(self.config)
        self.working_directory = get_working_directory(self.config)

    def parse_identifier(self, value: str) -> Identifier:
        identifier = Identifier.parse(value)
        if identifier is None:
            raise InvalidIdentifier(
                f"Invalid identifier '{value}', expected platform:user/repo[/path]"
            )
        return identifier

    def resolve_url(self, identifier: Identifier) -> str:
        """
        Clone URL of an identifier from the configured platform templates.

        Raises:
            InvalidIdentifier: no template for the platform
        """
        template = self.locations.get(identifier.platform)
        if template is None:
            known = ', '.join(sorted(self.locations)) or 'none'
            raise InvalidIdentifier(
                f"Unknown platform '{identifier.platform}' (configured: {known})"
            )
        return template.format(user=identifier.user, repo=identifier.repo)

    def add(self, value: str, url: Optional[str] = None) -> Repository:
        """
        Register a repository.

        Re-adding an identifier updates its URL and keeps its tags.

        Args:
            value: Identifier string
            url: Explicit clone URL, overrides the platform template
        """
        identifier = self.parse_identifier(value)
        url = url or self.resolve_url(identifier)
        directory = self.working_directory / identifier.directory_name()

        with Database(db_path=self.db_path) as db:
            repository_id = add_repository(db, str(identifier), url, str(directory))
            repository = get_repository_by_id(db, repository_id)
        logger.info(f"Registered {identifier} from {url}")
        return repository

    def get(self, value: Union[str, int]) -> Repository:
        """
        Repository by id or identifier.

        Raises:
            UnknownRepository: nothing is registered under ``value``
        """
        with Database(db_path=self.db_path) as db:
            if isinstance(value, int) or str(value).isdigit():
                repository = get_repository_by_id(db, int(value))
            else:
                identifier = Identifier.parse(value)
                key = str(identifier) if identifier else value
                repository = get_repository_by_identifier(db, key)
        if repository is None:
            raise UnknownRepository(str(value))
        return repository

    def remove(self, value: Union[str, int], keep_files: bool = False) -> Repository:
        """Unregister a repository, dropping its tags and its working copy."""
        repository = self.get(value)
        with Database(db_path=self.db_path) as db:
            delete_repository(db, repository.id)
        if not keep_files and Path(repository.directory).exists():
            shutil.rmtree(repository.directory, ignore_errors=True)
        logger.info(f"Removed {repository.identifier}")
        return repository

    def list(self) -> List[Repository]:
        with Database(db_path=self.db_path) as db:
            return list(get_all_repositories(db))

    def status(self, repository: Repository) -> Tuple[RepositoryData, RepositoryMeta]:
        """Sync bookkeeping and descriptive metadata of a repository."""
        with Database(db_path=self.db_path) as db:
            return get_repository_data(db, repository.id), get_repository_meta(db, repository.id)

    def public_repositories(
        self,
        category: Optional[str] = None,
        language: Optional[str] = None,
    ) -> List[Repository]:
        with Database(db_path=self.db_path) as db:
            return get_public_repositories(db, category=category, language=language)

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, guild_id: int, value: Union[str, int], priority: int = 1) -> Subscription:
        repository = self.get(value)
        with Database(db_path=self.db_path) as db:
            subscription = subscribe(db, guild_id, repository.id, priority)
        logger.info(f"Guild {guild_id} subscribed to {repository.identifier} with priority {priority}")
        return subscription

    def unsubscribe(self, guild_id: int, value: Union[str, int]) -> bool:
        repository = self.get(value)
        with Database(db_path=self.db_path) as db:
            return unsubscribe(db, guild_id, repository.id)

    def subscriptions(self, guild_id: int) -> List[SubscribedRepository]:
        with Database(db_path=self.db_path) as db:
            return get_subscriptions(db, guild_id)

    # ------------------------------------------------------------------
    # Sync errors
    # ------------------------------------------------------------------

    def errors(self, value: Union[str, int, None] = None, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        repository_id = self.get(value).id if value is not None else None
        with Database(db_path=self.db_path) as db:
            return get_sync_errors(db, repository_id=repository_id, limit=limit)

    def clear_errors(self, value: Union[str, int, None] = None) -> int:
        repository_id = self.get(value).id if value is not None else None
        with Database(db_path=self.db_path) as db:
            return clear_sync_errors(db, repository_id)

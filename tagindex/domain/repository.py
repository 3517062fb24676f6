"""
Repository domain objects for tagindex.

A Repository is a subscribed tag source. Guild subscriptions are kept
as a separate value that references the repository by id, so ranking
works on explicit (Repository, priority) pairs.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Dict, Any, Tuple

from .identifier import Identifier


@dataclass(frozen=True)
class Repository:
    """A registered tag source."""
    id: int
    url: str
    identifier: str
    directory: str

    @property
    def parsed_identifier(self) -> Optional[Identifier]:
        return Identifier.parse(self.identifier)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'url': self.url,
            'identifier': self.identifier,
            'directory': self.directory,
        }


@dataclass(frozen=True)
class RepositoryMeta:
    """
    Descriptive metadata of a repository.

    ``public`` is derived: a repository is listed publicly only when the
    owner flagged it public and filled in both description and language.
    """
    name: Optional[str] = None
    description: Optional[str] = None
    public_flag: bool = False
    language: Optional[str] = None
    categories: Tuple[str, ...] = ()

    @property
    def public(self) -> bool:
        return bool(self.public_flag and self.description and self.language)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'description': self.description,
            'public_flag': self.public_flag,
            'language': self.language,
            'public': self.public,
            'categories': list(self.categories),
        }


@dataclass(frozen=True)
class RepositoryData:
    """Sync bookkeeping: last success, last attempt, last synced revision."""
    updated: Optional[datetime] = None
    checked: Optional[datetime] = None
    revision: Optional[str] = None


@dataclass(frozen=True)
class Subscription:
    """A guild's subscription to a repository. Higher priority wins ties."""
    guild_id: int
    repository_id: int
    priority: int = 1


@dataclass(frozen=True)
class RepositoryDescriptor:
    """Contents of the optional ``tagindex.yaml`` at the repository root."""
    name: Optional[str] = None
    description: Optional[str] = None
    categories: Tuple[str, ...] = ()
    public: bool = False
    language: Optional[str] = None
    directory: str = "tags"

    def to_meta(self) -> RepositoryMeta:
        return RepositoryMeta(
            name=self.name,
            description=self.description,
            public_flag=self.public,
            language=self.language,
            categories=self.categories,
        )


@dataclass
class SubscribedRepository:
    """Repository joined with the priority a specific guild gave it."""
    repository: Repository
    priority: int
    meta: RepositoryMeta = field(default_factory=RepositoryMeta)

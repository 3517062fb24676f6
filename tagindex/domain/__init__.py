"""
Domain layer for tagindex.

Contains pure domain objects with no I/O or side effects:
- Identifier: platform:user/repo[/path] naming of a tag source
- Repository, RepositoryMeta, RepositoryData, Subscription
- TagDocument: a parsed tag file, not yet persisted
- Tag, TagMeta, Author: persisted tag state

These objects are immutable and provide serialization helpers
for JSON output.
"""

from .identifier import Identifier
from .repository import (
    Repository,
    RepositoryMeta,
    RepositoryData,
    RepositoryDescriptor,
    Subscription,
    SubscribedRepository,
)
from .tag import (
    Author,
    Authorship,
    TagDocument,
    TagMeta,
    Tag,
    RankedTag,
    CompletedTag,
)

__all__ = [
    'Identifier',
    'Repository',
    'RepositoryMeta',
    'RepositoryData',
    'RepositoryDescriptor',
    'Subscription',
    'SubscribedRepository',
    'Author',
    'Authorship',
    'TagDocument',
    'TagMeta',
    'Tag',
    'RankedTag',
    'CompletedTag',
]

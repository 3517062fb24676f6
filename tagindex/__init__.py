"""
tagindex - A tag catalog synchronized from git repositories.

Tags are short reusable pieces of content kept as front-matter documents
in git repositories. tagindex clones and fetches those repositories,
reconciles their documents into SQLite and answers guild-scoped lookups
where guild subscription priorities decide name collisions.

Quick Start:
    import tagindex

    ti = tagindex.TagIndex()
    repo = ti.add("github:octo/tags")
    ti.sync(repo.identifier, force=True)

    ti.subscribe(1234, repo.identifier)
    tag = ti.guild(1234).resolve_tag("hello")
    print(tag.pages())

Domain Objects:
    Identifier - platform:user/repo[/path]
    Repository - Registered tag source
    Tag - Persisted tag with aliases, categories, authors and meta

Services:
    SyncService - Fetch, diff, parse and reconcile one repository
    SyncScheduler - Periodic dispatch of due repositories
    TagService - Guild-scoped resolution, completion and ranking
    RepositoryService - Registration and subscriptions
"""

__version__ = "0.3.0"

# High-level API
from .api import TagIndex

# Domain objects
from .domain import (
    Identifier,
    Repository,
    RepositoryMeta,
    Subscription,
    TagDocument,
    Tag,
    Author,
    RankedTag,
    CompletedTag,
)

# Services (for advanced use)
from .services import (
    SyncService,
    SyncScheduler,
    SyncRequest,
    SyncReport,
    SyncState,
    TagService,
    RepositoryService,
)

# Document format
from .document import parse_document, split_content

# Configuration
from .config import load_config, save_config

__all__ = [
    # Version
    "__version__",
    # High-level API
    "TagIndex",
    # Domain objects
    "Identifier",
    "Repository",
    "RepositoryMeta",
    "Subscription",
    "TagDocument",
    "Tag",
    "Author",
    "RankedTag",
    "CompletedTag",
    # Services
    "SyncService",
    "SyncScheduler",
    "SyncRequest",
    "SyncReport",
    "SyncState",
    "TagService",
    "RepositoryService",
    # Document format
    "parse_document",
    "split_content",
    # Configuration
    "load_config",
    "save_config",
]

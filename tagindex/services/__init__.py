"""
Service layer for tagindex.

Contains business logic that orchestrates domain objects and infrastructure:
- SyncService: Bringing a repository's tags up to date with its remote
- SyncScheduler: Periodic dispatch of due repositories
- TagService: Guild-scoped tag queries
- RepositoryService: Registration and subscriptions

Services are the primary API for commands to use.
"""

from .sync_service import SyncService, SyncState, SyncRequest, SyncReport
from .scheduler import SyncScheduler
from .tag_service import TagService
from .repository_service import RepositoryService

__all__ = [
    'SyncService',
    'SyncState',
    'SyncRequest',
    'SyncReport',
    'SyncScheduler',
    'TagService',
    'RepositoryService',
]

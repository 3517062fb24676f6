"""
Database module for tagindex.

Provides SQLite-based persistence for the tag catalog.

Key components:
- connection: Database connection management and transactions
- schema: Table definitions and schema versioning
- repository: Repository CRUD, sync bookkeeping and metadata
- subscriptions: Guild subscriptions with priorities
- reconcile: Applying a sync batch atomically
- ranking: Guild-scoped resolution, completion and usage ranking
- errors: Sync error log for operators
"""

from .connection import (
    get_connection,
    get_db_path,
    Database,
    get_database_info,
    reset_database,
    transaction,
)
from .schema import CURRENT_VERSION, ensure_schema
from .references import (
    upsert_author,
    upsert_category,
    upsert_categories,
    get_all_categories,
)
from .repository import (
    add_repository,
    get_repository_by_id,
    get_repository_by_identifier,
    get_all_repositories,
    delete_repository,
    get_tag_paths,
    get_repository_count,
    get_repository_data,
    mark_checked,
    mark_synced,
    get_due_repositories,
    upsert_repository_meta,
    get_repository_meta,
    get_public_repositories,
    record_to_domain,
)
from .subscriptions import (
    subscribe,
    unsubscribe,
    get_subscription,
    get_subscriptions,
    get_subscribers,
)
from .reconcile import ParsedDocument, ReconcileReport, reconcile
from .ranking import (
    resolve_tag,
    get_tag_by_name,
    get_tag_by_id,
    complete,
    ranking_page,
    random_tag,
    used,
    get_views,
    count,
    load_tag,
)
from .errors import (
    record_sync_errors,
    get_sync_errors,
    get_sync_error_count,
    clear_sync_errors,
)

__all__ = [
    # Connection
    'get_connection',
    'get_db_path',
    'Database',
    'get_database_info',
    'reset_database',
    'transaction',
    # Schema
    'ensure_schema',
    'CURRENT_VERSION',
    # Reference entities
    'upsert_author',
    'upsert_category',
    'upsert_categories',
    'get_all_categories',
    # Repository
    'add_repository',
    'get_repository_by_id',
    'get_repository_by_identifier',
    'get_all_repositories',
    'delete_repository',
    'get_tag_paths',
    'get_repository_count',
    'get_repository_data',
    'mark_checked',
    'mark_synced',
    'get_due_repositories',
    'upsert_repository_meta',
    'get_repository_meta',
    'get_public_repositories',
    'record_to_domain',
    # Subscriptions
    'subscribe',
    'unsubscribe',
    'get_subscription',
    'get_subscriptions',
    'get_subscribers',
    # Reconciliation
    'ParsedDocument',
    'ReconcileReport',
    'reconcile',
    # Ranking
    'resolve_tag',
    'get_tag_by_name',
    'get_tag_by_id',
    'complete',
    'ranking_page',
    'random_tag',
    'used',
    'get_views',
    'count',
    'load_tag',
    # Sync errors
    'record_sync_errors',
    'get_sync_errors',
    'get_sync_error_count',
    'clear_sync_errors',
]

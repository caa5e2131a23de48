"""
Database module for repocache.

Provides SQLite-based persistence and querying for cached GitHub
repositories. The database is the truth-of-record for every read.

Key components:
- connection: Database connection management
- schema: Table definitions and schema versioning
- repository: Repository upsert/select operations
- refresh: Per-query-key refresh bookkeeping
- favorites: User favorites keyed by stable repository ids
- store: CacheStore, the façade used by the cache service
"""

from .connection import (
    get_connection,
    get_db_path,
    Database,
    transaction,
)
from .schema import CURRENT_VERSION, ensure_schema
from .repository import (
    upsert_repositories,
    upsert_topics,
    select_repositories,
    count_repositories,
    get_repository,
    get_repositories,
    get_repository_by_name,
    get_distinct_languages,
    get_repo_count,
    get_topic_count,
    set_languages,
    prune_query,
    record_to_domain,
)
from .refresh import (
    record_refresh,
    get_refresh_meta,
    get_all_refresh_meta,
    get_latest_refresh,
)
from .favorites import (
    add_favorite,
    remove_favorite,
    get_user_favorites,
    get_favorite_count,
)
from .store import CacheStore, to_iso, from_iso

__all__ = [
    # Connection
    'get_connection',
    'get_db_path',
    'Database',
    'transaction',
    # Schema
    'ensure_schema',
    'CURRENT_VERSION',
    # Repository
    'upsert_repositories',
    'upsert_topics',
    'select_repositories',
    'count_repositories',
    'get_repository',
    'get_repositories',
    'get_repository_by_name',
    'get_distinct_languages',
    'get_repo_count',
    'get_topic_count',
    'set_languages',
    'prune_query',
    'record_to_domain',
    # Refresh bookkeeping
    'record_refresh',
    'get_refresh_meta',
    'get_all_refresh_meta',
    'get_latest_refresh',
    # Favorites
    'add_favorite',
    'remove_favorite',
    'get_user_favorites',
    'get_favorite_count',
    # Store
    'CacheStore',
    'to_iso',
    'from_iso',
]

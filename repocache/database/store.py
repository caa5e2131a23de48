"""
CacheStore: the only reader and writer of persisted repository data.

Wraps the database functions with connection handling, turns SQLite
failures into PersistenceError and makes each batch upsert one commit
unit together with its refresh bookkeeping.
"""

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, List, Dict, Any, Iterable, Tuple, Generator

from ..domain import RepositoryRecord, RepoFilters, PagedResult, MAX_PER_PAGE
from ..errors import PersistenceError
from .connection import Database, get_db_path, transaction
from .repository import (
    upsert_repositories,
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
)
from .refresh import record_refresh, get_refresh_meta, get_all_refresh_meta, get_latest_refresh
from .favorites import add_favorite, remove_favorite, get_user_favorites, get_favorite_count

logger = logging.getLogger(__name__)


def to_iso(value: datetime) -> str:
    """Fixed-width UTC ISO timestamp, so stored values sort as strings."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec='microseconds')


def from_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class CacheStore:
    """
    SQLite-backed repository cache.

    Example:
        store = CacheStore(db_path=Path("cache.db"))
        store.upsert_batch("ml", records, fetched_at=now)
        page = store.query(RepoFilters(sort="stars", per_page=10))
    """

    def __init__(
        self,
        db_path: Optional[Path] = None,
        config: Optional[Dict[str, Any]] = None,
        max_per_page: int = MAX_PER_PAGE,
    ):
        self.db_path = Path(db_path) if db_path else get_db_path(config)
        self.max_per_page = max_per_page

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'CacheStore':
        return cls(
            config=config,
            max_per_page=int(config.get('cache', {}).get('max_per_page', MAX_PER_PAGE)),
        )

    @contextmanager
    def _session(self) -> Generator[Database, None, None]:
        try:
            with Database(db_path=self.db_path) as db:
                yield db
        except (sqlite3.Error, OSError) as e:
            raise PersistenceError(f"Cache store error: {e}", {'db_path': str(self.db_path)}) from e

    def upsert_batch(
        self,
        query_key: str,
        records: Iterable[RepositoryRecord],
        fetched_at: datetime,
        page: Optional[int] = None,
        per_page: Optional[int] = None,
        total_count: Optional[int] = None,
        advance_refresh: bool = True,
    ) -> List[int]:
        """
        Upsert a fetched batch and advance the query key's refresh timestamp.

        Both happen in one transaction: if any row fails, nothing is
        written and the refresh timestamp stays where it was. With
        `advance_refresh` off only the rows are written.

        Returns:
            Internal ids of the upserted repositories
        """
        records = list(records)
        stamp = to_iso(fetched_at)
        with self._session() as db:
            with transaction(db):
                ids = upsert_repositories(db, query_key, records, stamp)
                if advance_refresh:
                    record_refresh(db, query_key, stamp, page, per_page, total_count)

        logger.info(
            f"Upserted {len(ids)} repositories for '{query_key}'",
            extra={'query_key': query_key, 'op': 'upsert', 'count': len(ids)},
        )
        return ids

    def query(self, filters: RepoFilters) -> PagedResult:
        """Filter, sort and page the cached repositories."""
        filters.validate(self.max_per_page)
        with self._session() as db:
            total = count_repositories(db, filters)
            items = select_repositories(db, filters) if filters.offset < total else []
        return PagedResult(items=items, total=total, page=filters.page, per_page=filters.per_page)

    def distinct_languages(self) -> List[str]:
        with self._session() as db:
            return get_distinct_languages(db)

    def stats(self) -> Dict[str, Any]:
        with self._session() as db:
            return {
                'total_repositories': get_repo_count(db),
                'total_topics': get_topic_count(db),
                'total_favorites': get_favorite_count(db),
                'per_query_last_refresh': get_all_refresh_meta(db),
            }

    def last_refreshed(self, query_key: Optional[str] = None) -> Optional[datetime]:
        """
        When a query key was last refreshed.

        With no key, the most recent refresh of any key.
        """
        with self._session() as db:
            if query_key is None:
                return from_iso(get_latest_refresh(db))
            meta = get_refresh_meta(db, query_key)
        return from_iso(meta['last_fetched_at']) if meta else None

    def refresh_meta(self, query_key: str) -> Optional[Dict[str, Any]]:
        with self._session() as db:
            return get_refresh_meta(db, query_key)

    def get_repository(self, repo_id: int) -> Optional[RepositoryRecord]:
        with self._session() as db:
            return get_repository(db, repo_id)

    def get_repositories(self, repo_ids: List[int]) -> List[RepositoryRecord]:
        with self._session() as db:
            return get_repositories(db, repo_ids)

    def get_repository_by_name(self, owner: str, name: str) -> Optional[RepositoryRecord]:
        with self._session() as db:
            return get_repository_by_name(db, owner, name)

    def set_languages(self, owner: str, name: str, languages: Dict[str, int]) -> bool:
        with self._session() as db:
            return set_languages(db, owner, name, languages)

    def prune(self, query_key: str, older_than: datetime) -> Tuple[int, int]:
        """Explicitly drop associations of a query key not seen since `older_than`."""
        with self._session() as db:
            with transaction(db):
                unlinked, removed = prune_query(db, query_key, to_iso(older_than))
        logger.info(
            f"Pruned '{query_key}': {unlinked} associations, {removed} repositories",
            extra={'query_key': query_key, 'op': 'prune'},
        )
        return unlinked, removed

    def add_favorite(self, user_id: str, repo_id: int, now: Optional[datetime] = None) -> bool:
        with self._session() as db:
            return add_favorite(db, user_id, repo_id, to_iso(now or datetime.now(timezone.utc)))

    def remove_favorite(self, user_id: str, repo_id: int) -> bool:
        with self._session() as db:
            return remove_favorite(db, user_id, repo_id)

    def favorites(self, user_id: str, page: int = 1, per_page: int = 30) -> List[Tuple[RepositoryRecord, str]]:
        RepoFilters(page=page, per_page=per_page).validate(self.max_per_page)
        with self._session() as db:
            return get_user_favorites(db, user_id, per_page, (page - 1) * per_page)

"""
Cache service for repocache.

Coordinates the GitHub client, the cache store and the staleness policy:
- reads are always served straight from the store
- a stale, refresh-eligible read schedules a deferred refresh
- concurrent refreshes of one query key share a single upstream fetch
- a failed refresh leaves the store and its refresh timestamp untouched
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional, List, Dict, Any, Callable

from ..config import get_ttl, get_github_token
from ..database import CacheStore, to_iso
from ..domain import RepositoryRecord, RepoFilters, PagedResult, DEFAULT_PER_PAGE
from ..errors import InvalidFilter, RepoCacheError, UpstreamError
from ..infra import GitHubClient
from ..policies import (
    BROWSE_KEY,
    StalenessPolicy,
    classify_difficulty,
    normalize_query_key,
    refresh_key_for,
    build_search_query,
    DifficultyClassifier,
    RefreshKeyPolicy,
)
from .singleflight import SingleFlight

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class RefreshResult:
    """Outcome of one upstream fetch committed to the store."""
    query_key: str
    items: List[RepositoryRecord] = field(default_factory=list)
    total_count: int = 0
    page: int = 1
    per_page: int = DEFAULT_PER_PAGE
    fetched_at: Optional[datetime] = None

    @property
    def has_more(self) -> bool:
        return self.page * self.per_page < self.total_count

    def to_dict(self) -> Dict[str, Any]:
        return {
            'queryKey': self.query_key,
            'items': [item.to_dict() for item in self.items],
            'total': self.total_count,
            'page': self.page,
            'perPage': self.per_page,
            'hasMore': self.has_more,
            'fetchedAt': to_iso(self.fetched_at) if self.fetched_at else None,
        }


@dataclass
class ReadResult:
    """A page served from the store, plus whether its key was fresh."""
    page: PagedResult
    cached: bool
    query_key: str
    refresh_scheduled: bool = False


class CacheService:
    """
    Repository cache orchestrator.

    The service does not create global state: build one per process with
    `from_config()` (or inject fakes in tests) and call `close()` on exit.

    Example:
        service = CacheService(store, client, StalenessPolicy(timedelta(hours=1)))
        service.ensure_fresh("machine learning")
        result = service.read(RepoFilters(text="machine learning"))
    """

    def __init__(
        self,
        store: CacheStore,
        client: GitHubClient,
        policy: StalenessPolicy,
        per_page: int = DEFAULT_PER_PAGE,
        pages: int = 1,
        clock: Callable[[], datetime] = utc_now,
        difficulty_classifier: DifficultyClassifier = classify_difficulty,
        refresh_key_policy: RefreshKeyPolicy = refresh_key_for,
        background_refresh: bool = True,
        executor: Optional[ThreadPoolExecutor] = None,
        max_workers: int = 4,
        owns_client: bool = False,
    ):
        self.store = store
        self.client = client
        self.policy = policy
        self.per_page = per_page
        self.pages = max(1, pages)
        self.clock = clock
        self.difficulty_classifier = difficulty_classifier
        self.refresh_key_policy = refresh_key_policy
        self.background_refresh = background_refresh
        self._executor = executor
        self._owns_executor = executor is None
        self._closed = False
        self._max_workers = max_workers
        self._owns_client = owns_client
        self._flight = SingleFlight()
        self._lock = threading.Lock()
        self._scheduled: set = set()

    @classmethod
    def from_config(
        cls,
        config: Dict[str, Any],
        client: Optional[GitHubClient] = None,
        store: Optional[CacheStore] = None,
    ) -> 'CacheService':
        cache = config.get('cache', {})
        owns_client = client is None
        if client is None:
            client = GitHubClient.from_config(config, token=get_github_token(config))
        return cls(
            store=store or CacheStore.from_config(config),
            client=client,
            policy=StalenessPolicy(get_ttl(config)),
            per_page=int(cache.get('per_page', DEFAULT_PER_PAGE)),
            pages=int(cache.get('pages', 1)),
            background_refresh=bool(cache.get('background_refresh', True)),
            max_workers=int(cache.get('max_workers', 4)),
            owns_client=owns_client,
        )

    def close(self) -> None:
        """Wait for deferred refreshes and release owned resources."""
        with self._lock:
            self._closed = True
            executor, self._executor = self._executor, None
        if executor is not None and self._owns_executor:
            executor.shutdown(wait=True)
        if self._owns_client:
            self.client.close()

    def __enter__(self) -> 'CacheService':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # Staleness

    def needs_refresh(self, query_key: Optional[str] = None) -> bool:
        """
        Whether a query key is due for a refresh.

        With no key, whether the cache as a whole has gone without any
        refresh for longer than the TTL.
        """
        return self.policy.is_stale(self.clock(), self.store.last_refreshed(query_key))

    def is_refreshing(self, query_key: str) -> bool:
        return self._flight.in_flight(normalize_query_key(query_key))

    # Reads

    def read(self, filters: RepoFilters) -> ReadResult:
        """
        Serve a page from the store.

        Never waits on GitHub. If the filters map to a refresh-eligible
        query key that is stale, a refresh is scheduled in the background.
        """
        filters.validate(self.store.max_per_page)
        refresh_key = self.refresh_key_policy(filters.text)
        page = self.store.query(filters)

        stale = self.needs_refresh(refresh_key)
        scheduled = False
        if refresh_key is not None and stale and self.background_refresh:
            scheduled = self._schedule_refresh(refresh_key)

        query_key = refresh_key or BROWSE_KEY
        logger.info(
            f"Served {len(page.items)}/{page.total} repositories for '{query_key}'"
            f"{' (stale)' if stale else ''}",
            extra={'query_key': query_key, 'op': 'serve', 'stale': stale},
        )
        return ReadResult(page=page, cached=not stale, query_key=query_key, refresh_scheduled=scheduled)

    def _schedule_refresh(self, query_key: str) -> bool:
        with self._lock:
            if self._closed:
                return False
            if query_key in self._scheduled or self._flight.in_flight(query_key):
                return False
            if self._executor is None:
                if not self._owns_executor:
                    return False
                self._executor = ThreadPoolExecutor(
                    max_workers=self._max_workers, thread_name_prefix='repocache-refresh'
                )
            self._scheduled.add(query_key)
            self._executor.submit(self._deferred_refresh, query_key)
        return True

    def _deferred_refresh(self, query_key: str) -> None:
        try:
            self.ensure_fresh(query_key)
        except RepoCacheError as e:
            # Nobody is waiting on a deferred refresh; the next read retries.
            logger.warning(
                f"Deferred refresh of '{query_key}' failed: {e}",
                extra={'query_key': query_key, 'op': 'refresh_failed'},
            )
        except Exception:
            logger.exception(
                f"Deferred refresh of '{query_key}' crashed",
                extra={'query_key': query_key, 'op': 'refresh_failed'},
            )
        finally:
            with self._lock:
                self._scheduled.discard(query_key)

    # Refreshes

    def ensure_fresh(self, query: str) -> Optional[RefreshResult]:
        """
        Refresh a query key if it is stale.

        Concurrent callers for the same key share one upstream fetch and
        receive the same result or the same exception.

        Returns:
            RefreshResult if a fetch ran, None if the key was already fresh
        """
        query_key = normalize_query_key(query)

        def run() -> Optional[RefreshResult]:
            if not self.needs_refresh(query_key):
                logger.debug(
                    f"'{query_key}' is fresh, skipping refresh",
                    extra={'query_key': query_key, 'op': 'refresh_skip'},
                )
                return None
            return self._fetch_and_store(query_key, 1, self.per_page, self.pages)

        result, shared = self._flight.do(query_key, run)
        if shared:
            logger.debug(
                f"Joined in-flight refresh of '{query_key}'",
                extra={'query_key': query_key, 'op': 'refresh_join'},
            )
        return result

    def force_refresh(self, query: str, page: int = 1, per_page: Optional[int] = None) -> RefreshResult:
        """Fetch one page for a query regardless of staleness and store it."""
        query_key = normalize_query_key(query)
        if query_key == BROWSE_KEY:
            raise InvalidFilter("A search query is required to refresh", {'query': query})
        per_page = self.per_page if per_page is None else per_page
        RepoFilters(page=page, per_page=per_page).validate(self.store.max_per_page)
        return self._fetch_and_store(query_key, page, per_page, 1)

    def _fetch_and_store(self, query_key: str, page: int, per_page: int, pages: int) -> RefreshResult:
        """
        Pull `pages` pages from GitHub, then commit them in one batch.

        Nothing is written unless every page was fetched. Only a fetch
        starting at page 1 counts as a refresh of the key.
        """
        search = build_search_query(query_key)
        fetched: List[RepositoryRecord] = []
        total_count = 0
        last_page = page

        logger.info(
            f"Fetching '{query_key}' from GitHub (page {page}, {pages} page(s) of {per_page})",
            extra={'query_key': query_key, 'op': 'fetch'},
        )
        try:
            for current in range(page, page + pages):
                items, total_count = self.client.search_repositories(search, page=current, per_page=per_page)
                fetched.extend(items)
                last_page = current
                if len(items) < per_page:
                    break
        except UpstreamError as e:
            logger.warning(
                f"Fetching '{query_key}' failed: {e}",
                extra={'query_key': query_key, 'op': 'refresh_failed'},
            )
            raise

        classified = [record.with_difficulty(self.difficulty_classifier(record)) for record in fetched]
        fetched_at = self.clock()
        ids = self.store.upsert_batch(
            query_key,
            classified,
            fetched_at,
            page=last_page,
            per_page=per_page,
            total_count=total_count,
            advance_refresh=page == 1,
        )
        return RefreshResult(
            query_key=query_key,
            items=self.store.get_repositories(ids),
            total_count=total_count,
            page=page,
            per_page=per_page,
            fetched_at=fetched_at,
        )

    # Metadata

    def languages(self) -> List[str]:
        return self.store.distinct_languages()

    def repository_languages(self, owner: str, name: str) -> Dict[str, int]:
        """Language byte counts for one repository, recorded on the cached row if present."""
        languages = self.client.list_languages(owner, name)
        self.store.set_languages(owner, name, languages)
        return languages

    def stats(self, query: Optional[str] = None) -> Dict[str, Any]:
        """
        Cache statistics.

        `needs_refresh` is for the given query's key, or for the cache as a
        whole when no query is given.
        """
        stats = self.store.stats()
        query_key = refresh_key_for(query) if query else None
        stats['needs_refresh'] = self.needs_refresh(query_key)
        stats['last_checked'] = to_iso(self.clock())
        return stats

    def prune(self, query: str, older_than: timedelta) -> Dict[str, int]:
        """Drop repositories a query has not returned within `older_than`."""
        query_key = normalize_query_key(query)
        unlinked, removed = self.store.prune(query_key, self.clock() - older_than)
        return {'unlinked': unlinked, 'removed': removed}

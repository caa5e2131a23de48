"""
repocache - A local, rate-limit-aware cache of GitHub repository search.

repocache keeps the results of GitHub repository searches in SQLite and
serves filtered, sorted, paginated views from there, refreshing each
search lazily once its data is older than a TTL.

Quick Start:
    import repocache

    config = repocache.load_config()
    with repocache.CacheService.from_config(config) as service:
        # Pull "machine learning" from GitHub if it is stale
        service.ensure_fresh("machine learning")

        # Read from the cache (never waits on GitHub)
        result = service.read(repocache.RepoFilters(
            text="machine learning", sort="stars", order="desc", per_page=10,
        ))
        for repo in result.page.items:
            print(repo.full_name, repo.stars)

Components:
    GitHubClient - search/languages requests with rate limit handling
    CacheStore - SQLite store, the truth-of-record for every read
    StalenessPolicy - TTL check per query key
    CacheService - reads, single-flight refreshes, stats

Errors:
    RateLimited, AbuseLimited - GitHub asked us to back off
    UpstreamTimeout, UpstreamUnavailable, UpstreamClientError
    PersistenceError - the store failed
    InvalidFilter - bad paging or sort arguments
"""

__version__ = "0.3.0"

# Domain objects
from .domain import RepositoryRecord, RepoFilters, PagedResult

# Components
from .infra import GitHubClient, RateLimitStatus
from .database import CacheStore
from .policies import StalenessPolicy, BROWSE_KEY
from .services import CacheService, RefreshResult, ReadResult

# Errors
from .errors import (
    RepoCacheError,
    UpstreamError,
    RateLimited,
    AbuseLimited,
    UpstreamTimeout,
    UpstreamUnavailable,
    UpstreamClientError,
    PersistenceError,
    InvalidFilter,
)

# Configuration
from .config import load_config, save_config

__all__ = [
    # Version
    "__version__",
    # Domain objects
    "RepositoryRecord",
    "RepoFilters",
    "PagedResult",
    # Components
    "GitHubClient",
    "RateLimitStatus",
    "CacheStore",
    "StalenessPolicy",
    "BROWSE_KEY",
    "CacheService",
    "RefreshResult",
    "ReadResult",
    # Errors
    "RepoCacheError",
    "UpstreamError",
    "RateLimited",
    "AbuseLimited",
    "UpstreamTimeout",
    "UpstreamUnavailable",
    "UpstreamClientError",
    "PersistenceError",
    "InvalidFilter",
    # Configuration
    "load_config",
    "save_config",
]

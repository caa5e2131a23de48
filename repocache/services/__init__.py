"""
Service layer for repocache.

Contains the logic that coordinates the GitHub client, the cache store
and the staleness policy:
- CacheService: reads, deferred and forced refreshes, stats, prune
- SingleFlight: per-query-key refresh coalescing

Commands and the HTTP API use the service rather than the store directly.
"""

from .cache_service import CacheService, RefreshResult, ReadResult
from .singleflight import SingleFlight

__all__ = [
    'CacheService',
    'RefreshResult',
    'ReadResult',
    'SingleFlight',
]

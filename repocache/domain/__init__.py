"""
Domain layer for repocache.

Contains pure domain objects with no I/O or side effects:
- RepositoryRecord: A cached GitHub repository
- RepoFilters: Filter/sort/page arguments for reads
- PagedResult: One page of a cache read
"""

from .repository import RepositoryRecord
from .filters import (
    RepoFilters,
    PagedResult,
    SORT_COLUMNS,
    SORT_ORDERS,
    ALL,
    DEFAULT_PER_PAGE,
    MAX_PER_PAGE,
)

__all__ = [
    'RepositoryRecord',
    'RepoFilters',
    'PagedResult',
    'SORT_COLUMNS',
    'SORT_ORDERS',
    'ALL',
    'DEFAULT_PER_PAGE',
    'MAX_PER_PAGE',
]

"""
Read filters and paged results for the repository cache.
"""

from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional

from ..errors import InvalidFilter
from .repository import RepositoryRecord

# Public sort key -> repos column
SORT_COLUMNS = {
    'stars': 'stars',
    'forks': 'forks',
    'updated': 'pushed_at',
    'pushed': 'pushed_at',
}
SORT_ORDERS = ('asc', 'desc')
ALL = 'all'
DEFAULT_PER_PAGE = 30
MAX_PER_PAGE = 100


@dataclass(frozen=True)
class RepoFilters:
    """Filter, sort and page arguments for a cache read."""
    text: str = ''
    language: str = ALL
    difficulty: str = ALL
    sort: str = 'stars'
    order: str = 'desc'
    page: int = 1
    per_page: int = DEFAULT_PER_PAGE

    def validate(self, max_per_page: int = MAX_PER_PAGE) -> 'RepoFilters':
        """
        Reject bad pagination or sort arguments.

        Nothing is clamped: a page below 1, a non-positive or oversized
        per_page, an unknown sort key or order all raise InvalidFilter.
        """
        if not isinstance(self.page, int) or self.page < 1:
            raise InvalidFilter(f"page must be >= 1, got {self.page!r}", {'page': self.page})
        if not isinstance(self.per_page, int) or self.per_page <= 0:
            raise InvalidFilter(f"per_page must be > 0, got {self.per_page!r}", {'per_page': self.per_page})
        if self.per_page > max_per_page:
            raise InvalidFilter(
                f"per_page must be <= {max_per_page}, got {self.per_page}",
                {'per_page': self.per_page, 'max_per_page': max_per_page},
            )
        if self.sort not in SORT_COLUMNS:
            raise InvalidFilter(
                f"Unknown sort key '{self.sort}' (expected one of {', '.join(SORT_COLUMNS)})",
                {'sort': self.sort},
            )
        if self.order not in SORT_ORDERS:
            raise InvalidFilter(f"Unknown sort order '{self.order}'", {'order': self.order})
        return self

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.per_page

    @property
    def sort_column(self) -> str:
        return SORT_COLUMNS[self.sort]

    @property
    def language_filter(self) -> Optional[str]:
        if not self.language or self.language.lower() == ALL:
            return None
        return self.language

    @property
    def difficulty_filter(self) -> Optional[str]:
        if not self.difficulty or self.difficulty.lower() == ALL:
            return None
        return self.difficulty.lower()


@dataclass
class PagedResult:
    """One page of repositories plus the total matching count."""
    items: List[RepositoryRecord] = field(default_factory=list)
    total: int = 0
    page: int = 1
    per_page: int = DEFAULT_PER_PAGE

    @property
    def has_more(self) -> bool:
        return self.page * self.per_page < self.total

    def to_dict(self) -> Dict[str, Any]:
        return {
            'items': [item.to_dict() for item in self.items],
            'total': self.total,
            'page': self.page,
            'perPage': self.per_page,
            'hasMore': self.has_more,
        }

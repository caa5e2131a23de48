"""
Pluggable policies for the repository cache.

The cache service depends on these only through plain callables, so the
product heuristics (difficulty buckets, which reads may trigger a refresh)
can be swapped without touching the cache logic.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Callable

from .domain import RepositoryRecord

# Reserved key for listings without a search string. Never auto-refreshed.
BROWSE_KEY = '__browse__'

DIFFICULTY_LEVELS = ('beginner', 'intermediate', 'advanced')

_WHITESPACE = re.compile(r'\s+')


@dataclass(frozen=True)
class StalenessPolicy:
    """Decide whether a query key is due for a refresh."""
    ttl: timedelta

    def is_stale(self, now: datetime, last_refreshed_at: Optional[datetime]) -> bool:
        if last_refreshed_at is None:
            return True
        return now - last_refreshed_at > self.ttl


def classify_difficulty(record: RepositoryRecord) -> str:
    """Bucket a repository into beginner/intermediate/advanced."""
    if record.stars < 10 and record.forks < 5 and record.size < 1000:
        return 'beginner'
    if record.stars < 100 and record.forks < 20 and record.size < 10000:
        return 'intermediate'
    return 'advanced'


def normalize_query_key(text: Optional[str]) -> str:
    """Trim, lower-case and collapse whitespace; empty text is the browse key."""
    key = _WHITESPACE.sub(' ', (text or '').strip()).lower()
    return key or BROWSE_KEY


def refresh_key_for(text: Optional[str]) -> Optional[str]:
    """
    Query key a read may refresh, or None.

    Only reads that carry a search string are refresh-eligible; the browse
    listing is served from whatever the cache already holds.
    """
    key = normalize_query_key(text)
    if key == BROWSE_KEY:
        return None
    return key


def build_search_query(query_key: str) -> str:
    """Upstream search string for a query key."""
    parts = []
    if query_key and query_key != BROWSE_KEY:
        parts.append(query_key)
    parts.append('is:public')
    parts.append('archived:false')
    return ' '.join(parts)


DifficultyClassifier = Callable[[RepositoryRecord], Optional[str]]
RefreshKeyPolicy = Callable[[Optional[str]], Optional[str]]

"""
Repository domain object for repocache.

RepositoryRecord is the denormalized form of a GitHub search result as it
is held in the cache. Identity is the (owner, name) pair; the upstream
numeric id is carried alongside so renames can be followed.
"""

from dataclasses import dataclass, field, replace
from typing import Optional, Dict, Any, Tuple


POPULARITY_LEGENDARY = 80000
POPULARITY_FAMOUS = 15000


@dataclass(frozen=True)
class RepositoryRecord:
    """
    Immutable cached repository.

    `id` is the cache's internal row id and is None until the record has
    been persisted. It never changes once assigned, so favorites and topic
    links keyed off it survive every refresh.
    """

    owner: str
    name: str
    github_id: Optional[int] = None
    full_name: Optional[str] = None
    description: Optional[str] = None
    html_url: Optional[str] = None
    language: Optional[str] = None
    stars: int = 0
    forks: int = 0
    open_issues: int = 0
    watchers: int = 0
    size: int = 0
    topics: Tuple[str, ...] = ()
    is_private: bool = False
    is_fork: bool = False
    is_archived: bool = False
    is_disabled: bool = False
    difficulty: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    pushed_at: Optional[str] = None

    # Populated by the store
    id: Optional[int] = None
    query_keys: Tuple[str, ...] = ()
    languages: Optional[Dict[str, int]] = field(default=None, compare=False, hash=False)
    first_seen_at: Optional[str] = None
    last_fetched_at: Optional[str] = None

    @classmethod
    def from_api_response(cls, data: Dict[str, Any]) -> 'RepositoryRecord':
        """Create from a GitHub search API item."""
        owner = data.get('owner') or {}
        full_name = data.get('full_name') or ''
        owner_login = owner.get('login', '') if isinstance(owner, dict) else str(owner)
        if not owner_login and '/' in full_name:
            owner_login = full_name.split('/', 1)[0]

        return cls(
            owner=owner_login,
            name=data.get('name', ''),
            github_id=data.get('id'),
            full_name=full_name or None,
            description=data.get('description'),
            html_url=data.get('html_url'),
            language=data.get('language'),
            stars=data.get('stargazers_count') or 0,
            forks=data.get('forks_count') or 0,
            open_issues=data.get('open_issues_count') or 0,
            watchers=data.get('watchers_count') or 0,
            size=data.get('size') or 0,
            topics=tuple(data.get('topics') or ()),
            is_private=bool(data.get('private', False)),
            is_fork=bool(data.get('fork', False)),
            is_archived=bool(data.get('archived', False)),
            is_disabled=bool(data.get('disabled', False)),
            created_at=data.get('created_at'),
            updated_at=data.get('updated_at'),
            pushed_at=data.get('pushed_at'),
        )

    def with_difficulty(self, difficulty: Optional[str]) -> 'RepositoryRecord':
        """Create a new record with the given difficulty classification."""
        return replace(self, difficulty=difficulty)

    @property
    def identity(self) -> Tuple[str, str]:
        return (self.owner, self.name)

    @property
    def popularity(self) -> str:
        if self.stars >= POPULARITY_LEGENDARY:
            return 'Legendary'
        if self.stars >= POPULARITY_FAMOUS:
            return 'Famous'
        return 'Rising'

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'id': self.id,
            'github_id': self.github_id,
            'owner': self.owner,
            'name': self.name,
            'full_name': self.full_name or f"{self.owner}/{self.name}",
            'html_url': self.html_url,
            'description': self.description,
            'language': self.language,
            'languages': self.languages,
            'stars': self.stars,
            'forks': self.forks,
            'open_issues': self.open_issues,
            'watchers': self.watchers,
            'size': self.size,
            'topics': list(self.topics),
            'is_fork': self.is_fork,
            'difficulty': self.difficulty,
            'popularity': self.popularity,
            'created_at': self.created_at,
            'updated_at': self.updated_at,
            'pushed_at': self.pushed_at,
            'query_keys': list(self.query_keys),
            'first_seen_at': self.first_seen_at,
            'last_fetched_at': self.last_fetched_at,
        }

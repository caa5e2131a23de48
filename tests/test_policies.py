"""
Tests for the pluggable cache policies and the repository domain object.
"""

from datetime import datetime, timedelta, timezone

import pytest

from repocache.domain import RepositoryRecord, RepoFilters, PagedResult
from repocache.errors import InvalidFilter
from repocache.policies import (
    BROWSE_KEY,
    StalenessPolicy,
    build_search_query,
    classify_difficulty,
    normalize_query_key,
    refresh_key_for,
)

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


class TestStalenessPolicy:

    def setup_method(self):
        self.policy = StalenessPolicy(ttl=timedelta(hours=1))

    def test_never_refreshed_is_stale(self):
        assert self.policy.is_stale(NOW, None) is True

    def test_recent_refresh_is_fresh(self):
        assert self.policy.is_stale(NOW, NOW - timedelta(minutes=59)) is False

    def test_exactly_ttl_is_fresh(self):
        assert self.policy.is_stale(NOW, NOW - timedelta(hours=1)) is False

    def test_older_than_ttl_is_stale(self):
        assert self.policy.is_stale(NOW, NOW - timedelta(hours=1, seconds=1)) is True


class TestQueryKeys:

    @pytest.mark.parametrize('text, expected', [
        ('Machine Learning', 'machine learning'),
        ('  rust   cli  ', 'rust cli'),
        ('ML\tTools', 'ml tools'),
        ('', BROWSE_KEY),
        ('   ', BROWSE_KEY),
        (None, BROWSE_KEY),
    ])
    def test_normalize(self, text, expected):
        assert normalize_query_key(text) == expected

    def test_browse_is_not_refresh_eligible(self):
        assert refresh_key_for('') is None
        assert refresh_key_for(None) is None
        assert refresh_key_for('  ') is None

    def test_search_is_refresh_eligible(self):
        assert refresh_key_for(' Rust ') == 'rust'

    def test_build_search_query(self):
        assert build_search_query('ml') == 'ml is:public archived:false'
        assert build_search_query(BROWSE_KEY) == 'is:public archived:false'


class TestDifficulty:

    @pytest.mark.parametrize('stars, forks, size, expected', [
        (0, 0, 0, 'beginner'),
        (9, 4, 999, 'beginner'),
        (10, 0, 0, 'intermediate'),
        (99, 19, 9999, 'intermediate'),
        (100, 0, 0, 'advanced'),
        (5, 50, 0, 'advanced'),
        (5, 0, 20000, 'advanced'),
    ])
    def test_buckets(self, stars, forks, size, expected):
        record = RepositoryRecord(owner='a', name='x', stars=stars, forks=forks, size=size)
        assert classify_difficulty(record) == expected


class TestRepositoryRecord:

    def test_from_api_response(self):
        record = RepositoryRecord.from_api_response({
            'id': 42,
            'name': 'hello',
            'full_name': 'octo/hello',
            'owner': {'login': 'octo'},
            'description': 'Hi',
            'stargazers_count': 5,
            'forks_count': 2,
            'open_issues_count': 1,
            'topics': ['a', 'b'],
            'private': False,
            'archived': False,
            'pushed_at': '2024-01-01T00:00:00Z',
        })
        assert record.identity == ('octo', 'hello')
        assert record.github_id == 42
        assert record.stars == 5
        assert record.topics == ('a', 'b')
        assert record.pushed_at == '2024-01-01T00:00:00Z'
        assert record.id is None

    def test_owner_falls_back_to_full_name(self):
        record = RepositoryRecord.from_api_response({'name': 'hello', 'full_name': 'octo/hello'})
        assert record.owner == 'octo'

    def test_null_counts_become_zero(self):
        record = RepositoryRecord.from_api_response({
            'name': 'x', 'owner': {'login': 'a'}, 'stargazers_count': None,
        })
        assert record.stars == 0

    @pytest.mark.parametrize('stars, expected', [
        (80000, 'Legendary'),
        (15000, 'Famous'),
        (14999, 'Rising'),
    ])
    def test_popularity(self, stars, expected):
        assert RepositoryRecord(owner='a', name='x', stars=stars).popularity == expected

    def test_with_difficulty_returns_copy(self):
        record = RepositoryRecord(owner='a', name='x')
        classified = record.with_difficulty('beginner')
        assert classified.difficulty == 'beginner'
        assert record.difficulty is None

    def test_to_dict(self):
        data = RepositoryRecord(owner='a', name='x', topics=('t',)).to_dict()
        assert data['full_name'] == 'a/x'
        assert data['topics'] == ['t']
        assert data['popularity'] == 'Rising'


class TestFilters:

    @pytest.mark.parametrize('kwargs', [
        {'page': 0},
        {'page': -1},
        {'per_page': 0},
        {'per_page': -5},
        {'per_page': 101},
        {'sort': 'name'},
        {'order': 'up'},
    ])
    def test_invalid(self, kwargs):
        with pytest.raises(InvalidFilter):
            RepoFilters(**kwargs).validate()

    def test_valid(self):
        filters = RepoFilters(sort='updated', order='asc', page=3, per_page=10).validate()
        assert filters.offset == 20
        assert filters.sort_column == 'pushed_at'

    def test_all_means_no_filter(self):
        filters = RepoFilters(language='All', difficulty='all')
        assert filters.language_filter is None
        assert filters.difficulty_filter is None
        assert RepoFilters(language='Go').language_filter == 'Go'

    def test_paged_result(self):
        page = PagedResult(items=[], total=25, page=2, per_page=10)
        assert page.has_more is True
        assert page.to_dict() == {'items': [], 'total': 25, 'page': 2, 'perPage': 10, 'hasMore': True}
        assert PagedResult(total=20, page=2, per_page=10).has_more is False

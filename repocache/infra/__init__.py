"""
Infrastructure layer for repocache.

Contains abstractions for external systems:
- GitHubClient: GitHub search/languages API access with rate limiting

These provide clean interfaces that can be mocked for testing.
"""

from .github_client import GitHubClient, RateLimitStatus

__all__ = [
    'GitHubClient',
    'RateLimitStatus',
]

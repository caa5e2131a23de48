"""
GitHub API client infrastructure for repocache.

Provides the two read operations the cache needs from GitHub:
- search repositories (paginated)
- list the languages of one repository

and absorbs GitHub's cooperative rate limiting:
- primary rate limit: sleep the signaled wait and retry once
- secondary (abuse) limit: fail immediately, remember the backoff
- every request is bounded by a timeout

One client is meant to be shared by the whole process so the observed
rate-limit state applies to every caller.
"""

import time
import logging
import threading
from dataclasses import dataclass
from typing import Optional, List, Dict, Any, Tuple, Callable

import requests

from ..domain import RepositoryRecord
from ..errors import (
    AbuseLimited,
    RateLimited,
    UpstreamClientError,
    UpstreamTimeout,
    UpstreamUnavailable,
)

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"
DEFAULT_TIMEOUT = 15.0
DEFAULT_ABUSE_BACKOFF = 60
DEFAULT_RATE_LIMIT_WAIT = 60


@dataclass
class RateLimitStatus:
    """GitHub API rate limit status."""
    remaining: int
    limit: int
    reset_time: int  # Unix timestamp
    used: int

    @property
    def minutes_until_reset(self) -> int:
        """Minutes until rate limit resets."""
        now = int(time.time())
        return max(0, (self.reset_time - now) // 60)

    @property
    def is_low(self) -> bool:
        """Check if rate limit is getting low (< 100 remaining)."""
        return self.remaining < 100

    def to_dict(self) -> Dict[str, Any]:
        return {
            'remaining': self.remaining,
            'limit': self.limit,
            'reset_time': self.reset_time,
            'used': self.used,
        }


class GitHubClient:
    """
    GitHub API client with rate limiting.

    Example:
        with GitHubClient(token="...") as client:
            items, total = client.search_repositories("machine learning")
            langs = client.list_languages("octocat", "hello-world")
    """

    def __init__(
        self,
        token: Optional[str] = None,
        api_url: str = DEFAULT_API_URL,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = 1,
        max_wait: Optional[float] = None,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize GitHubClient.

        Args:
            token: GitHub token sent as the Authorization header
            api_url: API base URL
            timeout: Per-request timeout in seconds
            max_retries: Retries allowed after a primary rate-limit response
            max_wait: Longest signaled wait the client will sleep through (None: no cap)
            session: requests session (one is created if None)
            sleep: Sleep function, replaceable in tests
            clock: Unix-time function, replaceable in tests
        """
        self.token = token
        self.api_url = api_url.rstrip('/')
        self.timeout = timeout
        self.max_retries = max_retries
        self.max_wait = max_wait
        self.session = session or requests.Session()
        self._sleep = sleep
        self._clock = clock
        self._lock = threading.Lock()
        self._rate_limit_status: Optional[RateLimitStatus] = None
        self._backoff_until: float = 0.0

    @classmethod
    def from_config(cls, config: Dict[str, Any], token: Optional[str] = None) -> 'GitHubClient':
        github = config.get('github', {})
        rate_limit = github.get('rate_limit', {})
        max_wait = rate_limit.get('max_wait_seconds')
        return cls(
            token=token,
            api_url=github.get('api_url', DEFAULT_API_URL),
            timeout=float(github.get('timeout_seconds', DEFAULT_TIMEOUT)),
            max_retries=int(rate_limit.get('max_retries', 1)),
            max_wait=float(max_wait) if max_wait is not None else None,
        )

    def __enter__(self) -> 'GitHubClient':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def close(self) -> None:
        self.session.close()

    @property
    def rate_limit_status(self) -> Optional[RateLimitStatus]:
        """Status from the last response that carried rate-limit headers."""
        with self._lock:
            return self._rate_limit_status

    @property
    def backoff_remaining(self) -> int:
        """Seconds left in a secondary rate limit backoff, 0 if none."""
        with self._lock:
            return max(0, int(round(self._backoff_until - self._clock())))

    def _headers(self) -> Dict[str, str]:
        headers = {
            'Accept': 'application/vnd.github+json',
            'User-Agent': 'repocache',
        }
        if self.token:
            headers['Authorization'] = f'token {self.token}'
        return headers

    def _update_rate_limit_from_headers(self, headers) -> None:
        """Update rate limit status from response headers."""
        try:
            remaining = int(headers.get('X-RateLimit-Remaining', -1))
            limit = int(headers.get('X-RateLimit-Limit', -1))
            reset_time = int(headers.get('X-RateLimit-Reset', 0))
            used = int(headers.get('X-RateLimit-Used', 0))
        except (ValueError, TypeError):
            return  # Ignore parsing errors

        if remaining < 0 or limit < 0:
            return

        status = RateLimitStatus(remaining=remaining, limit=limit, reset_time=reset_time, used=used)
        with self._lock:
            self._rate_limit_status = status

        if status.is_low:
            logger.warning(
                f"GitHub API rate limit low: {remaining}/{limit} remaining, "
                f"resets in {status.minutes_until_reset} minutes"
            )

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return response.text or response.reason or ''
        if isinstance(data, dict):
            return data.get('message') or ''
        return ''

    @staticmethod
    def _retry_after(response: requests.Response) -> Optional[int]:
        value = response.headers.get('Retry-After')
        if value is None:
            return None
        try:
            return max(0, int(float(value)))
        except ValueError:
            return None

    def _is_abuse_limit(self, response: requests.Response, message: str) -> bool:
        if response.status_code not in (403, 429):
            return False
        lowered = message.lower()
        return 'secondary rate limit' in lowered or 'abuse' in lowered

    def _primary_wait(self, response: requests.Response) -> Optional[int]:
        """Seconds GitHub asks us to wait, or None if this is not a rate limit."""
        if response.status_code not in (403, 429):
            return None

        retry_after = self._retry_after(response)
        if retry_after is not None:
            return retry_after

        if response.headers.get('X-RateLimit-Remaining') == '0':
            try:
                reset_time = int(response.headers.get('X-RateLimit-Reset', 0))
            except ValueError:
                reset_time = 0
            return max(0, reset_time - int(self._clock()))

        if response.status_code == 429:
            return DEFAULT_RATE_LIMIT_WAIT
        return None

    def _check_backoff(self, endpoint: str) -> None:
        remaining = self.backoff_remaining
        if remaining > 0:
            logger.info(
                f"Skipping {endpoint}: secondary rate limit backoff, {remaining}s left",
                extra={'op': 'abuse_limit'},
            )
            raise AbuseLimited(remaining)

    def _get(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        GET an API endpoint, applying the rate limit protocol.

        Raises:
            RateLimited: primary limit persisted past the retry budget
            AbuseLimited: secondary limit, never retried
            UpstreamTimeout: request timed out (not retried)
            UpstreamUnavailable: 5xx, network failure or unparseable body
            UpstreamClientError: any other 4xx
        """
        self._check_backoff(endpoint)
        url = f"{self.api_url}/{endpoint.lstrip('/')}"
        attempt = 0

        while True:
            try:
                response = self.session.get(
                    url, params=params, headers=self._headers(), timeout=self.timeout
                )
            except requests.Timeout as e:
                raise UpstreamTimeout(f"GitHub request timed out after {self.timeout}s: {endpoint}") from e
            except requests.RequestException as e:
                raise UpstreamUnavailable(f"GitHub request failed: {e}") from e

            self._update_rate_limit_from_headers(response.headers)

            if response.status_code == 200:
                try:
                    return response.json()
                except ValueError as e:
                    raise UpstreamUnavailable(f"Malformed GitHub response for {endpoint}: {e}") from e

            message = self._error_message(response)

            if self._is_abuse_limit(response, message):
                backoff = self._retry_after(response) or DEFAULT_ABUSE_BACKOFF
                with self._lock:
                    self._backoff_until = max(self._backoff_until, self._clock() + backoff)
                logger.warning(
                    f"Secondary rate limit triggered for GET {endpoint}, backing off for {backoff}s",
                    extra={'op': 'abuse_limit'},
                )
                raise AbuseLimited(backoff, message or None)

            wait = self._primary_wait(response)
            if wait is not None:
                if attempt < self.max_retries and (self.max_wait is None or wait <= self.max_wait):
                    attempt += 1
                    logger.warning(
                        f"Rate limit hit for GET {endpoint}, retrying in {wait}s (retry #{attempt})",
                        extra={'op': 'rate_limit'},
                    )
                    self._sleep(wait)
                    continue
                raise RateLimited(wait, message or None)

            if 400 <= response.status_code < 500:
                raise UpstreamClientError(
                    response.status_code,
                    message or f"GitHub API error {response.status_code} for {endpoint}",
                )

            raise UpstreamUnavailable(
                f"GitHub API error {response.status_code} for {endpoint}",
                {'status': response.status_code},
            )

    def search_repositories(
        self,
        query: str,
        page: int = 1,
        per_page: int = 30,
        sort: str = 'stars',
        order: str = 'desc',
    ) -> Tuple[List[RepositoryRecord], int]:
        """
        Search repositories.

        Args:
            query: GitHub search string
            page: 1-based page number
            per_page: Page size (GitHub caps this at 100)

        Returns:
            (items, total_count)
        """
        data = self._get('search/repositories', params={
            'q': query,
            'sort': sort,
            'order': order,
            'page': page,
            'per_page': per_page,
        })
        items = data.get('items', []) if isinstance(data, dict) else None
        if not isinstance(items, list) or not all(isinstance(item, dict) for item in items):
            raise UpstreamUnavailable("Malformed GitHub response for search/repositories: expected an items list")
        try:
            total_count = int(data.get('total_count') or 0)
            records = [RepositoryRecord.from_api_response(item) for item in items]
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise UpstreamUnavailable(f"Malformed GitHub response for search/repositories: {e}") from e
        return records, total_count

    def list_languages(self, owner: str, name: str) -> Dict[str, int]:
        """
        Get repository languages.

        Returns:
            Mapping of language name to byte count
        """
        endpoint = f"repos/{owner}/{name}/languages"
        data = self._get(endpoint)
        try:
            return {str(k): int(v) for k, v in data.items()}
        except (AttributeError, TypeError, ValueError) as e:
            raise UpstreamUnavailable(f"Malformed GitHub response for {endpoint}: {e}") from e

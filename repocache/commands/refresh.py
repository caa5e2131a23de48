"""
Refresh command for repocache.

Pulls a search from GitHub into the cache, either unconditionally or only
when its query key has gone stale.
"""

import json
from typing import Optional

import click

from ..cli_utils import handle_errors, build_service
from ..render import print_refresh_summary


@click.command('refresh')
@click.argument('query')
@click.option('--page', type=int, default=1, show_default=True, help='Page of GitHub results to fetch')
@click.option('--per-page', type=int, default=None, help='Results per page (default: cache.per_page)')
@click.option('--if-stale', is_flag=True, help='Only fetch if the query is older than the TTL')
@click.option('--json', 'as_json', is_flag=True, help='Print the result as JSON')
@click.pass_context
@handle_errors
def refresh_handler(ctx, query: str, page: int, per_page: Optional[int], if_stale: bool, as_json: bool):
    """
    Refresh QUERY from GitHub.

    \b
    Examples:
        # Fetch now, regardless of age
        repocache refresh "machine learning"
        # Fetch the second page, 50 per page
        repocache refresh "rust cli" --page 2 --per-page 50
        # Only if older than cache.ttl_seconds (pages from cache.pages)
        repocache refresh "machine learning" --if-stale
    """
    service = build_service(ctx)

    if if_stale:
        result = service.ensure_fresh(query)
    else:
        result = service.force_refresh(query, page=page, per_page=per_page)

    data = result.to_dict() if result is not None else None
    if as_json:
        print(json.dumps(data or {'queryKey': query, 'refreshed': False}, ensure_ascii=False))
    else:
        print_refresh_summary(data, query)

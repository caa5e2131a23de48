"""
Query command for repocache.

Reads filtered, sorted, paginated repositories from the cache. Never
waits on GitHub.
"""

from typing import Optional

import click

from ..cli_utils import handle_errors, build_service, output_jsonl
from ..domain import RepoFilters, SORT_COLUMNS, SORT_ORDERS, ALL, DEFAULT_PER_PAGE
from ..render import render_repository_table


@click.command('query')
@click.argument('text', required=False, default='')
@click.option('--language', '-l', default=ALL, help="Primary language, or 'all'")
@click.option('--difficulty', '-d', default=ALL, help="beginner, intermediate, advanced or 'all'")
@click.option('--sort', 'sort_key', type=click.Choice(list(SORT_COLUMNS)), default='stars', show_default=True)
@click.option('--order', type=click.Choice(list(SORT_ORDERS)), default='desc', show_default=True)
@click.option('--page', type=int, default=1, show_default=True)
@click.option('--per-page', type=int, default=DEFAULT_PER_PAGE, show_default=True)
@click.option('--json', 'as_json', is_flag=True, help='Output JSON lines (one repository per line)')
@click.option('--no-refresh', is_flag=True, help='Do not schedule a refresh for stale queries')
@click.pass_context
@handle_errors
def query_handler(ctx, text: Optional[str], language: str, difficulty: str, sort_key: str, order: str,
                  page: int, per_page: int, as_json: bool, no_refresh: bool):
    """
    Query cached repositories.

    TEXT matches name, full name and description (case-insensitive).
    If TEXT names a stale search, a refresh runs after the results are read.

    \b
    Examples:
        repocache query "machine learning"
        repocache query --language Python --sort forks --order asc
        repocache query rust --per-page 10 --page 2 --json
    """
    service = build_service(ctx)
    if no_refresh:
        service.background_refresh = False

    filters = RepoFilters(
        text=text or '',
        language=language,
        difficulty=difficulty,
        sort=sort_key,
        order=order,
        page=page,
        per_page=per_page,
    )
    result = service.read(filters)
    page_dict = result.page.to_dict()

    if as_json:
        output_jsonl(page_dict['items'])
    else:
        render_repository_table(page_dict, cached=result.cached)

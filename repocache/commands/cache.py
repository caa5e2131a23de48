"""
Cache inspection and maintenance commands: languages, stats, prune.
"""

import json

import click

from ..cli_utils import handle_errors, build_service, output_jsonl, parse_duration
from ..render import console, render_table, render_cache_stats_table


@click.command('languages')
@click.option('--json', 'as_json', is_flag=True, help='Output JSON lines')
@click.pass_context
@handle_errors
def languages_handler(ctx, as_json: bool):
    """List the distinct primary languages in the cache."""
    languages = build_service(ctx).languages()
    if as_json:
        output_jsonl({'language': language} for language in languages)
    else:
        render_table(['Language'], [[language] for language in languages], title='Languages')


@click.command('stats')
@click.option('--query', '-q', 'query', default=None, help='Check staleness of this query instead of the whole cache')
@click.option('--json', 'as_json', is_flag=True, help='Output as JSON')
@click.pass_context
@handle_errors
def stats_handler(ctx, query, as_json: bool):
    """Show cache statistics and whether a refresh is due."""
    stats = build_service(ctx).stats(query)
    if as_json:
        print(json.dumps(stats, ensure_ascii=False))
    else:
        render_cache_stats_table(stats)


@click.command('prune')
@click.argument('query')
@click.option('--older-than', default='30d', show_default=True,
              help='Drop repositories QUERY has not returned within this long (e.g. 12h, 30d, 2w)')
@click.option('--json', 'as_json', is_flag=True, help='Output as JSON')
@click.pass_context
@handle_errors
def prune_handler(ctx, query: str, older_than: str, as_json: bool):
    """
    Prune repositories a query has stopped returning.

    The cache is additive: repositories absent from later fetches are kept
    until pruned. Repositories still linked to another query or favorited
    by a user are only unlinked from QUERY, never deleted.
    """
    age = parse_duration(older_than)
    result = build_service(ctx).prune(query, age)
    if as_json:
        print(json.dumps(result))
    else:
        console.print(
            f"Unlinked {result['unlinked']} repositories from '{query}', "
            f"removed {result['removed']} from the cache."
        )

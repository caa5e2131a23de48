#!/usr/bin/env python3

import click

from repocache.commands.serve import serve_handler
from repocache.commands.refresh import refresh_handler
from repocache.commands.query import query_handler
from repocache.commands.cache import languages_handler, stats_handler, prune_handler


@click.group()
@click.version_option(package_name='repocache')
@click.pass_context
def cli(ctx):
    """repocache - Local cache of GitHub repository search.

    Searches are fetched from GitHub on demand, kept in SQLite, and served
    from there with filtering, sorting and paging. A search is fetched
    again once it is older than the configured TTL.
    """
    ctx.ensure_object(dict)


cli.add_command(serve_handler, name='serve')
cli.add_command(refresh_handler, name='refresh')
cli.add_command(query_handler, name='query')
cli.add_command(languages_handler, name='languages')
cli.add_command(stats_handler, name='stats')
cli.add_command(prune_handler, name='prune')


def main():
    cli()

if __name__ == "__main__":
    main()

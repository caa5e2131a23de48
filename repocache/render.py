"""
Rendering functions for repocache output.

This module handles all pretty-printing and table formatting.
Commands produce plain dicts, this module makes them human-readable.
"""

from rich.table import Table
from rich.console import Console
from rich import box
from typing import List, Dict, Any, Optional

console = Console()

POPULARITY_STYLES = {
    'Legendary': 'bold yellow',
    'Famous': 'magenta',
    'Rising': 'green',
}


def render_table(headers: List[str], rows: List[List[str]], title: Optional[str] = None) -> None:
    """
    Render a generic table with the given headers and rows.

    Args:
        headers: List of column headers
        rows: List of rows, where each row is a list of values
        title: Optional table title
    """
    if not rows:
        console.print("[yellow]No data to display.[/yellow]")
        return

    table = Table(
        title=title,
        box=box.ROUNDED,
        show_header=True,
        header_style="bold magenta"
    )

    for header in headers:
        table.add_column(header)

    for row in rows:
        table.add_row(*[str(val) for val in row])

    console.print(table)


def render_repository_table(page: Dict[str, Any], cached: Optional[bool] = None) -> None:
    """
    Render one page of cached repositories as a pretty table.

    Args:
        page: PagedResult dictionary (items, total, page, perPage, hasMore)
        cached: Whether the query key was fresh when read
    """
    items = page.get('items', [])
    if not items:
        console.print("[yellow]No repositories found.[/yellow]")
        return

    table = Table(
        title="Repositories",
        box=box.ROUNDED,
        show_header=True,
        header_style="bold magenta"
    )

    table.add_column("Repository", style="cyan")
    table.add_column("Language", style="blue")
    table.add_column("Stars", justify="right")
    table.add_column("Forks", justify="right")
    table.add_column("Difficulty", style="yellow")
    table.add_column("Pushed", style="dim")
    table.add_column("Description", style="dim", overflow="ellipsis", max_width=50)

    for repo in items:
        popularity = repo.get('popularity', 'Rising')
        style = POPULARITY_STYLES.get(popularity, 'green')
        pushed = (repo.get('pushed_at') or '')[:10]
        table.add_row(
            repo.get('full_name') or f"{repo['owner']}/{repo['name']}",
            repo.get('language') or '-',
            f"[{style}]{repo.get('stars', 0):,}[/{style}]",
            f"{repo.get('forks', 0):,}",
            repo.get('difficulty') or '-',
            pushed or '-',
            repo.get('description') or '',
        )

    console.print(table)

    # Paging footer
    total = page.get('total', 0)
    start = (page['page'] - 1) * page['perPage'] + 1
    end = start + len(items) - 1
    footer = f"  Showing {start}-{end} of {total}"
    if page.get('hasMore'):
        footer += f" (next: --page {page['page'] + 1})"
    if cached is False:
        footer += " [yellow](stale, refresh scheduled)[/yellow]"
    console.print(footer)


def render_cache_stats_table(stats: Dict[str, Any]) -> None:
    """
    Render cache statistics as a formatted table.

    Args:
        stats: Dictionary from CacheService.stats()
    """
    overview_table = Table(title="Cache Overview", box=box.ROUNDED)
    overview_table.add_column("Metric", style="bold cyan")
    overview_table.add_column("Value", justify="right")

    overview_table.add_row("Repositories", str(stats.get('total_repositories', 0)))
    overview_table.add_row("Topics", str(stats.get('total_topics', 0)))
    overview_table.add_row("Favorites", str(stats.get('total_favorites', 0)))
    if stats.get('needs_refresh'):
        overview_table.add_row("Needs Refresh", "[red]yes[/red]")
    else:
        overview_table.add_row("Needs Refresh", "[green]no[/green]")
    if stats.get('last_checked'):
        overview_table.add_row("Checked At", stats['last_checked'])

    console.print(overview_table)

    if stats.get('per_query_last_refresh'):
        console.print()
        query_table = Table(title="Refreshes by Query", box=box.SIMPLE)
        query_table.add_column("Query", style="bold")
        query_table.add_column("Last Refresh", justify="right")

        for query_key, refreshed_at in sorted(stats['per_query_last_refresh'].items()):
            query_table.add_row(query_key, refreshed_at)

        console.print(query_table)


def print_refresh_summary(result: Optional[Dict[str, Any]], query: str) -> None:
    """Print a one-block summary of a refresh."""
    if result is None:
        console.print(f"[green]'{query}' is fresh, nothing to do.[/green]")
        return

    console.print(f"\n[bold]Refreshed '{result['queryKey']}':[/bold]")
    console.print(f"  Stored: {len(result['items'])} repositories")
    console.print(f"  Matches on GitHub: {result['total']:,}")
    console.print(f"  Page: {result['page']} ({result['perPage']} per page)")
    if result.get('fetchedAt'):
        console.print(f"  Fetched at: {result['fetchedAt']}")

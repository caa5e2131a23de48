"""
Common CLI utilities and decorators for consistent command behavior.
"""

import json
import sys
from datetime import timedelta
from functools import wraps

import click

from .config import load_config, configure_logging
from .errors import RepoCacheError
from .exit_codes import INTERRUPTED, get_exit_code_for_exception
from .services import CacheService


def handle_errors(func):
    """
    Decorator that turns repocache errors into a one-line stderr message
    and the matching exit code.
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except KeyboardInterrupt:
            click.echo("Interrupted by user", err=True)
            sys.exit(INTERRUPTED)
        except click.ClickException:
            raise
        except RepoCacheError as e:
            click.echo(f"Error: {e.message} ({type(e).__name__})", err=True)
            sys.exit(get_exit_code_for_exception(e))

    return wrapper


def build_service(ctx: click.Context) -> CacheService:
    """
    The CacheService for this invocation.

    Tests (and embedders) may place a ready service on `ctx.obj['service']`;
    otherwise one is built from the loaded config and closed with the context.
    """
    obj = ctx.ensure_object(dict)
    if obj.get('service') is None:
        config = obj.get('config') or load_config()
        configure_logging(config)
        service = CacheService.from_config(config)
        ctx.call_on_close(service.close)
        obj['service'] = service
    return obj['service']


def output_jsonl(items) -> None:
    """Print dicts one per line."""
    for item in items:
        print(json.dumps(item, ensure_ascii=False), flush=True)


def parse_duration(value: str) -> timedelta:
    """Parse a duration like '12h', '7d', '2w', '3m' or '1y'."""
    units = {
        'h': timedelta(hours=1),
        'd': timedelta(days=1),
        'w': timedelta(weeks=1),
        # Approximate months and years
        'm': timedelta(days=30),
        'y': timedelta(days=365),
    }
    value = (value or '').strip().lower()
    if len(value) < 2 or value[-1] not in units or not value[:-1].isdigit():
        raise click.BadParameter(
            f"expected a duration like 30d, got '{value}'", param_hint="'--older-than'"
        )
    return int(value[:-1]) * units[value[-1]]



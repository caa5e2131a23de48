"""
Serve command for repocache.

Runs the HTTP API with uvicorn.
"""

from typing import Optional

import click
import uvicorn

from ..api import create_app
from ..config import load_config, configure_logging


@click.command('serve')
@click.option('--host', default=None, help='Bind address (default: server.host from config)')
@click.option('--port', type=int, default=None, help='Port (default: server.port from config)')
def serve_handler(host: Optional[str], port: Optional[int]):
    """
    Serve the cache over HTTP.

    \b
    Endpoints:
        GET  /repos?q=&language=&difficulty=&sort=&order=&page=&perPage=
        POST /repos              {"query": ..., "page": ..., "perPage": ...}
        GET  /repos/languages
        GET  /repos/stats
        GET  /repos/{owner}/{name}/languages
        GET  /health
    """
    config = load_config()
    configure_logging(config)
    server = config.get('server', {})

    app = create_app(config=config)
    uvicorn.run(
        app,
        host=host or server.get('host', '127.0.0.1'),
        port=port or int(server.get('port', 8000)),
        log_level=str(config.get('logging', {}).get('level', 'info')).lower(),
    )

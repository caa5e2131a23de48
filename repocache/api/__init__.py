"""
HTTP API for repocache.

Exposes the cache service over FastAPI:
- GET  /repos                          read from the cache
- POST /repos                          force a refresh
- GET  /repos/languages                distinct languages
- GET  /repos/stats                    cache statistics
- GET  /repos/{owner}/{name}/languages per-repository languages
- GET  /health                         liveness and rate-limit state
"""

from .app import create_app

__all__ = ['create_app']

"""
FastAPI application for repocache.

The cache service is built once per app (or injected) and kept on
`app.state.service`; routes reach it through a dependency.
"""
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .. import __version__
from ..config import load_config
from ..errors import RepoCacheError, get_status_code
from ..services import CacheService
from .routers import health, repos

logger = logging.getLogger(__name__)


def create_app(service: Optional[CacheService] = None, config: Optional[Dict[str, Any]] = None) -> FastAPI:
    """
    Build the HTTP app.

    Args:
        service: Cache service to serve from. If None, one is built from
            config on startup and closed on shutdown.
        config: Configuration used when building the service
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = None
        if getattr(app.state, "service", None) is None:
            owned = CacheService.from_config(config or load_config())
            app.state.service = owned
        try:
            yield
        finally:
            if owned is not None:
                owned.close()
                app.state.service = None

    app = FastAPI(title="repocache", version=__version__, lifespan=lifespan)
    app.state.service = service

    @app.exception_handler(RepoCacheError)
    async def repocache_exception_handler(request: Request, exc: RepoCacheError):
        """Map typed cache and upstream errors to JSON failures"""
        status_code = get_status_code(exc)
        log = logger.error if status_code >= 500 else logger.info
        log(f"{request.method} {request.url.path} failed: {exc.__class__.__name__}: {exc.message}")
        return JSONResponse(
            status_code=status_code,
            content={
                "success": False,
                "error": exc.__class__.__name__,
                "message": exc.message,
                "details": exc.details,
            },
        )

    app.include_router(repos.router, tags=["Repos"])
    app.include_router(health.router, tags=["Health"])
    return app

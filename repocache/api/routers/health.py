"""Health router - liveness and upstream rate-limit state"""
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ... import __version__
from ...services import CacheService
from .repos import get_service

router = APIRouter()


@router.get("/health")
def health_check(service: CacheService = Depends(get_service)):
    """Health check endpoint"""
    status = service.client.rate_limit_status
    return JSONResponse(
        {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": __version__,
            "rateLimit": status.to_dict() if status else None,
            "backoffSeconds": service.client.backoff_remaining,
        }
    )

"""Repos router - handles the /repos/* endpoints"""
import logging

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from ...domain import RepoFilters, ALL, DEFAULT_PER_PAGE
from ...services import CacheService
from ..models import RefreshRequest

logger = logging.getLogger(__name__)

router = APIRouter()


def get_service(request: Request) -> CacheService:
    return request.app.state.service


@router.get("/repos")
def list_repositories(
    q: str = "",
    language: str = ALL,
    difficulty: str = ALL,
    sort: str = "stars",
    order: str = "desc",
    page: int = 1,
    per_page: int = Query(DEFAULT_PER_PAGE, alias="perPage"),
    service: CacheService = Depends(get_service),
):
    """Filtered, sorted, paginated repositories from the cache"""
    filters = RepoFilters(
        text=q,
        language=language,
        difficulty=difficulty,
        sort=sort,
        order=order,
        page=page,
        per_page=per_page,
    )
    result = service.read(filters)
    return JSONResponse({"success": True, "data": result.page.to_dict(), "cached": result.cached})


@router.post("/repos")
def refresh_repositories(body: RefreshRequest, service: CacheService = Depends(get_service)):
    """Fetch a page from GitHub now and store it"""
    result = service.force_refresh(body.query, page=body.page, per_page=body.per_page)
    return JSONResponse(
        {"success": True, "data": result.to_dict(), "message": "Data refreshed successfully"}
    )


@router.get("/repos/languages")
def list_languages(service: CacheService = Depends(get_service)):
    """Sorted distinct primary languages in the cache"""
    return JSONResponse({"success": True, "data": service.languages()})


@router.get("/repos/stats")
def get_cache_stats(q: str = "", service: CacheService = Depends(get_service)):
    """Cache statistics and whether a refresh is due"""
    stats = service.stats(q or None)
    return JSONResponse(
        {
            "success": True,
            "data": {
                "totalRepositories": stats["total_repositories"],
                "totalTopics": stats["total_topics"],
                "totalFavorites": stats["total_favorites"],
                "perQueryLastRefresh": stats["per_query_last_refresh"],
                "needsRefresh": stats["needs_refresh"],
                "lastChecked": stats["last_checked"],
            },
        }
    )


@router.get("/repos/{owner}/{name}/languages")
def get_repository_languages(owner: str, name: str, service: CacheService = Depends(get_service)):
    """Language byte counts for one repository, straight from GitHub"""
    return JSONResponse({"success": True, "data": service.repository_languages(owner, name)})

"""
DocPortal — Search Routes
===========================

What:  GET /api/search?q=&version=  and  GET /api/search/suggestions?q=
How:   Thin wrappers over SearchService.

Failure behaviour:
    - search: engine down → 503 (SearchServiceError / CircuitBreakerOpenError)
    - suggestions: engine down → empty list; type-ahead degrades silently
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query

from docportal.dependencies import require_user
from docportal.schemas.common import ErrorResponse
from docportal.schemas.search import SearchResponse, SuggestionsResponse
from docportal.services.search_service import search_service

router = APIRouter(prefix="/api/search", tags=["Search"], dependencies=[Depends(require_user)])


@router.get(
    "",
    response_model=SearchResponse,
    responses={503: {"description": "Search engine unavailable", "model": ErrorResponse}},
    summary="Full-text search across documents",
)
async def search(
    q: str = Query(default="", max_length=200, description="Search terms"),
    version: Optional[uuid.UUID] = Query(default=None, description="Restrict to a version id"),
    limit: int = Query(default=50, ge=1, le=100),
) -> SearchResponse:
    results = await search_service.search(q, version_id=str(version) if version else None, limit=limit)
    return SearchResponse(query=q, results=results, count=len(results))


@router.get("/suggestions", response_model=SuggestionsResponse, summary="Title suggestions")
async def suggestions(
    q: str = Query(default="", max_length=200),
    limit: int = Query(default=5, ge=1, le=20),
) -> SuggestionsResponse:
    return SuggestionsResponse(query=q, suggestions=await search_service.suggest(q, limit=limit))

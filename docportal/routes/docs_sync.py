"""
DocPortal — Docs Sync Routes
==============================

What:  POST /api/docs/sync[?reindex=true] imports the markdown tree from disk;
       POST /api/docs/reindex rebuilds the search index from the database.
Who:   The "Sync" button on the admin dashboard; administrators only.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from docportal.database import get_db_session
from docportal.dependencies import require_admin
from docportal.schemas.common import ErrorResponse
from docportal.schemas.docs import ReindexResponse, SyncStats
from docportal.services.sync_service import sync_service

router = APIRouter(prefix="/api/docs", tags=["Sync"], dependencies=[Depends(require_admin)])


@router.post("/sync", response_model=SyncStats, summary="Import the docs directory")
async def sync_docs(
    reindex: bool = Query(default=False, description="Rebuild the search index afterwards"),
    db: AsyncSession = Depends(get_db_session),
) -> SyncStats:
    return await sync_service.scan_docs_directory(db, reindex=reindex)


@router.post(
    "/reindex",
    response_model=ReindexResponse,
    responses={503: {"description": "Search engine unavailable", "model": ErrorResponse}},
    summary="Rebuild the search index",
)
async def reindex(db: AsyncSession = Depends(get_db_session)) -> ReindexResponse:
    return ReindexResponse(indexed=await sync_service.reindex_all(db))

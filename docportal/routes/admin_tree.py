"""
DocPortal — Admin Tree Routes (versions, modules, chapters)
=============================================================

What:  CRUD for the three directory levels of the documentation tree.
Who:   The admin dashboard; administrators only.

Route Inventory:
    GET    /api/admin/versions            all versions with module counts
    POST   /api/admin/versions            create (directory created)
    PUT    /api/admin/versions/{id}       display name / active flag / order
    POST   /api/admin/versions/reorder    renumber by semantic version name
    POST   /api/admin/modules             create
    GET    /api/admin/modules/{id}        module with chapters and documents
    PUT    /api/admin/modules/{id}        rename / display name / order
    DELETE /api/admin/modules/{id}        only when no document exists beneath
    POST   /api/admin/chapters            (same shape as modules)
    GET    /api/admin/chapters/{id}
    PUT    /api/admin/chapters/{id}
    DELETE /api/admin/chapters/{id}
"""

import uuid
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from docportal.database import get_db_session
from docportal.dependencies import require_admin
from docportal.models.docs import Chapter
from docportal.schemas.common import ErrorResponse, SuccessResponse
from docportal.schemas.docs import (
    ChapterCreate,
    ChapterDetail,
    ChapterNode,
    ChapterUpdate,
    ModuleCreate,
    ModuleDetail,
    ModuleUpdate,
    NodeRef,
    VersionCreate,
    VersionSummary,
    VersionUpdate,
)
from docportal.services.tree_service import tree_service

router = APIRouter(prefix="/api/admin", tags=["Admin"], dependencies=[Depends(require_admin)])

_ERRORS = {
    400: {"description": "Invalid input or duplicate name", "model": ErrorResponse},
    404: {"description": "Parent or item not found", "model": ErrorResponse},
}


def _chapter_detail(chapter: Chapter) -> ChapterDetail:
    node = ChapterNode.model_validate(chapter)
    return ChapterDetail(
        **node.model_dump(),
        module_id=chapter.module_id,
        module=NodeRef.model_validate(chapter.module),
        version=NodeRef.model_validate(chapter.module.version),
    )


# ── Versions ──────────────────────────────────────────────────────────────

@router.get("/versions", response_model=List[VersionSummary], summary="List all versions")
async def list_versions(db: AsyncSession = Depends(get_db_session)) -> List[VersionSummary]:
    return await tree_service.list_versions(db)


@router.post(
    "/versions",
    response_model=VersionSummary,
    status_code=status.HTTP_201_CREATED,
    responses=_ERRORS,
    summary="Create a version",
)
async def create_version(
    body: VersionCreate,
    db: AsyncSession = Depends(get_db_session),
) -> VersionSummary:
    version = await tree_service.create_version(db, body)
    return VersionSummary.model_validate(version)


@router.put("/versions/{version_id}", response_model=VersionSummary, responses=_ERRORS)
async def update_version(
    version_id: uuid.UUID,
    body: VersionUpdate,
    db: AsyncSession = Depends(get_db_session),
) -> VersionSummary:
    version = await tree_service.update_version(db, version_id, body)
    return VersionSummary.model_validate(version)


@router.post(
    "/versions/reorder",
    response_model=List[VersionSummary],
    summary="Order versions by their numeric parts (v1.2 before v1.10)",
)
async def reorder_versions(db: AsyncSession = Depends(get_db_session)) -> List[VersionSummary]:
    versions = await tree_service.reorder_versions_semantically(db)
    return [VersionSummary.model_validate(v) for v in versions]


# ── Modules ───────────────────────────────────────────────────────────────

@router.post(
    "/modules",
    response_model=ModuleDetail,
    status_code=status.HTTP_201_CREATED,
    responses=_ERRORS,
)
async def create_module(
    body: ModuleCreate,
    db: AsyncSession = Depends(get_db_session),
) -> ModuleDetail:
    module = await tree_service.create_module(db, body)
    return ModuleDetail.model_validate(module)


@router.get("/modules/{module_id}", response_model=ModuleDetail, responses=_ERRORS)
async def get_module(
    module_id: uuid.UUID,
    db: AsyncSession = Depends(get_db_session),
) -> ModuleDetail:
    return ModuleDetail.model_validate(await tree_service.get_module(db, module_id))


@router.put("/modules/{module_id}", response_model=ModuleDetail, responses=_ERRORS)
async def update_module(
    module_id: uuid.UUID,
    body: ModuleUpdate,
    db: AsyncSession = Depends(get_db_session),
) -> ModuleDetail:
    module = await tree_service.update_module(db, module_id, body)
    return ModuleDetail.model_validate(module)


@router.delete("/modules/{module_id}", response_model=SuccessResponse, responses=_ERRORS)
async def delete_module(
    module_id: uuid.UUID,
    db: AsyncSession = Depends(get_db_session),
) -> SuccessResponse:
    await tree_service.delete_module(db, module_id)
    return SuccessResponse(message="Module deleted")


# ── Chapters ──────────────────────────────────────────────────────────────

@router.post(
    "/chapters",
    response_model=ChapterDetail,
    status_code=status.HTTP_201_CREATED,
    responses=_ERRORS,
)
async def create_chapter(
    body: ChapterCreate,
    db: AsyncSession = Depends(get_db_session),
) -> ChapterDetail:
    return _chapter_detail(await tree_service.create_chapter(db, body))


@router.get("/chapters/{chapter_id}", response_model=ChapterDetail, responses=_ERRORS)
async def get_chapter(
    chapter_id: uuid.UUID,
    db: AsyncSession = Depends(get_db_session),
) -> ChapterDetail:
    return _chapter_detail(await tree_service.get_chapter(db, chapter_id))


@router.put("/chapters/{chapter_id}", response_model=ChapterDetail, responses=_ERRORS)
async def update_chapter(
    chapter_id: uuid.UUID,
    body: ChapterUpdate,
    db: AsyncSession = Depends(get_db_session),
) -> ChapterDetail:
    return _chapter_detail(await tree_service.update_chapter(db, chapter_id, body))


@router.delete("/chapters/{chapter_id}", response_model=SuccessResponse, responses=_ERRORS)
async def delete_chapter(
    chapter_id: uuid.UUID,
    db: AsyncSession = Depends(get_db_session),
) -> SuccessResponse:
    await tree_service.delete_chapter(db, chapter_id)
    return SuccessResponse(message="Chapter deleted")

"""
DocPortal — Reader Version Routes
===================================

What:  GET /api/versions (active versions) and GET /api/versions/{name}
       (one version's full navigation tree).
Who:   The version selector and sidebar; any signed-in user.
"""

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from docportal.database import get_db_session
from docportal.dependencies import require_user
from docportal.schemas.common import ErrorResponse
from docportal.schemas.docs import VersionSummary, VersionTree
from docportal.services.tree_service import tree_service

router = APIRouter(prefix="/api/versions", tags=["Versions"], dependencies=[Depends(require_user)])


@router.get("", response_model=List[VersionSummary], summary="List active versions")
async def list_versions(db: AsyncSession = Depends(get_db_session)) -> List[VersionSummary]:
    versions = await tree_service.list_active_versions(db)
    return [VersionSummary.model_validate(v) for v in versions]


@router.get(
    "/{name}",
    response_model=VersionTree,
    responses={404: {"description": "Unknown or inactive version", "model": ErrorResponse}},
    summary="Version tree: modules → chapters → documents",
)
async def get_version(name: str, db: AsyncSession = Depends(get_db_session)) -> VersionTree:
    version = await tree_service.get_version_tree(db, name)
    return VersionTree.model_validate(version)

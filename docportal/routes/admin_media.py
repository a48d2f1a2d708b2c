"""
DocPortal — Admin Media Library Routes
========================================

What:  List, upload and delete media files stored under DOCS_ROOT.
How:   Multipart upload (`file` + optional target `path`); all validation
       (size, MIME allow-list, magic bytes, path containment) lives in
       StorageService.

    GET    /api/admin/media?path=&type=     newest first, with totals
    POST   /api/admin/media/upload          multipart: file, path
    DELETE /api/admin/media/delete?path=    markdown files refused
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status

from docportal.dependencies import require_admin
from docportal.schemas.common import ErrorResponse, SuccessResponse
from docportal.schemas.media import MediaFileResponse, MediaListResponse, MediaUploadResponse
from docportal.services.storage_service import storage_service

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/admin/media",
    tags=["Admin Media"],
    dependencies=[Depends(require_admin)],
)


@router.get("", response_model=MediaListResponse, summary="List media files")
async def list_media(
    path: str = Query(default="", description="Sub-directory of the docs root"),
    type: Optional[str] = Query(default=None, description="image, video, document or other"),
) -> MediaListResponse:
    files = storage_service.list_media(path, type)
    return MediaListResponse(
        files=[MediaFileResponse.model_validate(f) for f in files],
        total_size=sum(f.size for f in files),
        count=len(files),
    )


@router.post(
    "/upload",
    response_model=MediaUploadResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"description": "Missing, oversized or disallowed file", "model": ErrorResponse}},
    summary="Upload a media file",
)
async def upload_media(
    file: UploadFile = File(..., description="Media file"),
    path: str = Form(default="", description="Target directory under the docs root"),
) -> MediaUploadResponse:
    # Reject oversized uploads from the spooled size before reading them into memory
    if file.size is not None:
        storage_service.validate_size(file.size)
    content = await file.read()
    stored = await storage_service.save_media(
        filename=file.filename or "",
        content=content,
        target_path=path,
        declared_type=file.content_type,
    )
    return MediaUploadResponse(file=MediaFileResponse.model_validate(stored))


@router.delete(
    "/delete",
    response_model=SuccessResponse,
    responses={
        400: {"description": "Path missing or markdown file", "model": ErrorResponse},
        404: {"description": "File not found", "model": ErrorResponse},
    },
)
async def delete_media(path: Optional[str] = Query(default=None)) -> SuccessResponse:
    storage_service.delete_media(path)
    return SuccessResponse(message="File deleted successfully")

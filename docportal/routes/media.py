"""
DocPortal — Media Serving Route
=================================

What:  GET /docs-media/{path} serves images, videos and attachments referenced
       from documents.
Why:   DOCS_ROOT is not a static directory: markdown sources must stay
       private and only signed-in users may fetch media.
How:   StorageService.media_file() enforces containment and refuses markdown;
       the content type comes from the extension map.

Caching:
    public, max-age=31536000, immutable. Uploads never overwrite an existing
    name (collisions get _1, _2 suffixes), so a URL always means the same bytes.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse

from docportal.dependencies import require_user
from docportal.schemas.common import ErrorResponse
from docportal.services.storage_service import content_type_for, storage_service

router = APIRouter(tags=["Media"])

CACHE_CONTROL = "public, max-age=31536000, immutable"


@router.get(
    "/docs-media/{file_path:path}",
    responses={
        200: {"description": "Media file"},
        403: {"description": "Path outside the docs root", "model": ErrorResponse},
        404: {"description": "File not found", "model": ErrorResponse},
    },
    dependencies=[Depends(require_user)],
    summary="Serve a media file",
)
async def serve_media(file_path: str) -> FileResponse:
    path = storage_service.media_file(file_path)
    return FileResponse(
        path=str(path),
        media_type=content_type_for(path),
        headers={"Cache-Control": CACHE_CONTROL},
    )

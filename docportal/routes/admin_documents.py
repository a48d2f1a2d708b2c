"""
DocPortal — Admin Document & Markdown Routes
==============================================

What:  Document CRUD for the editor, plus the markdown helpers it calls
       while editing (preview, HTML → markdown, validation).
Who:   The admin dashboard and editor page; administrators only.

Route Inventory:
    GET    /api/admin/documents[?version_id=]   structure overview
    POST   /api/admin/documents/create          new document (file + row + index)
    GET    /api/admin/documents/{id}            document with ancestors
    PUT    /api/admin/documents/{id}            save from the editor
    DELETE /api/admin/documents/{id}            file, index entry and row
    POST   /api/admin/markdown/process          markdown → {html, data}
    POST   /api/admin/markdown/convert          editor HTML → markdown
    POST   /api/admin/markdown/validate         frontmatter + link sanity checks
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from docportal.database import get_db_session
from docportal.dependencies import require_admin
from docportal.exceptions import ValidationError
from docportal.models.user import User
from docportal.schemas.common import ErrorResponse, SuccessResponse
from docportal.schemas.docs import (
    DocumentCreate,
    DocumentDetail,
    DocumentStructure,
    DocumentUpdate,
    MarkdownConvertRequest,
    MarkdownConvertResponse,
    MarkdownProcessRequest,
    MarkdownProcessResponse,
    MarkdownValidateRequest,
    MarkdownValidateResponse,
)
from docportal.services import markdown_service as md
from docportal.services.document_service import document_service

router = APIRouter(prefix="/api/admin", tags=["Admin"], dependencies=[Depends(require_admin)])

_ERRORS = {
    400: {"description": "Invalid input or duplicate filename", "model": ErrorResponse},
    404: {"description": "Document or chapter not found", "model": ErrorResponse},
}


# ── Documents ─────────────────────────────────────────────────────────────

@router.get("/documents", response_model=DocumentStructure, summary="Documentation structure")
async def list_documents(
    version_id: Optional[uuid.UUID] = Query(
        default=None,
        description="Return this version's full tree instead of the version list",
    ),
    db: AsyncSession = Depends(get_db_session),
) -> DocumentStructure:
    return await document_service.list_structure(db, version_id)


@router.post(
    "/documents/create",
    response_model=DocumentDetail,
    status_code=status.HTTP_201_CREATED,
    responses=_ERRORS,
    summary="Create a document",
)
async def create_document(
    body: DocumentCreate,
    user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
) -> DocumentDetail:
    return await document_service.create_document(db, body, user=user)


@router.get("/documents/{document_id}", response_model=DocumentDetail, responses=_ERRORS)
async def get_document(
    document_id: uuid.UUID,
    db: AsyncSession = Depends(get_db_session),
) -> DocumentDetail:
    return await document_service.get_document_by_id(db, document_id)


@router.put("/documents/{document_id}", response_model=DocumentDetail, responses=_ERRORS)
async def update_document(
    document_id: uuid.UUID,
    body: DocumentUpdate,
    user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
) -> DocumentDetail:
    return await document_service.update_document(db, document_id, body, user=user)


@router.delete("/documents/{document_id}", response_model=SuccessResponse, responses=_ERRORS)
async def delete_document(
    document_id: uuid.UUID,
    db: AsyncSession = Depends(get_db_session),
) -> SuccessResponse:
    await document_service.delete_document(db, document_id)
    return SuccessResponse(message="Document deleted successfully")


# ── Markdown helpers ──────────────────────────────────────────────────────

@router.post("/markdown/process", response_model=MarkdownProcessResponse, summary="Preview markdown")
async def process_markdown(body: MarkdownProcessRequest) -> MarkdownProcessResponse:
    if not body.content:
        raise ValidationError(message="Content is required", field="content")
    rendered = md.render_markdown(body.content)
    return MarkdownProcessResponse(html=rendered.html, data=rendered.meta)


@router.post("/markdown/convert", response_model=MarkdownConvertResponse, summary="HTML → markdown")
async def convert_html(body: MarkdownConvertRequest) -> MarkdownConvertResponse:
    markdown = md.html_to_markdown(md.sanitize_html(body.html))
    if body.preserve_frontmatter:
        markdown = md.build_frontmatter_document(
            markdown, body.title, body.description, body.order
        )
    return MarkdownConvertResponse(markdown=markdown)


@router.post("/markdown/validate", response_model=MarkdownValidateResponse)
async def validate_markdown(body: MarkdownValidateRequest) -> MarkdownValidateResponse:
    is_valid, errors = md.validate_markdown(body.content)
    return MarkdownValidateResponse(is_valid=is_valid, errors=errors)

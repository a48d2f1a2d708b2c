"""
DocPortal — Server-Rendered Pages
===================================

What:  The HTML side of the portal: sign-in, the documentation reader, search
       results and the admin screens.
How:   Jinja2 templates from docportal/templates. Pages depend on require_user
       / require_admin like the API; the exception handlers in main.py turn
       an AuthenticationError on a page into a redirect to /login.
       Admin screens submit their forms to the JSON API through
       static/admin.js.

Page Inventory:
    /                       → /docs
    /login (GET, POST)      sign-in form
    /logout                 clear session → /login
    /docs                   → latest active version, or "no documentation"
    /docs/{v}               version overview (modules)
    /docs/{v}/{m}           module overview (chapters)
    /docs/{v}/{m}/{c}       chapter overview (documents)
    /docs/{v}/{m}/{c}/{d}   document with sidebar, TOC and previous/next
    /search?q=              search results
    /admin                  dashboard: tree management, sync, reindex
    /admin/editor/{id}      markdown editor with preview
    /admin/media            media library

Missing versions and documents redirect to /docs instead of showing a 404,
so stale bookmarks land somewhere useful.
"""

import logging
import uuid
from pathlib import Path
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, Form, Query, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from sqlalchemy.ext.asyncio import AsyncSession

from docportal import __version__
from docportal.database import get_db_session
from docportal.dependencies import SESSION_USER_KEY, get_current_user, require_admin, require_user
from docportal.exceptions import AuthenticationError, DocPortalError, NotFoundError
from docportal.models.docs import Version
from docportal.models.user import User
from docportal.services.auth_service import auth_service
from docportal.services.document_service import document_service
from docportal.services.search_service import search_service
from docportal.services.storage_service import MEDIA_CATEGORIES, storage_service
from docportal.services.tree_service import tree_service

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"
templates = Jinja2Templates(directory=str(TEMPLATES_DIR))
templates.env.globals["app_version"] = __version__


def _filesize(size: int) -> str:
    for unit in ("B", "KB", "MB"):
        if size < 1024:
            return f"{size:.0f} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} GB"


templates.env.filters["filesize"] = _filesize

router = APIRouter(include_in_schema=False)


def _safe_next(target: Optional[str]) -> str:
    # Only same-site paths; "//host" would be protocol-relative
    if target and target.startswith("/") and not target.startswith("//"):
        return target
    return "/docs"


def login_redirect(request: Request) -> RedirectResponse:
    target = request.url.path
    if request.url.query:
        target = f"{target}?{request.url.query}"
    return RedirectResponse(f"/login?next={quote(target)}", status_code=303)


def _find(items, name: str):
    return next((item for item in items if item.name == name), None)


async def _reader_context(db: AsyncSession, user: User, version: Version) -> dict:
    return {
        "user": user,
        "versions": await tree_service.list_active_versions(db),
        "version": version,
    }


# ── Sign-in ───────────────────────────────────────────────────────────────

@router.get("/")
async def home() -> RedirectResponse:
    return RedirectResponse("/docs", status_code=303)


@router.get("/login", response_class=HTMLResponse)
async def login_page(
    request: Request,
    next: Optional[str] = Query(default=None),
    user: Optional[User] = Depends(get_current_user),
):
    if user is not None:
        return RedirectResponse(_safe_next(next), status_code=303)
    return templates.TemplateResponse(
        request, "login.html", {"next": _safe_next(next), "error": None, "email": ""}
    )


@router.post("/login", response_class=HTMLResponse)
async def login_submit(
    request: Request,
    email: str = Form(...),
    password: str = Form(...),
    next: str = Form(default="/docs"),
    db: AsyncSession = Depends(get_db_session),
):
    try:
        user = await auth_service.authenticate(db, email, password)
    except AuthenticationError as e:
        return templates.TemplateResponse(
            request,
            "login.html",
            {"next": _safe_next(next), "error": e.message, "email": email},
            status_code=401,
        )
    request.session.clear()
    request.session[SESSION_USER_KEY] = str(user.id)
    return RedirectResponse(_safe_next(next), status_code=303)


@router.get("/logout")
async def logout(request: Request) -> RedirectResponse:
    request.session.clear()
    return RedirectResponse("/login", status_code=303)


# ── Reader ────────────────────────────────────────────────────────────────

@router.get("/docs", response_class=HTMLResponse)
async def docs_index(
    request: Request,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db_session),
):
    versions = await tree_service.list_active_versions(db)
    if versions:
        return RedirectResponse(f"/docs/{versions[-1].name}", status_code=303)
    return templates.TemplateResponse(request, "no_docs.html", {"user": user})


@router.get("/docs/{version_name}", response_class=HTMLResponse)
async def version_page(
    request: Request,
    version_name: str,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db_session),
):
    try:
        version = await tree_service.get_version_tree(db, version_name)
    except NotFoundError:
        return RedirectResponse("/docs", status_code=303)
    context = await _reader_context(db, user, version)
    return templates.TemplateResponse(request, "version.html", context)


@router.get("/docs/{version_name}/{module_name}", response_class=HTMLResponse)
async def module_page(
    request: Request,
    version_name: str,
    module_name: str,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db_session),
):
    try:
        version = await tree_service.get_version_tree(db, version_name)
    except NotFoundError:
        return RedirectResponse("/docs", status_code=303)
    module = _find(version.modules, module_name)
    if module is None:
        return RedirectResponse(f"/docs/{version.name}", status_code=303)
    context = await _reader_context(db, user, version)
    context["module"] = module
    return templates.TemplateResponse(request, "module.html", context)


@router.get("/docs/{version_name}/{module_name}/{chapter_name}", response_class=HTMLResponse)
async def chapter_page(
    request: Request,
    version_name: str,
    module_name: str,
    chapter_name: str,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db_session),
):
    try:
        version = await tree_service.get_version_tree(db, version_name)
    except NotFoundError:
        return RedirectResponse("/docs", status_code=303)
    module = _find(version.modules, module_name)
    chapter = _find(module.chapters, chapter_name) if module else None
    if chapter is None:
        return RedirectResponse(f"/docs/{version.name}", status_code=303)
    context = await _reader_context(db, user, version)
    context.update(module=module, chapter=chapter)
    return templates.TemplateResponse(request, "chapter.html", context)


@router.get(
    "/docs/{version_name}/{module_name}/{chapter_name}/{slug}",
    response_class=HTMLResponse,
)
async def document_page(
    request: Request,
    version_name: str,
    module_name: str,
    chapter_name: str,
    slug: str,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db_session),
):
    try:
        version = await tree_service.get_version_tree(db, version_name)
        page = await document_service.get_document(
            db, version_name, module_name, chapter_name, slug, version=version
        )
    except NotFoundError:
        return RedirectResponse("/docs", status_code=303)
    context = await _reader_context(db, user, version)
    context.update(page=page, document=page.document)
    return templates.TemplateResponse(request, "document.html", context)


@router.get("/search", response_class=HTMLResponse)
async def search_page(
    request: Request,
    q: str = Query(default="", max_length=200),
    version: Optional[uuid.UUID] = Query(default=None),
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db_session),
):
    results, error = [], None
    try:
        results = await search_service.search(q, version_id=str(version) if version else None)
    except DocPortalError as e:
        error = e.message
    return templates.TemplateResponse(
        request,
        "search.html",
        {
            "user": user,
            "versions": await tree_service.list_active_versions(db),
            "query": q,
            "selected_version": version,
            "results": results,
            "error": error,
        },
    )


# ── Admin ─────────────────────────────────────────────────────────────────

@router.get("/admin", response_class=HTMLResponse)
async def admin_dashboard(
    request: Request,
    version_id: Optional[uuid.UUID] = Query(default=None),
    user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    versions = await tree_service.list_versions(db)
    selected = None
    if version_id is None and versions:
        version_id = versions[0].id
    if version_id is not None:
        try:
            selected = await tree_service.get_version_tree_by_id(db, version_id)
        except NotFoundError:
            selected = None
    return templates.TemplateResponse(
        request,
        "admin.html",
        {"user": user, "versions": versions, "selected": selected},
    )


@router.get("/admin/editor/{document_id}", response_class=HTMLResponse)
async def editor_page(
    request: Request,
    document_id: uuid.UUID,
    user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    try:
        document = await document_service.get_document_by_id(db, document_id)
    except NotFoundError:
        return RedirectResponse("/admin", status_code=303)
    return templates.TemplateResponse(request, "editor.html", {"user": user, "document": document})


@router.get("/admin/media", response_class=HTMLResponse)
async def media_page(
    request: Request,
    path: str = Query(default=""),
    type: Optional[str] = Query(default=None),
    user: User = Depends(require_admin),
):
    if type not in MEDIA_CATEGORIES:
        type = None
    files = storage_service.list_media(path, type)
    return templates.TemplateResponse(
        request,
        "media.html",
        {
            "user": user,
            "files": files,
            "total_size": sum(f.size for f in files),
            "path": path,
            "type": type,
            "categories": MEDIA_CATEGORIES,
        },
    )

"""
DocPortal — FastAPI Application Factory
=========================================

What:  Creates and configures the FastAPI application instance.
Why:   Centralizes middleware, exception handlers, routers and lifecycle in
       one place.
How:   create_app() returns a configured FastAPI instance; uvicorn imports the
       module-level `app` (uvicorn docportal.main:app).

Application Architecture:
    ┌──────────────────────────────────────────────────────────────┐
    │                        FastAPI App                           │
    │                                                              │
    │  Middleware: RateLimit → RequestID → Logging → Session →     │
    │              GZip → CORS                                     │
    │                                                              │
    │  JSON API:   /api/auth  /api/versions  /api/search           │
    │              /api/admin/*  /api/docs/{sync,reindex}          │
    │  Files:      /docs-media/*  /static/*                        │
    │  Pages:      /login  /docs/...  /search  /admin/...          │
    │  Probes:     /health                                         │
    │                                                              │
    │  Exception handlers: DocPortalError family → JSON envelope   │
    │  (pages: anonymous → redirect to /login)                     │
    └──────────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:
    1. Configure logging
    2. Report insecure settings
    3. Create the schema (SQLite only; PostgreSQL uses Alembic)
    4. Create DOCS_ROOT; on first start seed the sample docs and sync them
    Shutdown:
    1. Close the search engine client
    2. Dispose the database engine
"""

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.middleware.sessions import SessionMiddleware

from docportal import __version__
from docportal.config import settings
from docportal.database import create_schema, dispose_engine, session_scope
from docportal.exceptions import (
    AuthenticationError,
    CircuitBreakerOpenError,
    DatabaseError,
    DocPortalError,
    FileStorageError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitExceededError,
    SearchServiceError,
    ValidationError,
)
from docportal.middleware.logging import RequestLoggingMiddleware
from docportal.middleware.rate_limit import RateLimitMiddleware
from docportal.middleware.request_id import RequestIDMiddleware, request_id_var
from docportal.routes import (
    admin_documents,
    admin_media,
    admin_tree,
    auth,
    docs_sync,
    health,
    media,
    pages,
    search,
    versions,
)
from docportal.services.search_service import search_service
from docportal.services.storage_service import storage_service
from docportal.services.sync_service import sync_service

logger = logging.getLogger(__name__)

STATIC_DIR = Path(__file__).resolve().parent / "static"

# Paths answered with JSON errors; everything else is a page
API_PREFIXES = ("/api/", "/docs-media/", "/health")


# ══════════════════════════════════════════════════════════════════════════
# Logging
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure the root logger once, before anything else logs.

    Format: 2026-01-15T12:00:00 [INFO] docportal.services.tree_service: Module created: v1.0/setup
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # RequestLoggingMiddleware replaces uvicorn's access log
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("MARKDOWN").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Lifespan
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    setup_logging()
    logger.info("=" * 60)
    logger.info("DocPortal %s starting up...", __version__)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        # Not fatal: local development runs on the defaults
        logger.warning("Configuration warning: %s", e)

    if settings.is_sqlite:
        await create_schema()
        logger.info("SQLite schema ensured")

    first_start = not storage_service.exists()
    storage_service.ensure_root()
    logger.info("Docs directory: %s", storage_service.root)

    if first_start and settings.seed_sample_docs:
        try:
            await sync_service.seed_samples()
            async with session_scope() as db:
                await sync_service.scan_docs_directory(db, seed=False)
        except DocPortalError as e:
            logger.error("Initial docs sync failed: %s | Context: %s", e.message, e.context)

    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    logger.info("DocPortal shutting down...")
    await search_service.close()
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _is_page(request: Request) -> bool:
    return not request.url.path.startswith(API_PREFIXES)


def _error(status_code: int, error: str, message: str, details=None, headers=None) -> JSONResponse:
    content = {"error": error, "message": message, "request_id": request_id_var.get("")}
    if details:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map the DocPortalError family to HTTP responses.

        ValidationError / ConflictError → 400
        AuthenticationError             → 401 (pages: redirect to /login)
        PermissionDeniedError           → 403 (pages: error page)
        NotFoundError                   → 404
        RateLimitExceededError          → 429
        SearchServiceError              → 503
        CircuitBreakerOpenError         → 503
        FileStorageError                → 500
        DatabaseError                   → 500 (message never leaks internals)
        DocPortalError / Exception      → 500
    """

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("[%s] Validation error: %s", request_id_var.get(""), exc.message)
        return _error(400, "validation_error", exc.message, exc.context)

    @app.exception_handler(AuthenticationError)
    async def handle_authentication_error(request: Request, exc: AuthenticationError):
        if _is_page(request):
            return pages.login_redirect(request)
        return _error(401, "authentication_required", exc.message)

    @app.exception_handler(PermissionDeniedError)
    async def handle_permission_denied(request: Request, exc: PermissionDeniedError):
        logger.warning("[%s] Permission denied on %s: %s", request_id_var.get(""), request.url.path, exc.message)
        if _is_page(request):
            return pages.templates.TemplateResponse(
                request, "error.html", {"status": 403, "message": exc.message}, status_code=403
            )
        return _error(403, "forbidden", exc.message)

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return _error(404, "not_found", exc.message)

    @app.exception_handler(RateLimitExceededError)
    async def handle_rate_limit(request: Request, exc: RateLimitExceededError):
        return _error(
            429,
            "rate_limit_exceeded",
            exc.message,
            exc.context,
            headers={"Retry-After": str(exc.retry_after)},
        )

    @app.exception_handler(CircuitBreakerOpenError)
    async def handle_circuit_breaker(request: Request, exc: CircuitBreakerOpenError):
        logger.warning("[%s] Circuit breaker open: %s", request_id_var.get(""), exc.message)
        return _error(
            503,
            "service_unavailable",
            exc.message,
            {"recovery_time": exc.recovery_time},
            headers={"Retry-After": str(exc.recovery_time)},
        )

    @app.exception_handler(SearchServiceError)
    async def handle_search_error(request: Request, exc: SearchServiceError):
        logger.error("[%s] Search service error: %s", request_id_var.get(""), exc.message)
        headers = {"Retry-After": str(exc.retry_after)} if exc.retry_after else None
        return _error(503, "search_unavailable", exc.message, exc.context, headers=headers)

    @app.exception_handler(DatabaseError)
    async def handle_database_error(request: Request, exc: DatabaseError):
        logger.error(
            "[%s] Database error: %s | Context: %s", request_id_var.get(""), exc.message, exc.context
        )
        return _error(500, "server_error", "An internal error occurred. Please try again later.")

    @app.exception_handler(FileStorageError)
    async def handle_file_storage_error(request: Request, exc: FileStorageError):
        logger.error(
            "[%s] File storage error: %s | Context: %s", request_id_var.get(""), exc.message, exc.context
        )
        return _error(500, "server_error", exc.message)

    @app.exception_handler(DocPortalError)
    async def handle_docportal_error(request: Request, exc: DocPortalError):
        logger.error("[%s] Unhandled application error: %s", request_id_var.get(""), exc.message)
        return _error(500, "server_error", exc.message)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error("[%s] Unexpected error: %s", request_id_var.get(""), exc, exc_info=True)
        return _error(
            500,
            "internal_server_error",
            "An unexpected error occurred. Please try again or contact support.",
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    app = FastAPI(
        title="DocPortal API",
        description=(
            "Versioned documentation portal: browse Version → Module → Chapter → "
            "Document trees, edit markdown, manage media and search."
        ),
        version=__version__,
        # /docs belongs to the reader
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
        lifespan=lifespan,
    )

    # Raises outside SQLite when SESSION_SECRET is missing
    session_secret = settings.resolve_session_secret()
    if session_secret != settings.session_secret:
        logger.warning("SESSION_SECRET not set: using a per-process key, sessions end on restart")

    # Added innermost first: execution order is the reverse
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Retry-After"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(
        SessionMiddleware,
        secret_key=session_secret,
        session_cookie=settings.session_cookie,
        max_age=settings.session_max_age,
        same_site="lax",
        https_only=settings.session_https_only,
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(RateLimitMiddleware)

    register_exception_handlers(app)

    app.mount("/static", StaticFiles(directory=str(STATIC_DIR)), name="static")

    app.include_router(health.router)
    app.include_router(auth.router)
    app.include_router(versions.router)
    app.include_router(search.router)
    app.include_router(admin_tree.router)
    app.include_router(admin_documents.router)
    app.include_router(admin_media.router)
    app.include_router(docs_sync.router)
    app.include_router(media.router)
    app.include_router(pages.router)

    return app


app = create_app()

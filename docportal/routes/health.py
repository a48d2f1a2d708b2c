"""
DocPortal — Health Check Route
================================

What:  GET /health for container probes and monitoring.
How:   Runs SELECT 1 against the database, asks the search engine for its
       status (unless the circuit breaker is already open) and checks that
       DOCS_ROOT exists.

Status levels:
    - healthy:   everything reachable                         (HTTP 200)
    - degraded:  search engine or docs directory unavailable  (HTTP 200)
    - unhealthy: database unreachable                         (HTTP 503)

    Readers can still browse without search, so only the database decides
    whether traffic should be routed away.
"""

import logging
import time

from fastapi import APIRouter, Response
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from docportal import __version__
from docportal.database import engine
from docportal.schemas.common import HealthResponse
from docportal.services.search_service import CircuitBreaker, search_service
from docportal.services.storage_service import storage_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get("/health", response_model=HealthResponse, summary="Service health check")
async def health_check(response: Response) -> HealthResponse:
    db_status = "connected"
    search_status = "available"
    overall = "healthy"

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable: %s", e)

    if search_service.circuit_breaker.state == CircuitBreaker.OPEN:
        search_status = "circuit_open"
    elif not await search_service.health_check():
        search_status = "unavailable"

    docs_status = "present" if storage_service.exists() else "missing"

    if overall != "unhealthy" and (search_status != "available" or docs_status != "present"):
        overall = "degraded"
    if overall == "unhealthy":
        response.status_code = 503

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        search=search_status,
        docs_root=docs_status,
        uptime_seconds=round(time.time() - _start_time, 2),
    )

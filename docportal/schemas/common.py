"""
DocPortal — Shared Pydantic Schemas
=====================================

What:  Response models shared by every route: errors, health, plain success.
Why:   Clients need one error shape to parse regardless of which endpoint failed.
"""

from typing import Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """
    What:  Standardized error response format for all API errors.

    Example:
        {
            "error": "validation_error",
            "message": "Module name 'setup' already exists in this version",
            "details": {"field": "name", "resource": "module", "name": "setup"},
            "request_id": "550e8400-e29b-41d4-a716-446655440000"
        }
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class SuccessResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None


class HealthResponse(BaseModel):
    """
    What:  Health check response showing service and dependency status.
    Who:   Returned by GET /health for monitoring and load balancer health checks.

    The database is critical (unhealthy without it); search is not (degraded).
    """
    status: str = Field(description="Overall service status: healthy, degraded, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    search: str = Field(description="Search engine status: available, unavailable, circuit_open")
    docs_root: str = Field(description="Documentation directory status: present, missing")
    uptime_seconds: float = Field(description="Seconds since service started")

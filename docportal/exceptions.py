"""
DocPortal — Custom Exception Hierarchy
========================================

What:  Application-specific exceptions for the different error scenarios.
Why:   Custom exceptions enable targeted error handling with the right HTTP
       status code and a user-friendly message, without leaking internals.
How:   Each exception carries a message and an optional context dict.
       Global exception handlers (registered in main.py) turn them into
       structured JSON error responses.
Who:   Raised by services, dependencies and middleware; caught by global handlers.

Exception Hierarchy:
    DocPortalError (base)
    ├── ValidationError          → 400 Bad Request (client can fix)
    │   └── ConflictError        → 400 Bad Request (name/filename already taken)
    ├── AuthenticationError      → 401 Unauthorized
    ├── PermissionDeniedError    → 403 Forbidden
    ├── NotFoundError            → 404 Not Found
    ├── RateLimitExceededError   → 429 Too Many Requests
    ├── FileStorageError         → 500 Internal Server Error
    ├── DatabaseError            → 500 Internal Server Error
    ├── SearchServiceError       → 503 Service Unavailable (retry later)
    └── CircuitBreakerOpenError  → 503 Service Unavailable (circuit open)
"""

from typing import Any, Dict, Optional


class DocPortalError(Exception):
    """
    Base exception for all DocPortal application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged, returned only for client errors)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(DocPortalError):
    """
    Raised when client input fails a business rule.

    When:    Missing required fields, disallowed media type, oversized upload,
             invalid frontmatter, a non-empty module that cannot be deleted.
    HTTP:    400 Bad Request (FastAPI keeps 422 for schema-level errors)
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class ConflictError(ValidationError):
    """
    Raised when a name is already taken inside its parent.

    When:    Duplicate version name, module name within a version, chapter name
             within a module, or document filename within a chapter.
    HTTP:    400 Bad Request
    """

    def __init__(
        self,
        resource: str,
        name: str,
        parent: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"{resource.capitalize()} name '{name}' already exists"
        if parent:
            message = f"{message} in this {parent}"
        ctx = context or {}
        ctx.update({"resource": resource, "name": name})
        super().__init__(message=message, field="name", context=ctx)


class AuthenticationError(DocPortalError):
    """
    Raised when a request needs a signed-in user and has none.

    HTTP:    401 Unauthorized
    """

    def __init__(
        self,
        message: str = "Authentication required. Please sign in.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class PermissionDeniedError(DocPortalError):
    """
    Raised when the signed-in user may not perform the action.

    When:    Non-admin calling an admin endpoint; a file path escaping the docs root.
    HTTP:    403 Forbidden
    """

    def __init__(
        self,
        message: str = "You do not have permission to perform this action.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFoundError(DocPortalError):
    """
    Raised when a requested resource does not exist.

    SQLAlchemy returns None for missing rows; services convert None into this
    exception so HTTP concerns stay out of the service logic.
    HTTP:    404 Not Found
    """

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource.capitalize()} '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class FileStorageError(DocPortalError):
    """
    Raised when file system operations on the docs tree fail.

    When:    Disk full, permission denied, I/O error.
    HTTP:    500 Internal Server Error (paths are logged, never returned)
    """

    def __init__(
        self,
        message: str = "File storage operation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DatabaseError(DocPortalError):
    """
    Raised when database operations fail unexpectedly.

    Security Note:
        The message returned to the client is always generic. SQL, constraint
        names and the like are logged server-side only.
    HTTP:    500 Internal Server Error
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class SearchServiceError(DocPortalError):
    """
    Raised when the search engine fails after all retries.

    HTTP:    503 Service Unavailable
    """

    def __init__(
        self,
        message: str = "Search is temporarily unavailable",
        retry_after: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if retry_after:
            ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


class CircuitBreakerOpenError(DocPortalError):
    """
    Raised when the search circuit breaker is OPEN.

    How circuit breaker works:
        CLOSED (normal) → failures increment counter
        → After N failures → OPEN (reject all calls for recovery_timeout seconds)
        → After timeout → HALF-OPEN (allow one test call)
        → Test succeeds → CLOSED; test fails → OPEN again
    HTTP:    503 Service Unavailable
    """

    def __init__(
        self,
        recovery_time: int = 30,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            "Search is temporarily unavailable due to repeated failures. "
            f"It will be retried in approximately {recovery_time} seconds."
        )
        ctx = context or {}
        ctx["recovery_time"] = recovery_time
        super().__init__(message=message, context=ctx)
        self.recovery_time = recovery_time


class RateLimitExceededError(DocPortalError):
    """
    Raised when a client exceeds the per-IP request rate limit.

    HTTP:    429 Too Many Requests (with Retry-After header)
    """

    def __init__(
        self,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Rate limit exceeded. Please wait {retry_after} seconds before making more requests."
        )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after

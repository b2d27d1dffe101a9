"""
CampusNotes Backend: Custom Exception Hierarchy
=================================================

What:  Application-specific exceptions for every failure kind the core can
       produce.
How:   Each exception class carries a message and optional context dict.
       Global exception handlers (registered in main.py) catch these and
       return structured JSON error responses with correct HTTP status codes.
Who:   Raised by services and dependencies; caught by global handlers.

Exception Hierarchy:
    CampusNotesError (base)
    ├── ValidationError          → 400 Bad Request
    │   └── BadVoteError         → 400 Bad Request
    ├── AuthenticationError      → 401 Unauthorized
    ├── NotFoundError            → 404 Not Found
    ├── ConflictError            → 409 Conflict
    ├── UploadFailedError        → 500 Internal Server Error
    ├── FileStorageError         → 500 Internal Server Error
    ├── DatabaseError            → 500 Internal Server Error
    ├── PreviewRenderError       → never surfaced (preview is best-effort)
    └── CircuitBreakerOpenError  → never surfaced (preview is best-effort)
"""

from typing import Any, Dict, Optional


class CampusNotesError(Exception):
    """
    Base exception for all CampusNotes application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged but NOT returned for 5xx)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(CampusNotesError):
    """
    Raised when client input fails validation.

    When:    Missing course fields, bad semester/year, wrong content type,
             oversize or empty file.
    HTTP:    400 Bad Request
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


class BadVoteError(ValidationError):
    """Unknown or disabled vote token. Raised before any transaction opens."""

    def __init__(self, token: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=(
                f"Incorrect vote type: {token}. "
                "Available options are: upvote and remove"
            ),
            field="vote_type",
            context=context,
        )
        self.token = token


class AuthenticationError(CampusNotesError):
    """
    Raised when the caller cannot be resolved to a user.

    When:    Missing, malformed, expired or forged session token on a route
             that requires a user; bad identity-exchange secret.
    HTTP:    401 Unauthorized
    """

    def __init__(
        self,
        message: str = "Authentication required",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFoundError(CampusNotesError):
    """
    Raised when a requested resource does not exist.

    When:    Unknown note id on read/vote/download, unknown user on
             leaderboard position lookup.
    HTTP:    404 Not Found
    """

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        if message is None:
            message = f"The requested {resource} was not found"
            if resource_id:
                message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class ConflictError(CampusNotesError):
    """
    Raised when a uniqueness guarantee is violated by a concurrent writer.

    When:    Two first logins racing on the same google_id; a vote insert
             that still collides after its retry.
    HTTP:    409 Conflict
    """

    def __init__(
        self,
        message: str = "The resource was modified concurrently. Please retry.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class UploadFailedError(CampusNotesError):
    """
    Raised when an upload could not be made durable.

    When:    The PDF write failed (the row was rolled back) or the commit
             failed (the written files were removed).
    HTTP:    500 Internal Server Error
    """

    def __init__(
        self,
        message: str = "Failed to upload note",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class FileStorageError(CampusNotesError):
    """
    Raised when object store operations fail.

    When:    Disk full, permission denied, directory not writable, I/O error.
    HTTP:    500 Internal Server Error
    """

    def __init__(
        self,
        message: str = "File storage operation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class PreviewRenderError(CampusNotesError):
    """Raised by the preview renderer. Upload callers swallow it."""

    def __init__(
        self,
        message: str = "Preview rendering failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class CircuitBreakerOpenError(PreviewRenderError):
    """
    Raised when the renderer circuit breaker is OPEN.

    How circuit breaker works:
        CLOSED (normal) → failures increment counter
        → After N failures → OPEN (reject all calls for recovery_time seconds)
        → After recovery_time → HALF-OPEN (allow one test call)
        → If test succeeds → CLOSED
        → If test fails → OPEN again
    """

    def __init__(
        self,
        recovery_time: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            "Preview renderer is temporarily disabled after repeated failures. "
            f"It will be retried in approximately {recovery_time} seconds."
        )
        ctx = context or {}
        ctx["recovery_time"] = recovery_time
        super().__init__(message=message, context=ctx)
        self.recovery_time = recovery_time


class DatabaseError(CampusNotesError):
    """
    Raised when database operations fail unexpectedly.

    HTTP:    500 Internal Server Error. The message returned to the client
             is always generic; details are logged server-side only.
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)

"""
StitchCraft Backend — Custom Exception Hierarchy
=================================================

What:  Defines application-specific exceptions for different error scenarios.
Why:   Custom exceptions enable targeted error handling with appropriate HTTP
       status codes and user-friendly messages. They replace generic Python
       exceptions that would leak internal details to the client.
How:   Each exception class carries a message and optional context dict.
       Global exception handlers (registered in main.py) catch these and
       return structured JSON error responses with correct HTTP status codes.
Who:   Raised by services, the reconciliation workflow and middleware.

Exception Hierarchy:
    StitchCraftError (base)
    ├── ValidationError          → 400 Bad Request (client can fix)
    ├── NotFoundError            → 404 Not Found
    ├── SyncUnavailableError     → 409 Conflict (no profile data to sync from)
    ├── DatabaseError            → 500 Internal Server Error (retryable)
    └── RateLimitExceededError   → 429 Too Many Requests
"""

from typing import Any, Dict, Optional


class StitchCraftError(Exception):
    """
    Base exception for all StitchCraft application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged but NOT returned for server errors)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(StitchCraftError):
    """
    Raised when client input fails a business rule.

    When:    Empty measurement values, a no-op sync strategy, a per-field pick
             outside merge mode, a missing tenant header.
    HTTP:    400 Bad Request

    FastAPI already answers schema violations with 422; this class is for
    rules pydantic cannot express.
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


class NotFoundError(StitchCraftError):
    """
    Raised when a requested resource does not exist.

    HTTP:    404 Not Found

    A client owned by another organization is reported through this class
    too, so tenants cannot probe for each other's client IDs.
    """

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class SyncUnavailableError(StitchCraftError):
    """
    Raised when a client has no profile measurements to reconcile against.

    When:    The client is not linked to a customer profile, or the linked
             profile has zero comparable measurement fields.
    HTTP:    409 Conflict
    """

    def __init__(
        self,
        message: str = "No profile measurements are available to sync from",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DatabaseError(StitchCraftError):
    """
    Raised when database operations fail unexpectedly.

    When:    Connection lost mid-query, constraint violation, deadlock, etc.
    HTTP:    500 Internal Server Error

    The message is always generic and phrased so the user can simply try
    again; the request transaction has already been rolled back. Driver
    details live in `context` and are only logged.
    """

    retryable = True

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class RateLimitExceededError(StitchCraftError):
    """
    Raised when a caller exceeds the sliding-window request limit.

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

"""
PhotoBazaar Backend: Custom Exception Hierarchy
================================================

What:  Application exceptions, each carrying its HTTP status and a
       machine-readable error code.
How:   Services raise these; one handler registered in main.py turns any
       PhotoBazaarError into the JSON error envelope.

Exception Hierarchy:
    PhotoBazaarError (base)
    ├── ValidationError               → 400
    │   └── InvalidOperationError     → 400  (e.g. liking your own photo)
    ├── AuthenticationError           → 401
    ├── AuthorizationError            → 403
    │   ├── PurchaseRequiredError     → 403
    │   ├── DownloadLimitExceededError→ 403
    │   └── DownloadExpiredError      → 403
    ├── NotFoundError                 → 404
    ├── ConflictError                 → 409
    │   ├── AlreadyPurchasedError     → 409
    │   └── PhotoUnavailableError     → 409  (exclusive photo already sold)
    ├── RateLimitExceededError        → 429
    ├── FileStorageError              → 500
    ├── DatabaseError                 → 500
    └── EmailDeliveryError            → 503
"""

from typing import Any, Dict, Optional


class PhotoBazaarError(Exception):
    """
    Base exception for all PhotoBazaar application errors.

    Attributes:
        message:  User-facing error description (safe to return to clients)
        context:  Additional debug info, logged and returned as `details`
                  unless the subclass marks it internal
    """

    status_code: int = 500
    error_code: str = "server_error"
    # When False the handler logs context but keeps it out of the response
    expose_context: bool = True

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(PhotoBazaarError):
    """Client input failed a business rule."""

    status_code = 400
    error_code = "validation_error"

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


class InvalidOperationError(ValidationError):
    """The request is well formed but not allowed in this state."""

    error_code = "invalid_operation"

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, context=context)


class AuthenticationError(PhotoBazaarError):
    """Missing, malformed or expired credentials."""

    status_code = 401
    error_code = "authentication_required"

    def __init__(
        self,
        message: str = "Authentication required",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class AuthorizationError(PhotoBazaarError):
    """Authenticated, but not allowed to do this."""

    status_code = 403
    error_code = "forbidden"

    def __init__(
        self,
        message: str = "You do not have permission to perform this action",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class PurchaseRequiredError(AuthorizationError):
    error_code = "purchase_required"

    def __init__(
        self,
        message: str = "You must purchase this photo before downloading it",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DownloadLimitExceededError(AuthorizationError):
    error_code = "download_limit_exceeded"

    def __init__(self, max_downloads: int, context: Optional[Dict[str, Any]] = None):
        ctx = context or {}
        ctx["max_downloads"] = max_downloads
        super().__init__(
            message=f"Download limit reached. This purchase allows {max_downloads} downloads.",
            context=ctx,
        )


class DownloadExpiredError(AuthorizationError):
    error_code = "download_expired"

    def __init__(
        self,
        message: str = "The download window for this purchase has expired",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFoundError(PhotoBazaarError):
    """
    A requested resource does not exist (or is soft-deleted).

    SQLAlchemy returns None for missing rows; services convert that None into
    this exception so routes never branch on it.
    """

    status_code = 404
    error_code = "not_found"

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


class ConflictError(PhotoBazaarError):
    """The request conflicts with the current state of a resource."""

    status_code = 409
    error_code = "conflict"

    def __init__(
        self,
        message: str = "The resource is in a conflicting state",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class AlreadyPurchasedError(ConflictError):
    error_code = "already_purchased"

    def __init__(self, context: Optional[Dict[str, Any]] = None):
        super().__init__(message="You have already purchased this photo", context=context)


class PhotoUnavailableError(ConflictError):
    error_code = "photo_unavailable"

    def __init__(self, context: Optional[Dict[str, Any]] = None):
        super().__init__(
            message="This exclusive photo has already been sold",
            context=context,
        )


class RateLimitExceededError(PhotoBazaarError):
    """Client exceeded the per-IP request rate limit."""

    status_code = 429
    error_code = "rate_limit_exceeded"

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


class FileStorageError(PhotoBazaarError):
    """Reading or writing the storage volume failed (disk full, permissions)."""

    status_code = 500
    error_code = "server_error"
    expose_context = False

    def __init__(
        self,
        message: str = "File storage operation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DatabaseError(PhotoBazaarError):
    """
    A database operation failed unexpectedly.

    The client always gets a generic message; constraint names and SQL stay
    in the server log.
    """

    status_code = 500
    error_code = "server_error"
    expose_context = False

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class EmailDeliveryError(PhotoBazaarError):
    """The SMTP server refused or timed out after all retries."""

    status_code = 503
    error_code = "email_delivery_failed"
    expose_context = False

    def __init__(
        self,
        message: str = "We could not send the verification email. Please try again shortly.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)

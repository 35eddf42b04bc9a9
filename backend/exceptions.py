"""
Custom exception classes for the application.

This module defines domain-specific exceptions that provide better error handling
and clearer error messages throughout the application.
"""


class ApplicationError(Exception):
    """Base exception for all application errors"""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class UnauthorizedError(ApplicationError):
    """Raised when a request carries no token, or one that does not resolve"""

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class NotFoundError(ApplicationError):
    """
    Raised when an entity is absent.

    For files this also covers "exists but you may not see it": callers can't
    tell the two apart.
    """

    def __init__(self, entity: str, entity_id: str | None, message: str = "Not found"):
        details = {"entity": entity, "entity_id": entity_id}
        super().__init__(message, details)


class SessionNotFoundError(NotFoundError):
    """Raised when a token is unknown, expired or already revoked"""

    def __init__(self, message: str = "Session not found"):
        # Never echo the token back in error details
        super().__init__("session", None, message)


class ValidationError(ApplicationError):
    """Raised when validation fails"""

    def __init__(self, message: str, invalid_fields: dict | None = None):
        details = {"invalid_fields": invalid_fields} if invalid_fields else {}
        super().__init__(message, details)


class ParentNotFoundError(ValidationError):
    """Raised when parent_id references no catalog entry"""

    def __init__(self, parent_id: str):
        super().__init__("Parent not found", {"parentId": parent_id})


class ParentNotAFolderError(ValidationError):
    """Raised when parent_id references a file or image"""

    def __init__(self, parent_id: str):
        super().__init__("Parent is not a folder", {"parentId": parent_id})


class MissingContentError(ValidationError):
    """Raised when a file or image upload carries no data"""

    def __init__(self):
        super().__init__("Missing data", {"data": "required for non-folder kinds"})


class UserAlreadyExistsError(ValidationError):
    """Raised when registering an email that is already taken"""

    def __init__(self, email: str):
        super().__init__("Already exist", {"email": email})


class StoreUnavailableError(ApplicationError):
    """Raised when the backing store cannot be reached. Transient; never retried internally."""

    def __init__(self, operation: str, message: str | None = None):
        details = {"operation": operation}
        super().__init__(message or f"Store unavailable during {operation}", details)


class BlobNotFoundError(ApplicationError):
    """Raised when blob storage has nothing at the requested path"""

    def __init__(self, path: str):
        super().__init__(f"Blob not found: {path}", {"path": path})


class JobProcessingError(ApplicationError):
    """Raised by workers while processing a queued job"""

    retryable = True

    def __init__(self, job_id: str | None, message: str, category=None):
        details = {"job_id": job_id}
        self.category = category
        super().__init__(message, details)


class NonRetryableJobError(JobProcessingError):
    """Malformed job or missing source data: redelivery can't help"""

    retryable = False


class RetryableJobError(JobProcessingError):
    """Transient render/store failure: redeliver with backoff"""

    retryable = True


class JobLeaseLostError(ApplicationError):
    """Raised when acking or failing a job this consumer no longer holds"""

    def __init__(self, job_id: str, state: str | None = None):
        super().__init__(f"Job {job_id} is not in progress", {"job_id": job_id, "state": state})

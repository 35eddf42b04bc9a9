"""
Failure Classifier Service

Analyzes exceptions raised while processing a job and classifies them into
categories that decide between redelivery and dead-lettering.
"""
import logging
from sqlalchemy.exc import OperationalError, InterfaceError

from constants import FailureCategory
from exceptions import (
    JobProcessingError,
    StoreUnavailableError,
    BlobNotFoundError,
)

logger = logging.getLogger(__name__)


class FailureClassifier:
    """
    Classifies exceptions into recovery-actionable categories.

    Typed exceptions are mapped directly; anything else is classified by
    keywords in its message.
    """

    STORE_KEYWORDS = [
        'database is locked', 'unable to open database', 'disk i/o error',
        'connection refused', 'connection reset', 'server closed the connection',
        'could not connect'
    ]

    STORAGE_SPACE_KEYWORDS = [
        'no space', 'disk full', 'quota exceeded', 'not enough space',
        'insufficient space', 'storage full'
    ]

    STORAGE_PERMISSION_KEYWORDS = [
        'permission denied', 'access denied', 'not permitted',
        'operation not permitted', 'read-only', 'readonly'
    ]

    RENDER_KEYWORDS = [
        'cannot identify image', 'image file is truncated', 'decompression bomb',
        'corrupt', 'unsupported', 'cannot write mode', 'broken data stream'
    ]

    @classmethod
    def classify(cls, exception: Exception) -> tuple[FailureCategory, str]:
        """
        Analyze exception and return (category, cleaned_message)

        Args:
            exception: The exception that caused the failure

        Returns:
            Tuple of (FailureCategory, human-readable message)
        """
        original_msg = str(exception)
        error_msg = original_msg.lower()

        logger.debug(f"Classifying failure: {original_msg[:200]}")

        if isinstance(exception, JobProcessingError) and exception.category is not None:
            return (exception.category, original_msg)

        if isinstance(exception, (StoreUnavailableError, OperationalError, InterfaceError)):
            return (FailureCategory.STORE_UNAVAILABLE, "Database unavailable")

        if isinstance(exception, BlobNotFoundError):
            return (FailureCategory.SOURCE_MISSING, "Original file missing from storage")

        if isinstance(exception, PermissionError):
            return (FailureCategory.STORAGE_PERMISSION, "Permission denied writing thumbnail")

        if any(kw in error_msg for kw in cls.STORAGE_SPACE_KEYWORDS):
            return (FailureCategory.STORAGE_SPACE, "Insufficient disk space for thumbnails")

        if any(kw in error_msg for kw in cls.STORAGE_PERMISSION_KEYWORDS):
            return (FailureCategory.STORAGE_PERMISSION, "Permission denied writing thumbnail")

        if any(kw in error_msg for kw in cls.STORE_KEYWORDS):
            return (FailureCategory.STORE_UNAVAILABLE, "Database unavailable")

        if any(kw in error_msg for kw in cls.RENDER_KEYWORDS):
            return (FailureCategory.RENDER_ERROR, f"Rendering failed: {original_msg[:100]}")

        return (FailureCategory.UNKNOWN, original_msg[:200])

    @classmethod
    def is_retryable(cls, exception: Exception, category: FailureCategory) -> bool:
        """Typed job errors decide for themselves; otherwise the category does."""
        if isinstance(exception, JobProcessingError):
            return exception.retryable
        return not FailureCategory.is_unrecoverable(category)

    @classmethod
    def get_backoff_seconds(cls, base_seconds: float, attempt: int, cap_seconds: float = 3600.0) -> float:
        """
        Calculate the redelivery delay for a failed attempt.

        Args:
            base_seconds: Delay after the first failure
            attempt: Failed attempt number (1, 2, 3, ...)
            cap_seconds: Upper bound on the delay

        Returns:
            base * 2^(attempt-1) seconds, capped
        """
        if attempt < 1:
            return 0.0
        return min(base_seconds * (2 ** (attempt - 1)), cap_seconds)

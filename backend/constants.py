"""
Application-wide constants.

This module centralizes all magic strings and numbers used throughout the application
to improve maintainability and reduce duplication.
"""
from enum import Enum


# Sentinel parent id meaning "no parent folder"
ROOT_PARENT_ID = "0"

# Widths (px) rendered for every uploaded image, largest first
THUMBNAIL_SIZES = (500, 250, 100)

SESSION_TTL_SECONDS = 24 * 60 * 60

DEFAULT_PAGE_SIZE = 20


class FileKind(str, Enum):
    """Kinds of catalog entries."""
    FOLDER = 'folder'
    FILE = 'file'
    IMAGE = 'image'

    @classmethod
    def values(cls) -> list[str]:
        return [kind.value for kind in cls]

    @classmethod
    def has_content(cls, kind: 'FileKind') -> bool:
        """Folders are pure metadata; everything else is backed by a blob"""
        return kind != cls.FOLDER


class JobState(str, Enum):
    """
    Lifecycle of a thumbnail job.

    QUEUED → RUNNING → DONE
                     ↘ QUEUED (retryable failure or lease expiry, with backoff)
                     ↘ DEAD   (non-retryable failure or retries exhausted)
    """
    QUEUED = 'QUEUED'
    RUNNING = 'RUNNING'
    DONE = 'DONE'
    DEAD = 'DEAD'


class JobKind(str, Enum):
    THUMBNAIL = 'THUMBNAIL'


class JobFailOutcome(str, Enum):
    """Result of reporting a job failure to the queue."""
    REQUEUED = 'REQUEUED'
    DEAD_LETTERED = 'DEAD_LETTERED'


class FailureCategory(str, Enum):
    """
    Categorizes job failures to decide between redelivery and dead-lettering.

    - JOB_MALFORMED / SOURCE_MISSING never succeed on retry
    - STORE_UNAVAILABLE / STORAGE_* / RENDER_ERROR are transient
    """
    JOB_MALFORMED = 'JOB_MALFORMED'          # Job payload is missing file_id or user_id
    SOURCE_MISSING = 'SOURCE_MISSING'        # Catalog entry or original blob vanished
    STORE_UNAVAILABLE = 'STORE_UNAVAILABLE'  # Database outage while reading or attaching
    STORAGE_SPACE = 'STORAGE_SPACE'          # Disk full while writing renditions
    STORAGE_PERMISSION = 'STORAGE_PERMISSION'
    RENDER_ERROR = 'RENDER_ERROR'            # Image library failure
    LEASE_EXPIRED = 'LEASE_EXPIRED'          # Consumer died or stalled mid-job
    UNKNOWN = 'UNKNOWN'

    @classmethod
    def is_unrecoverable(cls, category: 'FailureCategory') -> bool:
        """Check if this failure category cannot be automatically recovered"""
        return category in [
            cls.JOB_MALFORMED,
            cls.SOURCE_MISSING,
        ]

    @classmethod
    def get_ui_label(cls, category: 'FailureCategory') -> str:
        """Get human-readable label for operator display"""
        labels = {
            cls.JOB_MALFORMED: "Malformed Job",
            cls.SOURCE_MISSING: "Source File Missing",
            cls.STORE_UNAVAILABLE: "Database Unavailable",
            cls.STORAGE_SPACE: "Insufficient Disk Space",
            cls.STORAGE_PERMISSION: "Permission Denied",
            cls.RENDER_ERROR: "Rendering Error",
            cls.LEASE_EXPIRED: "Worker Lease Expired",
            cls.UNKNOWN: "Unknown Error",
        }
        return labels.get(category, "Unknown Error")


class HTTPStatus:
    """HTTP status codes used by the routers"""

    OK = 200
    CREATED = 201
    NO_CONTENT = 204
    BAD_REQUEST = 400
    UNAUTHORIZED = 401
    NOT_FOUND = 404
    INTERNAL_SERVER_ERROR = 500
    SERVICE_UNAVAILABLE = 503


class HeaderNames:
    TOKEN = "X-Token"
    AUTHORIZATION = "Authorization"

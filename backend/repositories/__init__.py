"""
Repository layer for data access abstraction.

This package contains repository classes that encapsulate database queries
and provide a clean interface for data access operations.
"""

from .base_repository import BaseRepository
from .file_repository import FileRepository
from .session_repository import SessionRepository
from .job_repository import JobRepository
from .user_repository import UserRepository

__all__ = [
    "BaseRepository",
    "FileRepository",
    "SessionRepository",
    "JobRepository",
    "UserRepository",
]

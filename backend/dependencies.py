"""
Dependency injection providers for FastAPI.

This module provides factory functions for creating service instances,
following the Dependency Inversion Principle. Tests override get_db,
get_settings and get_blob_storage to run against temporary resources.
"""

from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from config.settings import Settings, get_settings
from constants import HTTPStatus, HeaderNames
from database import get_db
from exceptions import SessionNotFoundError, StoreUnavailableError
from services.access_control import AccessControl
from services.blob_storage import LocalBlobStorage
from services.file_catalog import FileCatalog
from services.file_service import FileService
from services.interfaces import IBlobStorage
from services.job_queue import JobQueue
from services.session_store import SessionStore
from services.user_service import UserService


@lru_cache()
def _default_storage(storage_dir: str) -> LocalBlobStorage:
    return LocalBlobStorage(storage_dir)


def get_blob_storage(settings: Settings = Depends(get_settings)) -> IBlobStorage:
    """
    Factory function for the blob storage shared by every request.

    Returns:
        IBlobStorage: Filesystem storage rooted at settings.storage_dir
    """
    return _default_storage(settings.storage_dir)


def get_session_store(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings)
) -> SessionStore:
    return SessionStore(db, ttl_seconds=settings.session_ttl_seconds)


def get_user_service(db: Session = Depends(get_db)) -> UserService:
    return UserService(db)


def get_file_catalog(
    db: Session = Depends(get_db),
    storage: IBlobStorage = Depends(get_blob_storage)
) -> FileCatalog:
    return FileCatalog(db, storage)


def get_job_queue(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings)
) -> JobQueue:
    """
    Factory function for creating JobQueue instances for producers.

    Args:
        db: Database session (injected)
        settings: Queue policy (injected)

    Returns:
        JobQueue bound to the request's session
    """
    return JobQueue(
        db,
        max_retries=settings.job_max_retries,
        backoff_seconds=settings.job_backoff_seconds,
        visibility_timeout=settings.job_visibility_timeout_seconds,
        poll_interval=settings.worker_poll_interval,
        worker_id="api",
    )


def get_file_service(
    catalog: FileCatalog = Depends(get_file_catalog),
    queue: JobQueue = Depends(get_job_queue),
    settings: Settings = Depends(get_settings)
) -> FileService:
    return FileService(catalog, queue, settings.thumbnail_sizes)


def get_access_control(session_store: SessionStore = Depends(get_session_store)) -> AccessControl:
    return AccessControl(session_store)


def get_token(x_token: Optional[str] = Header(None, alias=HeaderNames.TOKEN)) -> Optional[str]:
    """Raw X-Token header, None for anonymous requests."""
    return x_token or None


def get_current_user_id(
    token: Optional[str] = Depends(get_token),
    session_store: SessionStore = Depends(get_session_store)
) -> str:
    """
    Resolve the request's token to a user id.

    Raises:
        HTTPException: 401 for a missing, unknown or expired token;
            500 if the session store is down
    """
    if not token:
        raise HTTPException(status_code=HTTPStatus.UNAUTHORIZED, detail="Unauthorized")
    try:
        return session_store.resolve(token)
    except SessionNotFoundError:
        raise HTTPException(status_code=HTTPStatus.UNAUTHORIZED, detail="Unauthorized")
    except StoreUnavailableError:
        raise HTTPException(
            status_code=HTTPStatus.INTERNAL_SERVER_ERROR,
            detail="Storage backend unavailable"
        )

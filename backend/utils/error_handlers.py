"""
Error handling decorators for API endpoints and store access.

handle_api_errors converts the exception hierarchy in exceptions.py into
HTTPException responses; guard_store converts database outages into
StoreUnavailableError at the service boundary.
"""

import inspect
from functools import wraps
from typing import Callable
from fastapi import HTTPException
from sqlalchemy.exc import OperationalError, InterfaceError
import logging

from constants import HTTPStatus
from exceptions import (
    UnauthorizedError,
    NotFoundError,
    ValidationError,
    StoreUnavailableError,
    ApplicationError
)

logger = logging.getLogger(__name__)


def _to_http_exception(operation_name: str, error: Exception) -> HTTPException:
    """Map one exception to the response the client sees."""
    if isinstance(error, UnauthorizedError):
        return HTTPException(status_code=HTTPStatus.UNAUTHORIZED, detail="Unauthorized")
    if isinstance(error, NotFoundError):
        # Missing and forbidden look the same from outside
        return HTTPException(status_code=HTTPStatus.NOT_FOUND, detail="Not found")
    if isinstance(error, ValidationError):
        logger.warning(f"{operation_name} - Validation error: {error.message}")
        return HTTPException(status_code=HTTPStatus.BAD_REQUEST, detail=error.message)
    if isinstance(error, StoreUnavailableError):
        logger.error(f"{operation_name} - Store unavailable: {error.message}", exc_info=error)
        return HTTPException(
            status_code=HTTPStatus.INTERNAL_SERVER_ERROR,
            detail="Storage backend unavailable"
        )
    if isinstance(error, ApplicationError):
        logger.error(f"{operation_name} - Application error: {error.message}", exc_info=error)
        return HTTPException(
            status_code=HTTPStatus.INTERNAL_SERVER_ERROR,
            detail=f"{operation_name} failed: {error.message}"
        )
    logger.error(f"{operation_name} - Unexpected error: {error}", exc_info=error)
    return HTTPException(
        status_code=HTTPStatus.INTERNAL_SERVER_ERROR,
        detail=f"{operation_name} failed. Please check server logs."
    )


def handle_api_errors(operation_name: str):
    """
    Decorator to handle common API errors consistently across endpoints.

    Args:
        operation_name: Human-readable name of the operation (e.g., "File upload")

    Returns:
        Decorated function that handles errors uniformly

    Example:
        @router.put("/files/{file_id}/publish")
        @handle_api_errors("Publish file")
        def publish(...):
            return catalog.set_public(...)
    """
    def decorator(func: Callable):
        @wraps(func)
        async def async_wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except HTTPException:
                # Re-raise HTTPException as-is to preserve status code and detail
                raise
            except Exception as e:
                raise _to_http_exception(operation_name, e) from e

        @wraps(func)
        def sync_wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except HTTPException:
                raise
            except Exception as e:
                raise _to_http_exception(operation_name, e) from e

        # Return appropriate wrapper based on whether the function is async
        if inspect.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator


def guard_store(operation_name: str):
    """
    Decorator for service methods that talk to the database.

    Connection-level failures roll the session back and surface as
    StoreUnavailableError. Nothing is retried here; retry policy belongs
    to the caller.

    The decorated method's instance must expose the SQLAlchemy session as `self.db`.
    """
    def decorator(func: Callable):
        @wraps(func)
        def wrapper(self, *args, **kwargs):
            try:
                return func(self, *args, **kwargs)
            except (OperationalError, InterfaceError) as e:
                logger.error(f"{operation_name} - database unavailable: {e}")
                try:
                    self.db.rollback()
                except (OperationalError, InterfaceError):
                    logger.debug(f"{operation_name} - rollback after outage also failed")
                raise StoreUnavailableError(operation_name) from e

        return wrapper

    return decorator

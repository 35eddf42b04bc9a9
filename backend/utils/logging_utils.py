"""
Logging setup and job-scoped logging context.

configure_logging() installs the rotating file + console handlers used by both
the API process and standalone workers. Workers call set_logging_context()
while they hold a job so every line they log carries the job id.
"""

import logging
import sys
from contextvars import ContextVar
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict


# Context variable for job/request-scoped logging context
_logging_context: ContextVar[Dict[str, Any]] = ContextVar('logging_context', default={})

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s%(context)s'


class ContextFilter(logging.Filter):
    """Renders the current logging context as ' [key=value ...]' on each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        context = _logging_context.get()
        if context:
            rendered = " ".join(f"{key}={value}" for key, value in context.items())
            record.context = f" [{rendered}]"
        else:
            record.context = ""
        return True


def configure_logging(log_dir: str | None, level: str = "INFO", log_name: str = "files_manager.log") -> None:
    """
    Configure the root logger.

    Args:
        log_dir: Directory for the rotating log file; None logs to stdout only
        level: Root log level name
        log_name: File name inside log_dir
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level.upper())

    # Idempotent: uvicorn reload and tests may call this more than once
    for handler in list(root_logger.handlers):
        if getattr(handler, "_files_manager", False):
            root_logger.removeHandler(handler)

    log_formatter = logging.Formatter(LOG_FORMAT)
    context_filter = ContextFilter()
    handlers: list[logging.Handler] = []

    if log_dir:
        path = Path(log_dir)
        path.mkdir(parents=True, exist_ok=True)
        # File handler with rotation (10MB per file, keep 5 backups)
        handlers.append(RotatingFileHandler(
            path / log_name,
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding='utf-8'
        ))

    handlers.append(logging.StreamHandler(sys.stdout))

    for handler in handlers:
        handler.setFormatter(log_formatter)
        handler.addFilter(context_filter)
        handler._files_manager = True
        root_logger.addHandler(handler)

    logging.getLogger(__name__).info(f"Logging initialized (dir={log_dir or 'stdout only'}, level={level})")


def set_logging_context(**kwargs) -> None:
    """
    Add keys to the logging context for the current task.

    Example:
        set_logging_context(job_id=job.id, file_id=job.file_id)
    """
    context = _logging_context.get().copy()
    context.update(kwargs)
    _logging_context.set(context)


def clear_logging_context() -> None:
    """Drop all context keys for the current task."""
    _logging_context.set({})


def get_logging_context() -> Dict[str, Any]:
    return _logging_context.get().copy()

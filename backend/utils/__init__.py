"""
Utility functions and decorators.
"""

from .error_handlers import handle_api_errors, guard_store

__all__ = ["handle_api_errors", "guard_store"]

"""
Identifier and timestamp helpers shared by the models and services.
"""
import uuid
from datetime import datetime, timezone


def generate_uuid() -> str:
    """
    Generate a new UUID string.

    Returns:
        str: A new UUID4 string
    """
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how SQLite DateTime columns round-trip."""
    return datetime.now(timezone.utc).replace(tzinfo=None)

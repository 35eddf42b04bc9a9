"""
Auth session repository: token lookups and expiry-aware deletes.
"""

from datetime import datetime
from typing import Optional
from sqlalchemy.orm import Session

from models import AuthSession
from .base_repository import BaseRepository


class SessionRepository(BaseRepository[AuthSession]):
    """Repository for AuthSession model operations."""

    def __init__(self, db: Session):
        super().__init__(db, AuthSession)

    def get_live(self, token: str, now: datetime) -> Optional[AuthSession]:
        """
        Get a session that has not expired yet.

        Args:
            token: Opaque session token
            now: Current time (naive UTC)

        Returns:
            The session, or None if unknown or expired
        """
        return self.db.query(self.model).filter(
            self.model.token == token,
            self.model.expires_at > now
        ).first()

    def delete_live(self, token: str, now: datetime) -> int:
        """
        Delete a session only if it is still live.

        Single-statement conditional delete, so two concurrent logouts can't
        both report success.

        Returns:
            Number of rows deleted (0 or 1)
        """
        return self.db.query(self.model).filter(
            self.model.token == token,
            self.model.expires_at > now
        ).delete(synchronize_session=False)

    def delete_expired(self, now: datetime) -> int:
        """
        Delete every expired session.

        Returns:
            Number of rows deleted
        """
        return self.db.query(self.model).filter(
            self.model.expires_at <= now
        ).delete(synchronize_session=False)

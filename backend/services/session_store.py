"""
Session Store

Issues, resolves and revokes opaque login tokens. A token maps to exactly one
user for a fixed TTL counted from issue time; reads never extend it.
"""

import logging
import secrets
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy.orm import Session

from constants import SESSION_TTL_SECONDS
from exceptions import SessionNotFoundError
from models import AuthSession
from repositories.session_repository import SessionRepository
from utils.error_handlers import guard_store
from utils.uuid_helper import utcnow

logger = logging.getLogger(__name__)


class SessionStore:
    """Token → user id authority backed by the auth_sessions table."""

    def __init__(
        self,
        db: Session,
        ttl_seconds: int = SESSION_TTL_SECONDS,
        clock: Callable[[], datetime] = utcnow
    ):
        self.db = db
        self.ttl = timedelta(seconds=ttl_seconds)
        self.clock = clock
        self.session_repo = SessionRepository(db)

    @guard_store("Issue session")
    def issue(self, user_id: str) -> str:
        """
        Create a new session for user_id.

        Returns:
            Token valid for the configured TTL
        """
        now = self.clock()
        token = secrets.token_urlsafe(32)
        self.session_repo.create(AuthSession(
            token=token,
            user_id=user_id,
            created_at=now,
            expires_at=now + self.ttl
        ))
        self.db.commit()
        logger.info(f"Session issued for user {user_id}")
        return token

    @guard_store("Resolve session")
    def resolve(self, token: str | None) -> str:
        """
        Map a token to its user id.

        Raises:
            SessionNotFoundError: Token absent, unknown or expired
        """
        if not token:
            raise SessionNotFoundError()
        session = self.session_repo.get_live(token, self.clock())
        if session is None:
            raise SessionNotFoundError()
        return session.user_id

    @guard_store("Revoke session")
    def revoke(self, token: str | None) -> bool:
        """
        Delete a live session.

        Raises:
            SessionNotFoundError: Token absent, unknown, expired or already revoked
        """
        if not token:
            raise SessionNotFoundError()
        deleted = self.session_repo.delete_live(token, self.clock())
        self.db.commit()
        if deleted == 0:
            raise SessionNotFoundError()
        logger.info("Session revoked")
        return True

    @guard_store("Purge expired sessions")
    def purge_expired(self) -> int:
        purged = self.session_repo.delete_expired(self.clock())
        self.db.commit()
        if purged:
            logger.info(f"Purged {purged} expired sessions")
        return purged

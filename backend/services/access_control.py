"""
Access Control

Authorization policy for catalog entries. Stateless: every decision resolves
the token again, so a revoked session loses access immediately.
"""

from typing import Optional

from exceptions import SessionNotFoundError
from models import FileEntry
from services.session_store import SessionStore


class AccessControl:

    def __init__(self, session_store: SessionStore):
        self.session_store = session_store

    def _requester(self, token: Optional[str]) -> Optional[str]:
        """User id behind token, or None for anonymous/expired/revoked tokens."""
        if not token:
            return None
        try:
            return self.session_store.resolve(token)
        except SessionNotFoundError:
            return None

    def can_read(self, token: Optional[str], entry: FileEntry) -> bool:
        """Public entries are readable by anyone; private ones only by their owner."""
        if entry.is_public:
            return True
        return self._requester(token) == entry.owner_id

    def can_mutate(self, token: Optional[str], entry: FileEntry) -> bool:
        """Only the owner may change an entry, public or not."""
        requester = self._requester(token)
        return requester is not None and requester == entry.owner_id

"""
Base repository shared by the user, session, catalog and job repositories.
"""

from typing import Generic, TypeVar, Optional, Type
from sqlalchemy.orm import Session

T = TypeVar('T')


class BaseRepository(Generic[T]):
    """
    Lookups and inserts common to every table.

    Repositories only flush; committing is the calling service's decision.
    """

    def __init__(self, db: Session, model: Type[T]):
        self.db = db
        self.model = model

    def create(self, obj: T) -> T:
        """
        Add a row and flush so defaults (ids, timestamps, seq) are populated.

        Returns:
            The same instance, now persistent
        """
        self.db.add(obj)
        self.db.flush()
        return obj

    def get_by_id(self, id: str) -> Optional[T]:
        return self.db.query(self.model).filter(self.model.id == id).first()

    def count(self) -> int:
        """Row count, used by the /stats counters."""
        return self.db.query(self.model).count()

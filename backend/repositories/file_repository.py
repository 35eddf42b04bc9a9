"""
File repository for catalog-specific data access operations.
"""

from datetime import datetime
from typing import List, Optional
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session, selectinload

from models import FileEntry, Thumbnail
from .base_repository import BaseRepository

_UPSERT_INSERTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


class FileRepository(BaseRepository[FileEntry]):
    """Repository for FileEntry model operations."""

    def __init__(self, db: Session):
        super().__init__(db, FileEntry)

    def get_with_thumbnails(self, file_id: str) -> Optional[FileEntry]:
        """
        Get an entry with its renditions eagerly loaded.

        Args:
            file_id: File UUID

        Returns:
            FileEntry or None if not found
        """
        return self.db.query(self.model).options(
            selectinload(self.model.thumbnails)
        ).filter(self.model.id == file_id).first()

    def get_owned(self, file_id: str, owner_id: str) -> Optional[FileEntry]:
        """
        Get an entry only if it belongs to owner_id.

        Returns:
            FileEntry or None when absent or owned by someone else
        """
        return self.db.query(self.model).options(
            selectinload(self.model.thumbnails)
        ).filter(
            self.model.id == file_id,
            self.model.owner_id == owner_id
        ).first()

    def list_children(
        self,
        owner_id: str,
        parent_id: str,
        limit: int,
        offset: int = 0
    ) -> List[FileEntry]:
        """
        Get the owner's entries directly under parent_id, in insertion order.

        Args:
            owner_id: Owner user id
            parent_id: Parent folder id or ROOT_PARENT_ID
            limit: Page size
            offset: Number of entries to skip

        Returns:
            List of entries
        """
        return self.db.query(self.model).filter(
            self.model.owner_id == owner_id,
            self.model.parent_id == parent_id
        ).order_by(self.model.seq).offset(offset).limit(limit).all()

    def update_visibility(self, file_id: str, owner_id: str, is_public: bool, now: datetime) -> int:
        """
        Set is_public, conditioned on ownership in the same statement.

        Returns:
            Number of rows updated (0 when absent or not owned)
        """
        return self.db.query(self.model).filter(
            self.model.id == file_id,
            self.model.owner_id == owner_id
        ).update(
            {self.model.is_public: is_public, self.model.updated_at: now},
            synchronize_session=False
        )

    def upsert_thumbnail(self, file_id: str, size: int, path: str, now: datetime) -> None:
        """
        Insert or overwrite the rendition for (file_id, size).

        Uses a native ON CONFLICT upsert so two workers attaching the same
        size never produce duplicate rows; the later write wins.
        """
        dialect = self.db.get_bind().dialect.name
        values = {"file_id": file_id, "size": size, "path": path, "generated_at": now}

        if dialect in _UPSERT_INSERTS:
            stmt = _UPSERT_INSERTS[dialect](Thumbnail).values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=[Thumbnail.file_id, Thumbnail.size],
                set_={"path": path, "generated_at": now}
            )
            self.db.execute(stmt)
            return

        existing = self.db.query(Thumbnail).filter(
            Thumbnail.file_id == file_id,
            Thumbnail.size == size
        ).first()
        if existing:
            existing.path = path
            existing.generated_at = now
        else:
            self.db.add(Thumbnail(**values))
        self.db.flush()

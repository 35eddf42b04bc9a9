"""
File Catalog

Persists folder/file/image metadata with ownership, hierarchy and visibility.

Invariants kept here:
- parent_id is ROOT_PARENT_ID or the id of an existing folder
- folders never carry a storage_ref or thumbnails
- storage_ref is generated once at creation and never changes
- owner_id never changes; is_public is the only mutable attribute
"""

import logging
import posixpath
from datetime import datetime
from typing import Callable, Dict, List, Optional, Union

from sqlalchemy.orm import Session

from constants import ROOT_PARENT_ID, DEFAULT_PAGE_SIZE, FileKind
from exceptions import (
    NotFoundError,
    ValidationError,
    ParentNotFoundError,
    ParentNotAFolderError,
    MissingContentError,
)
from models import FileEntry
from repositories.file_repository import FileRepository
from services.interfaces import IBlobStorage
from services.thumbnail_generator import thumbnail_path
from utils.error_handlers import guard_store
from utils.uuid_helper import generate_uuid, utcnow

logger = logging.getLogger(__name__)


def generate_storage_ref(name: str) -> str:
    """
    Generated blob key for an upload: a fresh uuid plus the name's extension.

    The user-supplied name never becomes part of a storage path beyond its
    extension, so two uploads called "cat.png" can't collide.
    """
    _, ext = posixpath.splitext(posixpath.basename(name))
    # Only keep extensions that are safe as a path suffix
    if ext and not ext[1:].isalnum():
        ext = ""
    return f"{generate_uuid()}{ext.lower()}"


class FileCatalog:
    """Service for catalog reads and writes."""

    def __init__(
        self,
        db: Session,
        storage: IBlobStorage,
        clock: Callable[[], datetime] = utcnow
    ):
        self.db = db
        self.storage = storage
        self.clock = clock
        self.file_repo = FileRepository(db)

    def _validate_parent(self, parent_id: Optional[str]) -> str:
        """
        Check that parent_id is ROOT or an existing folder.

        Ownership of the parent folder is not required.

        Returns:
            Normalized parent id
        """
        if parent_id in (None, "", ROOT_PARENT_ID):
            return ROOT_PARENT_ID
        parent = self.file_repo.get_by_id(str(parent_id))
        if parent is None:
            raise ParentNotFoundError(str(parent_id))
        if not parent.is_folder:
            raise ParentNotAFolderError(str(parent_id))
        return parent.id

    @guard_store("Create folder")
    def create_folder(
        self,
        owner_id: str,
        name: str,
        parent_id: Optional[str] = ROOT_PARENT_ID,
        is_public: bool = False
    ) -> FileEntry:
        if not name:
            raise ValidationError("Missing name", {"name": "required"})
        parent = self._validate_parent(parent_id)

        now = self.clock()
        entry = self.file_repo.create(FileEntry(
            owner_id=owner_id,
            name=name,
            kind=FileKind.FOLDER.value,
            parent_id=parent,
            is_public=bool(is_public),
            created_at=now,
            updated_at=now
        ))
        self.db.commit()
        logger.info(f"Created folder {entry.id} under {parent}")
        return entry

    @guard_store("Create file")
    def create_file(
        self,
        owner_id: str,
        name: str,
        kind: Union[FileKind, str],
        parent_id: Optional[str],
        content: Optional[bytes],
        is_public: bool = False
    ) -> FileEntry:
        """
        Store content under a generated key, then record the entry.

        If recording fails the blob is removed again; a blob without a row is
        unreachable anyway, so removal is best-effort.

        Raises:
            ValidationError: Bad name/kind
            ParentNotFoundError / ParentNotAFolderError: Bad parent
            MissingContentError: Empty content
        """
        if not name:
            raise ValidationError("Missing name", {"name": "required"})
        try:
            kind = FileKind(kind)
        except ValueError as e:
            raise ValidationError("Missing type", {"type": str(kind)}) from e
        if not FileKind.has_content(kind):
            raise ValidationError("Folders carry no content", {"type": kind.value})
        if not content:
            raise MissingContentError()
        parent = self._validate_parent(parent_id)

        storage_ref = generate_storage_ref(name)
        self.storage.put(storage_ref, content)

        now = self.clock()
        try:
            entry = self.file_repo.create(FileEntry(
                owner_id=owner_id,
                name=name,
                kind=kind.value,
                parent_id=parent,
                is_public=bool(is_public),
                storage_ref=storage_ref,
                created_at=now,
                updated_at=now
            ))
            self.db.commit()
        except Exception:
            self.db.rollback()
            try:
                self.storage.delete(storage_ref)
            except OSError as cleanup_error:
                logger.warning(f"Could not remove orphaned blob {storage_ref}: {cleanup_error}")
            raise

        logger.info(f"Created {kind.value} {entry.id} ({len(content)} bytes) under {parent}")
        return entry

    @guard_store("Get file")
    def get(self, file_id: str) -> FileEntry:
        """
        Raises:
            NotFoundError: No entry with that id
        """
        entry = self.file_repo.get_with_thumbnails(file_id)
        if entry is None:
            raise NotFoundError("file", file_id)
        return entry

    @guard_store("Get owned file")
    def get_owned(self, file_id: str, owner_id: str) -> FileEntry:
        """
        Raises:
            NotFoundError: Absent, or owned by someone else
        """
        entry = self.file_repo.get_owned(file_id, owner_id)
        if entry is None:
            raise NotFoundError("file", file_id)
        return entry

    @guard_store("List files")
    def list_children(
        self,
        owner_id: str,
        parent_id: Optional[str] = ROOT_PARENT_ID,
        page: int = 0,
        page_size: int = DEFAULT_PAGE_SIZE
    ) -> List[FileEntry]:
        """
        Get one page of the owner's entries under parent_id.

        Args:
            page: Zero-based page index; negative values read as 0
        """
        page = max(int(page or 0), 0)
        parent = ROOT_PARENT_ID if parent_id in (None, "") else str(parent_id)
        return self.file_repo.list_children(owner_id, parent, limit=page_size, offset=page * page_size)

    @guard_store("Set visibility")
    def set_public(self, file_id: str, owner_id: str, value: bool) -> FileEntry:
        """
        Publish or unpublish an entry owned by owner_id.

        Raises:
            NotFoundError: Absent, or owned by someone else
        """
        updated = self.file_repo.update_visibility(file_id, owner_id, bool(value), self.clock())
        self.db.commit()
        if updated == 0:
            raise NotFoundError("file", file_id)
        logger.info(f"File {file_id} is_public={bool(value)}")
        entry = self.file_repo.get_with_thumbnails(file_id)
        self.db.refresh(entry)
        return entry

    @guard_store("Attach thumbnails")
    def attach_thumbnails(self, file_id: str, renditions: Dict[int, str]) -> bool:
        """
        Record rendition paths, overwriting any earlier path for the same size.

        Args:
            renditions: size → storage path

        Raises:
            NotFoundError: No entry with that id
            ValidationError: Entry is a folder
        """
        entry = self.file_repo.get_by_id(file_id)
        if entry is None:
            raise NotFoundError("file", file_id)
        if entry.is_folder:
            raise ValidationError("Folders carry no thumbnails", {"fileId": file_id})

        now = self.clock()
        for size, path in renditions.items():
            self.file_repo.upsert_thumbnail(file_id, int(size), path, now)
        self.db.commit()
        logger.info(f"Attached {len(renditions)} thumbnails to {file_id}")
        return True

    def rendition_path(self, entry: FileEntry, size: Optional[int] = None) -> str:
        """
        Storage path to serve for entry at size (None means the original).

        Falls back to the derived path when no rendition row exists yet, so a
        client polling for a thumbnail gets 404 from storage rather than the
        original image.
        """
        if entry.storage_ref is None:
            raise ValidationError("Folders have no content", {"fileId": entry.id})
        if size is None:
            return entry.storage_ref
        return entry.thumbnail_refs.get(int(size)) or thumbnail_path(entry.storage_ref, int(size))

    @guard_store("Count files")
    def count_files(self) -> int:
        return self.file_repo.count()

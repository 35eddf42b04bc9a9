"""
File Service

The upload path: validate the request, record the entry through the catalog,
then hand images to the thumbnail queue.
"""

import base64
import binascii
import logging
from typing import Iterable, Optional

from constants import ROOT_PARENT_ID, THUMBNAIL_SIZES, FileKind
from exceptions import ValidationError, MissingContentError
from models import FileEntry
from services.file_catalog import FileCatalog
from services.job_queue import JobQueue

logger = logging.getLogger(__name__)


class FileService:
    """Service for upload business logic."""

    def __init__(self, catalog: FileCatalog, queue: JobQueue, thumbnail_sizes: Iterable[int] = THUMBNAIL_SIZES):
        self.catalog = catalog
        self.queue = queue
        self.thumbnail_sizes = tuple(thumbnail_sizes)

    @staticmethod
    def _decode(data_b64: Optional[str]) -> bytes:
        if not data_b64:
            raise MissingContentError()
        try:
            return base64.b64decode(data_b64, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValidationError("Invalid data", {"data": "must be base64"}) from e

    def upload(
        self,
        owner_id: str,
        name: Optional[str],
        kind: Optional[str],
        parent_id: Optional[str] = ROOT_PARENT_ID,
        is_public: bool = False,
        data_b64: Optional[str] = None
    ) -> FileEntry:
        """
        Create a folder, file or image for owner_id.

        The thumbnail job for an image is enqueued only after its entry is
        committed, so no job ever points at a file that doesn't exist.

        Raises:
            ValidationError: "Missing name", "Missing type", "Missing data",
                "Parent not found", "Parent is not a folder"
        """
        if not name:
            raise ValidationError("Missing name", {"name": "required"})
        if not kind or kind not in FileKind.values():
            raise ValidationError("Missing type", {"type": kind})
        file_kind = FileKind(kind)
        parent = ROOT_PARENT_ID if parent_id in (None, "", 0) else str(parent_id)

        if file_kind == FileKind.FOLDER:
            return self.catalog.create_folder(owner_id, name, parent, is_public)

        content = self._decode(data_b64)
        entry = self.catalog.create_file(owner_id, name, file_kind, parent, content, is_public)

        if file_kind == FileKind.IMAGE:
            job = self.queue.enqueue(entry.id, owner_id, self.thumbnail_sizes)
            logger.info(f"Image {entry.id} uploaded, thumbnail job {job.id} queued")

        return entry

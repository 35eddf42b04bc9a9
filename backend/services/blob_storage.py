"""
Blob Storage Service

Filesystem-backed implementation of IBlobStorage. Every key lives directly
under the configured storage root; writes go through a temp file and an
atomic rename so a reader never sees half a thumbnail.
"""

import os
import tempfile
import logging
from pathlib import Path

from exceptions import BlobNotFoundError, ValidationError
from services.interfaces import IBlobStorage

logger = logging.getLogger(__name__)


class LocalBlobStorage(IBlobStorage):
    """Stores blobs as plain files under root_dir."""

    def __init__(self, root_dir: str | Path):
        self.root = Path(root_dir)
        self.root.mkdir(parents=True, exist_ok=True)

    def _resolve(self, path: str) -> Path:
        """Map a key to a file under root, rejecting anything that escapes it."""
        if not path:
            raise ValidationError("Empty storage path")
        resolved = (self.root / path).resolve()
        root = self.root.resolve()
        if resolved != root and root not in resolved.parents:
            raise ValidationError("Storage path escapes storage root", {"path": path})
        return resolved

    def put(self, path: str, data: bytes) -> None:
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".part")
        try:
            with os.fdopen(fd, 'wb') as tmp:
                tmp.write(data)
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        logger.debug(f"Stored {len(data)} bytes at {path}")

    def get(self, path: str) -> bytes:
        target = self._resolve(path)
        try:
            return target.read_bytes()
        except FileNotFoundError as e:
            raise BlobNotFoundError(path) from e

    def exists(self, path: str) -> bool:
        return self._resolve(path).is_file()

    def delete(self, path: str) -> None:
        self._resolve(path).unlink(missing_ok=True)

    def is_available(self) -> bool:
        return self.root.is_dir() and os.access(self.root, os.W_OK)

"""
Service Interfaces

Abstract base classes for the collaborators the core depends on.
This allows for dependency injection and easier testing/mocking.
"""

from abc import ABC, abstractmethod


class IBlobStorage(ABC):
    """
    Key → bytes store addressed by generated path strings.

    Keys are relative paths such as "3f2a....png" or "3f2a..._250.png".
    """

    @abstractmethod
    def put(self, path: str, data: bytes) -> None:
        """
        Write data at path, replacing anything already there.

        Args:
            path: Storage key
            data: Content to store
        """
        pass

    @abstractmethod
    def get(self, path: str) -> bytes:
        """
        Read the bytes stored at path.

        Raises:
            BlobNotFoundError: If nothing is stored at path
        """
        pass

    @abstractmethod
    def exists(self, path: str) -> bool:
        """Check whether path holds a blob."""
        pass

    def delete(self, path: str) -> None:
        """Remove a blob if present. Used to clean up after failed commits."""
        pass

    def is_available(self) -> bool:
        """Health probe for /status."""
        return True


class IImageRenderer(ABC):
    """Pure resize function used by the thumbnail worker."""

    @abstractmethod
    def render(self, data: bytes, target_width: int) -> bytes:
        """
        Produce a copy of the image scaled to target_width.

        Args:
            data: Encoded source image
            target_width: Width in pixels; height keeps the aspect ratio

        Returns:
            Encoded image in the source format

        Raises:
            Exception: Any failure is opaque to the caller
        """
        pass

"""
BlobStore - Storage contract shared by every disk back-end.
"""

from abc import ABC, abstractmethod
from typing import List


class BlobStore(ABC):
    """
    Abstract disk holding source images and derived files.

    Paths are relative to the disk root and use '/' as separator.
    """

    name: str = ''
    supports_visibility: bool = False
    # False for object stores where directories only exist as key prefixes.
    has_directories: bool = True

    @abstractmethod
    def exists(self, path: str) -> bool:
        """True if a file (or, where the back-end has them, a directory) exists."""

    @abstractmethod
    def get(self, path: str) -> bytes:
        """Read a file's contents."""

    @abstractmethod
    def put(self, path: str, data: bytes, content_type: str = 'application/octet-stream') -> None:
        """Write a file, replacing any previous contents."""

    @abstractmethod
    def delete(self, path: str) -> None:
        """Delete a file. Deleting a missing file is not an error."""

    @abstractmethod
    def size(self, path: str) -> int:
        """Size of a file in bytes."""

    @abstractmethod
    def last_modified(self, path: str) -> float:
        """Modification time as a POSIX timestamp."""

    @abstractmethod
    def url(self, path: str) -> str:
        """URL clients can fetch the file from."""

    @abstractmethod
    def make_directory(self, path: str, recursive: bool = True) -> None:
        """Create a directory (no-op on back-ends without real directories)."""

    @abstractmethod
    def delete_directory(self, path: str) -> None:
        """Remove an empty directory. Raises OSError if it is not empty."""

    @abstractmethod
    def list_files(self, path: str = '', recursive: bool = False) -> List[str]:
        """Paths of files under a directory."""

    @abstractmethod
    def list_directories(self, path: str = '', recursive: bool = False) -> List[str]:
        """Paths of subdirectories of a directory."""

    def set_visibility(self, path: str, public: bool) -> None:
        """Make a file publicly readable or private, where supported."""
        raise NotImplementedError(f"{type(self).__name__} has no visibility support")

    def ping(self) -> None:
        """Raise if the disk cannot be reached."""
        self.exists('')

"""
LocalBlobStore - Disk back-end on the local filesystem.
"""

import logging
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional
from urllib.parse import quote

from .blob_store import BlobStore


@dataclass
class LocalConfig:
    """
    Configuration for a local filesystem disk.

    Attributes:
        root_path: Directory all paths are relative to
        base_url: URL prefix the web server exposes root_path under
        create_root: Create root_path if it is missing
    """
    root_path: str
    base_url: str = '/storage'
    create_root: bool = True

    def validate(self) -> List[str]:
        """Return a list of configuration errors (empty when valid)."""
        errors = []
        if not self.root_path:
            errors.append("Local root path is required")
        elif not self.create_root and not os.path.isdir(self.root_path):
            errors.append(f"Local root path does not exist: {self.root_path}")
        return errors


class LocalBlobStore(BlobStore):
    """
    Files stored below a root directory on the local filesystem.
    """

    supports_visibility = True

    def __init__(
        self,
        config: LocalConfig,
        name: str = 'local',
        logger: Optional[logging.Logger] = None
    ):
        self.config = config
        self.name = name
        self.logger = logger or logging.getLogger(__name__)
        self.root = Path(config.root_path).resolve()
        if config.create_root:
            self.root.mkdir(parents=True, exist_ok=True)

    def _full_path(self, path: str) -> Path:
        full = (self.root / path.lstrip('/')).resolve()
        if full != self.root and self.root not in full.parents:
            raise ValueError(f"Path escapes disk root: {path}")
        return full

    def _relative(self, full: Path) -> str:
        return full.relative_to(self.root).as_posix()

    def exists(self, path: str) -> bool:
        return self._full_path(path).exists()

    def get(self, path: str) -> bytes:
        return self._full_path(path).read_bytes()

    def put(self, path: str, data: bytes, content_type: str = 'application/octet-stream') -> None:
        full = self._full_path(path)
        full.parent.mkdir(parents=True, exist_ok=True)
        tmp = full.with_name(f".{full.name}.{os.getpid()}.{threading.get_ident()}.tmp")
        try:
            tmp.write_bytes(data)
            os.replace(tmp, full)
        except OSError:
            tmp.unlink(missing_ok=True)
            raise

    def delete(self, path: str) -> None:
        self._full_path(path).unlink(missing_ok=True)

    def size(self, path: str) -> int:
        return self._full_path(path).stat().st_size

    def last_modified(self, path: str) -> float:
        return self._full_path(path).stat().st_mtime

    def url(self, path: str) -> str:
        return f"{self.config.base_url.rstrip('/')}/{quote(path.lstrip('/'))}"

    def make_directory(self, path: str, recursive: bool = True) -> None:
        full = self._full_path(path)
        if recursive:
            full.mkdir(parents=True, exist_ok=True)
        else:
            full.mkdir(exist_ok=True)

    def delete_directory(self, path: str) -> None:
        full = self._full_path(path)
        if full == self.root:
            raise ValueError("Refusing to delete the disk root")
        # rmdir fails on a directory that gained a file since it was listed
        full.rmdir()

    def set_visibility(self, path: str, public: bool) -> None:
        os.chmod(self._full_path(path), 0o644 if public else 0o600)

    def list_files(self, path: str = '', recursive: bool = False) -> List[str]:
        base = self._full_path(path)
        if not base.is_dir():
            return []
        entries = base.rglob('*') if recursive else base.iterdir()
        return sorted(self._relative(p) for p in entries if p.is_file())

    def list_directories(self, path: str = '', recursive: bool = False) -> List[str]:
        base = self._full_path(path)
        if not base.is_dir():
            return []
        entries = base.rglob('*') if recursive else base.iterdir()
        return sorted(self._relative(p) for p in entries if p.is_dir())

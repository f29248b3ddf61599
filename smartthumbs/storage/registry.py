"""
DiskRegistry - Builds and holds disk handles for one service context.
"""

import logging
import threading
from typing import Dict, List, Optional

from ..errors import DiskUnavailable
from .blob_store import BlobStore
from .local_store import LocalBlobStore, LocalConfig
from .s3_config import S3Config
from .s3_store import S3BlobStore

DRIVERS = ('local', 's3')


class DiskRegistry:
    """
    Maps disk names to BlobStore instances.

    Disks are created on first use from their configuration block and reused
    for the lifetime of the registry. Each service owns its own registry.
    """

    def __init__(
        self,
        definitions: Optional[Dict[str, dict]] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize registry.

        Args:
            definitions: Disk name -> {'driver': 'local'|'s3', ...}
            logger: Optional logger instance
        """
        self.definitions = dict(definitions or {})
        self.logger = logger or logging.getLogger(__name__)
        self._disks: Dict[str, BlobStore] = {}
        self._lock = threading.Lock()

    def register(self, name: str, disk: BlobStore) -> None:
        """Add an already constructed disk."""
        with self._lock:
            disk.name = name
            self._disks[name] = disk

    def names(self) -> List[str]:
        return sorted(set(self.definitions) | set(self._disks))

    def __contains__(self, name: str) -> bool:
        return name in self._disks or name in self.definitions

    def get(self, name: str) -> BlobStore:
        """
        Return the disk called name.

        Raises:
            DiskUnavailable: If the disk is unknown or cannot be constructed
        """
        with self._lock:
            disk = self._disks.get(name)
            if disk is not None:
                return disk

            definition = self.definitions.get(name)
            if definition is None:
                raise DiskUnavailable(name, "not configured")

            try:
                disk = self._build(name, definition)
            except DiskUnavailable:
                raise
            except Exception as e:
                raise DiskUnavailable(name, str(e)) from e

            self._disks[name] = disk
            return disk

    def _build(self, name: str, definition: dict) -> BlobStore:
        driver = definition.get('driver', 'local')
        if driver == 'local':
            config = LocalConfig(
                root_path=definition.get('root', ''),
                base_url=definition.get('url', f"/storage/{name}"),
                create_root=definition.get('create_root', True),
            )
            errors = config.validate()
            if errors:
                raise DiskUnavailable(name, '; '.join(errors))
            return LocalBlobStore(config, name=name, logger=self.logger)
        if driver == 's3':
            config = S3Config.from_dict(definition)
            errors = config.validate()
            if errors:
                raise DiskUnavailable(name, '; '.join(errors))
            return S3BlobStore(config, name=name, logger=self.logger)
        raise DiskUnavailable(name, f"unknown driver '{driver}'")

    def test_disk(self, name: str) -> dict:
        """Report whether a disk is reachable."""
        try:
            self.get(name).ping()
            return {'accessible': True, 'error': None}
        except Exception as e:
            return {'accessible': False, 'error': str(e)}

"""
S3BlobStore - Disk back-end on S3/MinIO.
"""

import logging
from typing import List, Optional
from urllib.parse import quote

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from .blob_store import BlobStore
from .s3_config import S3Config

_NOT_FOUND_CODES = ('404', 'NoSuchKey', 'NotFound')


class S3BlobStore(BlobStore):
    """
    Wrapper for S3/MinIO object operations behind the BlobStore contract.

    Directories are virtual: they exist as long as some key lives below them.
    """

    supports_visibility = True
    has_directories = False

    def __init__(
        self,
        config: S3Config,
        name: str = 's3',
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize S3 disk.

        Args:
            config: S3 configuration
            name: Disk name used in logs and cache keys
            logger: Optional logger instance
        """
        self.config = config
        self.name = name
        self.logger = logger or logging.getLogger(__name__)

        self._client = boto3.client(
            's3',
            endpoint_url=config.endpoint,
            aws_access_key_id=config.access_key,
            aws_secret_access_key=config.secret_key,
            region_name=config.region,
            config=Config(
                signature_version='s3v4',
                s3={'addressing_style': 'path'}
            ),
            verify=config.verify_ssl
        )

    @property
    def client(self):
        """Return the underlying boto3 client."""
        return self._client

    def _key(self, path: str) -> str:
        prefix = self.config.prefix.strip('/')
        path = path.lstrip('/')
        return f"{prefix}/{path}" if prefix else path

    def _dir_prefix(self, path: str) -> str:
        key = self._key(path).rstrip('/')
        return f"{key}/" if key else ''

    def _relative(self, key: str) -> str:
        prefix = self.config.prefix.strip('/')
        if prefix and key.startswith(prefix + '/'):
            return key[len(prefix) + 1:]
        return key

    @staticmethod
    def _is_not_found(error: ClientError) -> bool:
        return error.response.get('Error', {}).get('Code') in _NOT_FOUND_CODES

    def _head(self, path: str) -> Optional[dict]:
        try:
            return self._client.head_object(Bucket=self.config.bucket, Key=self._key(path))
        except ClientError as e:
            if self._is_not_found(e):
                return None
            raise

    def exists(self, path: str) -> bool:
        """Check if an object exists in S3."""
        return self._head(path) is not None

    def get(self, path: str) -> bytes:
        """Download an object from S3."""
        response = self._client.get_object(Bucket=self.config.bucket, Key=self._key(path))
        return response['Body'].read()

    def put(self, path: str, data: bytes, content_type: str = 'application/octet-stream') -> None:
        """Upload an object to S3."""
        self._client.put_object(
            Bucket=self.config.bucket,
            Key=self._key(path),
            Body=data,
            ContentType=content_type
        )

    def delete(self, path: str) -> None:
        self._client.delete_object(Bucket=self.config.bucket, Key=self._key(path))

    def size(self, path: str) -> int:
        head = self._head(path)
        if head is None:
            raise FileNotFoundError(path)
        return head['ContentLength']

    def last_modified(self, path: str) -> float:
        head = self._head(path)
        if head is None:
            raise FileNotFoundError(path)
        return head['LastModified'].timestamp()

    def url(self, path: str) -> str:
        """Public URL when configured, otherwise a presigned GET URL."""
        if self.config.public_url:
            return f"{self.config.public_url.rstrip('/')}/{quote(self._key(path))}"
        return self._client.generate_presigned_url(
            'get_object',
            Params={'Bucket': self.config.bucket, 'Key': self._key(path)},
            ExpiresIn=self.config.url_expiry
        )

    def make_directory(self, path: str, recursive: bool = True) -> None:
        pass

    def delete_directory(self, path: str) -> None:
        pass

    def set_visibility(self, path: str, public: bool) -> None:
        self._client.put_object_acl(
            Bucket=self.config.bucket,
            Key=self._key(path),
            ACL='public-read' if public else 'private'
        )

    def _iter_keys(self, prefix: str, delimiter: Optional[str] = None):
        paginator = self._client.get_paginator('list_objects_v2')
        params = {'Bucket': self.config.bucket, 'Prefix': prefix}
        if delimiter:
            params['Delimiter'] = delimiter
        for page in paginator.paginate(**params):
            for obj in page.get('Contents', []):
                yield obj['Key']

    def list_files(self, path: str = '', recursive: bool = False) -> List[str]:
        prefix = self._dir_prefix(path)
        keys = self._iter_keys(prefix, delimiter=None if recursive else '/')
        return sorted(self._relative(key) for key in keys if not key.endswith('/'))

    def list_directories(self, path: str = '', recursive: bool = False) -> List[str]:
        prefix = self._dir_prefix(path)
        if recursive:
            directories = set()
            for key in self._iter_keys(prefix):
                parts = self._relative(key).split('/')[:-1]
                for depth in range(1, len(parts) + 1):
                    directories.add('/'.join(parts[:depth]))
            base = self._relative(prefix.rstrip('/'))
            return sorted(d for d in directories if d != base and (not base or d.startswith(base + '/')))

        paginator = self._client.get_paginator('list_objects_v2')
        directories = []
        for page in paginator.paginate(Bucket=self.config.bucket, Prefix=prefix, Delimiter='/'):
            for common_prefix in page.get('CommonPrefixes', []):
                directories.append(self._relative(common_prefix['Prefix'].rstrip('/')))
        return sorted(directories)

    def ping(self) -> None:
        self._client.head_bucket(Bucket=self.config.bucket)

"""
S3Config - Connection settings for an S3/MinIO disk.
"""

import os
from dataclasses import dataclass
from typing import List, Optional


@dataclass
class S3Config:
    """
    S3/MinIO connection settings.

    Attributes:
        endpoint: Endpoint URL (None for AWS defaults)
        bucket: Bucket name
        prefix: Key prefix every path is stored under
        access_key: Access key id
        secret_key: Secret access key
        region: Region name
        verify_ssl: Verify TLS certificates
        public_url: Base URL for public objects; presigned URLs are used when unset
        url_expiry: Lifetime of presigned URLs in seconds
    """
    endpoint: Optional[str] = None
    bucket: Optional[str] = None
    prefix: str = ''
    access_key: Optional[str] = None
    secret_key: Optional[str] = None
    region: Optional[str] = None
    verify_ssl: bool = True
    public_url: Optional[str] = None
    url_expiry: int = 3600

    @classmethod
    def from_env(cls) -> 'S3Config':
        """Build a configuration from S3_* environment variables."""
        return cls(
            endpoint=os.getenv('S3_ENDPOINT'),
            bucket=os.getenv('S3_BUCKET'),
            prefix=os.getenv('S3_PREFIX', ''),
            access_key=os.getenv('S3_ACCESS_KEY'),
            secret_key=os.getenv('S3_SECRET_KEY'),
            region=os.getenv('S3_REGION'),
            verify_ssl=os.getenv('S3_VERIFY_SSL', 'true').lower() not in ('0', 'false', 'no'),
            public_url=os.getenv('S3_PUBLIC_URL'),
            url_expiry=int(os.getenv('S3_URL_EXPIRY', '3600')),
        )

    @classmethod
    def from_dict(cls, data: dict) -> 'S3Config':
        """Build from a disk block, filling gaps from the environment."""
        env = cls.from_env()
        return cls(
            endpoint=data.get('endpoint', env.endpoint),
            bucket=data.get('bucket', env.bucket),
            prefix=data.get('prefix', env.prefix),
            access_key=data.get('access_key', env.access_key),
            secret_key=data.get('secret_key', env.secret_key),
            region=data.get('region', env.region),
            verify_ssl=data.get('verify_ssl', env.verify_ssl),
            public_url=data.get('url', env.public_url),
            url_expiry=int(data.get('url_expiry', env.url_expiry)),
        )

    def validate(self) -> List[str]:
        """Return a list of configuration errors (empty when valid)."""
        errors = []
        if not self.bucket:
            errors.append("S3 bucket is required (S3_BUCKET)")
        if not self.access_key:
            errors.append("S3 access key is required (S3_ACCESS_KEY)")
        if not self.secret_key:
            errors.append("S3 secret key is required (S3_SECRET_KEY)")
        if self.url_expiry <= 0:
            errors.append("S3 URL expiry must be positive")
        return errors

"""
Pytest fixtures for smartthumbs tests.
"""

import io

import pytest
from PIL import Image


def make_image_bytes(width=100, height=100, fmt='JPEG', mode='RGB', color='red'):
    """Encode a solid-color test image."""
    img = Image.new(mode, (width, height), color=color)
    buffer = io.BytesIO()
    img.save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def make_image():
    """Fixture providing the image encoder for tests that need custom sizes."""
    return make_image_bytes


@pytest.fixture
def sample_image_bytes():
    """Fixture providing sample JPEG image bytes."""
    return make_image_bytes(100, 100)


@pytest.fixture
def landscape_image_bytes():
    """Fixture providing a 200x100 JPEG."""
    return make_image_bytes(200, 100)


@pytest.fixture
def portrait_image_bytes():
    """Fixture providing a 100x200 JPEG."""
    return make_image_bytes(100, 200)


@pytest.fixture
def sample_png_bytes():
    """Fixture providing sample PNG image bytes with transparency."""
    return make_image_bytes(100, 100, fmt='PNG', mode='RGBA', color=(255, 0, 0, 128))


@pytest.fixture
def s3_config():
    """Fixture providing S3 configuration."""
    from smartthumbs.storage.s3_config import S3Config

    return S3Config(
        endpoint='https://test-endpoint.example.com:9000',
        bucket='test-bucket',
        prefix='attachments',
        access_key='test-access-key',
        secret_key='test-secret-key',
        region='us-east-1',
    )


@pytest.fixture
def config_dict(tmp_path):
    """Fixture providing a raw configuration with two local disks."""
    return {
        'settings': {
            'default_format': 'webp',
            'default_quality': 85,
            'lease_wait': 0.05,
            'lease_poll_interval': 0.01,
        },
        'disks': {
            'public': {'driver': 'local', 'root': str(tmp_path / 'public'), 'url': '/storage'},
            'thumbs': {'driver': 'local', 'root': str(tmp_path / 'thumbs'), 'url': '/thumbs'},
        },
        'presets': {
            'avatar': {
                'format': 'jpg',
                'quality': 80,
                'smartcrop': '100x100',
                'destination': {'disk': 'thumbs', 'path': 'avatars/'},
                'subdirectory_strategy': 'hash_prefix',
                'variants': {
                    'mobile': {'smartcrop': '50x50', 'quality': 70},
                    'webp': {'format': 'webp'},
                },
            },
            'banner': {
                'format': 'png',
                'smartcrop': '300x100',
                'destination': {'disk': 'thumbs', 'path': 'banners'},
                'subdirectory_strategy': 'none',
            },
        },
    }


@pytest.fixture
def thumbnail_config(config_dict):
    """Fixture providing a parsed ThumbnailConfig."""
    from smartthumbs.settings import ThumbnailConfig

    return ThumbnailConfig.from_dict(config_dict)


@pytest.fixture
def service(thumbnail_config):
    """Fixture providing a ThumbnailService on local temporary disks."""
    from smartthumbs.service import ThumbnailService

    return ThumbnailService(thumbnail_config)


@pytest.fixture
def public_disk(service):
    """Fixture providing the source disk of the service fixture."""
    return service.disks.get('public')


@pytest.fixture
def thumbs_disk(service):
    """Fixture providing the destination disk of the service fixture."""
    return service.disks.get('thumbs')


@pytest.fixture
def source_image(public_disk):
    """Fixture storing a 200x100 JPEG at images/cat.jpg on the source disk."""
    public_disk.put('images/cat.jpg', make_image_bytes(200, 100), 'image/jpeg')
    return 'images/cat.jpg'

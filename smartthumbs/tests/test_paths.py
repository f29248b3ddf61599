"""Tests for path and cache key derivation."""

import hashlib

import pytest

from smartthumbs.paths import (
    EXISTS_KEY_PREFIX,
    MAX_FILENAME_LENGTH,
    URL_KEY_PREFIX,
    derive_identity,
    derive_path,
    exists_cache_key,
    fallback_cache_key,
    flat_path,
    is_derived_file,
    lease_key,
    sanitize_filename,
    url_cache_key,
)
from smartthumbs.presets import EffectiveConfig


@pytest.fixture
def config():
    """Fixture providing an effective configuration."""
    return EffectiveConfig(
        preset='avatar',
        target_width=130,
        target_height=90,
        format='webp',
        quality=85,
        destination_disk='thumbs',
        destination_path='avatars/',
        smart_crop_enabled=True,
        sharding_strategy='hash_prefix',
    )


class TestSanitizeFilename:
    """Tests for sanitize_filename."""

    def test_strips_unsafe_characters(self):
        """Test everything outside [A-Za-z0-9_-] is removed."""
        assert sanitize_filename('my photo (1).final') == 'myphoto1final'
        assert sanitize_filename('../../etc/passwd') == 'etcpasswd'
        assert sanitize_filename('caffè-ok_1') == 'caff-ok_1'

    def test_truncates(self):
        """Test the result never exceeds the maximum length."""
        assert len(sanitize_filename('a' * 500)) == MAX_FILENAME_LENGTH


class TestDerivePath:
    """Tests for derive_path."""

    def test_layout(self, config):
        """Test base path + shard + name_w_h.format."""
        digest = hashlib.md5(b'cat').hexdigest()

        path = derive_path('images/cat.jpg', config)

        assert path == f"avatars/{digest[0]}/{digest[1]}/cat_130_90.webp"

    def test_variant_suffix(self, config):
        """Test the variant name is appended to the dimensions."""
        path = derive_path('images/cat.jpg', config, 'mobile')

        assert path.endswith('/cat_130_90_mobile.webp')

    def test_deterministic(self, config):
        """Test identical inputs give identical paths."""
        assert derive_path('a/b/Dog.PNG', config, 'x') == derive_path('a/b/Dog.PNG', config, 'x')

    def test_distinct_dimensions_do_not_collide(self, config):
        """Test different sizes of the same source get different paths."""
        other = EffectiveConfig(**{**config.to_dict(), 'target_width': 131})

        assert derive_path('cat.jpg', config) != derive_path('cat.jpg', other)

    def test_sanitized_name_in_path(self, config):
        """Test the source stem is sanitized."""
        identity = derive_identity('uploads/../my cat!.jpg', config)

        assert identity.filename == 'mycat'
        assert identity.basename == 'mycat_130_90.webp'

    def test_no_shard(self, config):
        """Test the none strategy writes directly below the base path."""
        flat = EffectiveConfig(**{**config.to_dict(), 'sharding_strategy': 'none'})

        assert derive_path('cat.jpg', flat) == 'avatars/cat_130_90.webp'

    def test_flat_path(self, config):
        """Test the flat fallback drops the shard directories."""
        assert flat_path(config, 'avatars/a/b/cat_130_90.webp') == 'avatars/cat_130_90.webp'


class TestCacheKeys:
    """Tests for cache key helpers."""

    def test_url_key(self):
        """Test URL keys depend on preset, source and variant."""
        key = url_cache_key('avatar', 'images/cat.jpg')

        assert key.startswith(URL_KEY_PREFIX)
        assert key == url_cache_key('avatar', 'images/cat.jpg', None)
        assert key == url_cache_key('avatar', 'images/cat.jpg', 'main')
        assert key != url_cache_key('avatar', 'images/cat.jpg', 'mobile')
        assert key != url_cache_key('banner', 'images/cat.jpg')

    def test_fallback_key_is_separate(self):
        """Test fallback URLs never share a key with real URLs."""
        key = fallback_cache_key('avatar', 'images/cat.jpg')

        assert key.startswith('thumb_fallback:')
        assert key != url_cache_key('avatar', 'images/cat.jpg')
        assert key != fallback_cache_key('avatar', 'images/cat.jpg', 'mobile')

    def test_exists_key_includes_disk(self):
        """Test existence keys differ per disk."""
        key = exists_cache_key('thumbs', 'a/b.webp')

        assert key.startswith(EXISTS_KEY_PREFIX)
        assert key != exists_cache_key('other', 'a/b.webp')
        assert key != lease_key('thumbs', 'a/b.webp')


class TestIsDerivedFile:
    """Tests for is_derived_file."""

    @pytest.mark.parametrize('path', [
        'avatars/a/b/cat_130_90.webp',
        'cat_130_90_mobile.JPG',
        'x_1_2.png',
        'photo_2024_01_10_20.gif',
    ])
    def test_matches(self, path):
        """Test derived names are recognized."""
        assert is_derived_file(path)

    @pytest.mark.parametrize('path', [
        'avatars/readme.txt',
        'cat.jpg',
        'cat_130.webp',
        'cat_130_90.bmp',
    ])
    def test_rejects(self, path):
        """Test other files are left alone."""
        assert not is_derived_file(path)

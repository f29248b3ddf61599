"""Tests for ThumbnailService class."""

import io
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest
from PIL import Image

from smartthumbs.errors import (
    ConfigNotFound,
    LeaseTimeout,
    SourceEmpty,
    SourceNotFound,
    SourceTooLarge,
    UnsupportedExtension,
)
from smartthumbs.paths import lease_key, url_cache_key
from smartthumbs.service import ResolveMode, SourceAsset, ThumbnailService
from smartthumbs.settings import ThumbnailConfig
from smartthumbs.sharding import shard_for


def avatar_path(name='cat', suffix='100_100', fmt='jpg'):
    return f"avatars/{shard_for(name, 'hash_prefix')}{name}_{suffix}.{fmt}"


def make_service(config_dict, **settings):
    config_dict['settings'].update(settings)
    return ThumbnailService(ThumbnailConfig.from_dict(config_dict))


class TestResolve:
    """Tests for ThumbnailService.resolve()."""

    def test_generates_missing_thumbnail(self, service, source_image, thumbs_disk):
        """Test the first resolve writes an exactly sized thumbnail."""
        url = service.resolve(source_image, 'avatar')

        assert url == '/thumbs/' + avatar_path()
        img = Image.open(io.BytesIO(thumbs_disk.get(avatar_path())))
        assert img.size == (100, 100)
        assert img.format == 'JPEG'

    def test_second_resolve_does_not_regenerate(self, service, source_image, thumbs_disk, mocker):
        """Test repeated resolves return the same URL with one write."""
        put = mocker.spy(thumbs_disk, 'put')

        first = service.resolve(source_image, 'avatar')
        second = service.resolve(source_image, 'avatar')

        assert first == second
        assert put.call_count == 1

    def test_existing_file_after_cache_loss(self, service, source_image, thumbs_disk, mocker):
        """Test an existing derived file is reused when the cache is empty."""
        service.resolve(source_image, 'avatar')
        service.cache.flush()
        put = mocker.spy(thumbs_disk, 'put')

        url = service.resolve(source_image, 'avatar')

        assert url == '/thumbs/' + avatar_path()
        put.assert_not_called()

    def test_variant(self, service, source_image, thumbs_disk):
        """Test a variant gets its own size and suffix."""
        url = service.resolve(source_image, 'avatar', 'mobile')

        assert url == '/thumbs/' + avatar_path(suffix='50_50_mobile')
        img = Image.open(io.BytesIO(thumbs_disk.get(avatar_path(suffix='50_50_mobile'))))
        assert img.size == (50, 50)

    def test_variant_format_override(self, service, source_image):
        """Test a variant can change the output format."""
        url = service.resolve(source_image, 'avatar', 'webp')

        assert url.endswith('cat_100_100_webp.webp')

    def test_unsharded_preset(self, service, source_image, thumbs_disk):
        """Test the 'none' strategy writes directly below the base path."""
        url = service.resolve(SourceAsset(source_image, 'public'), 'banner')

        assert url == '/thumbs/banners/cat_300_100.png'
        assert thumbs_disk.exists('banners/cat_300_100.png')


class TestStrictMode:
    """Tests for strict resolution errors."""

    def test_unknown_preset(self, service, source_image):
        """Test an unknown preset raises ConfigNotFound."""
        with pytest.raises(ConfigNotFound) as exc_info:
            service.resolve(source_image, 'nope', mode=ResolveMode.STRICT)

        assert exc_info.value.kind == 'ConfigNotFound'

    def test_missing_source(self, service):
        """Test a missing source raises SourceNotFound."""
        with pytest.raises(SourceNotFound):
            service.resolve('images/missing.jpg', 'avatar', mode=ResolveMode.STRICT)

    def test_unsupported_extension(self, service, public_disk):
        """Test disallowed extensions are rejected before reading."""
        public_disk.put('docs/readme.txt', b'hello')

        with pytest.raises(UnsupportedExtension):
            service.resolve('docs/readme.txt', 'avatar', mode=ResolveMode.STRICT)

    def test_empty_source(self, service, public_disk):
        """Test empty sources raise SourceEmpty."""
        public_disk.put('images/empty.jpg', b'')

        with pytest.raises(SourceEmpty):
            service.resolve('images/empty.jpg', 'avatar', mode=ResolveMode.STRICT)

    def test_source_too_large(self, config_dict, make_image):
        """Test the source size limit."""
        service = make_service(config_dict, max_source_bytes=10)
        service.disks.get('public').put('images/cat.jpg', make_image(200, 100))

        with pytest.raises(SourceTooLarge):
            service.resolve('images/cat.jpg', 'avatar', mode=ResolveMode.STRICT)

    def test_source_without_extension(self, service, public_disk, make_image):
        """Test a source with no extension is rejected when content validation is on."""
        public_disk.put('images/cat', make_image(200, 100))

        with pytest.raises(UnsupportedExtension):
            service.resolve('images/cat', 'avatar', mode=ResolveMode.STRICT)

    def test_failure_is_not_cached(self, service, public_disk, make_image):
        """Test a strict failure leaves no URL in the cache."""
        with pytest.raises(SourceNotFound):
            service.resolve('images/cat.jpg', 'avatar', mode=ResolveMode.STRICT)

        assert service.assets.get_url(url_cache_key('avatar', 'images/cat.jpg')) is None

        public_disk.put('images/cat.jpg', make_image(200, 100))
        assert service.resolve('images/cat.jpg', 'avatar').endswith('cat_100_100.jpg')


class TestSilentMode:
    """Tests for silent resolution and the fallback chain."""

    def test_unknown_preset_falls_back_to_original(self, service, source_image):
        """Test the original image is served when the preset is unknown."""
        url = service.resolve(source_image, 'nope', mode=ResolveMode.SILENT)

        assert url == '/storage/images/cat.jpg'

    def test_missing_source_gets_sized_placeholder(self, service):
        """Test a generated SVG sized like the preset."""
        url = service.url_safe('images/missing.jpg', 'avatar')

        assert url.startswith('data:image/svg+xml;base64,')

    def test_placeholder_url_wins(self, config_dict):
        """Test a configured placeholder URL is used first."""
        service = make_service(config_dict, placeholder_url='https://cdn.example.com/none.png')

        assert service.url_safe('images/missing.jpg', 'avatar') == 'https://cdn.example.com/none.png'

    def test_preset_silent_mode(self, config_dict):
        """Test a preset can default to silent mode."""
        config_dict['presets']['avatar']['silent_mode'] = True
        service = make_service(config_dict)

        assert service.url('images/missing.jpg', 'avatar').startswith('data:image/svg')

    def test_global_silent_default(self, config_dict):
        """Test the global silent mode default."""
        service = make_service(config_dict, silent_mode_default=True)

        assert service.url('images/missing.jpg', 'avatar').startswith('data:image/svg')

    def test_explicit_mode_overrides_default(self, config_dict):
        """Test a per-call strict mode beats the silent default."""
        service = make_service(config_dict, silent_mode_default=True)

        with pytest.raises(SourceNotFound):
            service.resolve('images/missing.jpg', 'avatar', mode=ResolveMode.STRICT)

    def test_fallback_is_logged(self, service, caplog):
        """Test silent failures are logged with their kind."""
        service.url_safe('images/missing.jpg', 'avatar')

        assert '[SourceNotFound]' in caplog.text

    def test_strict_after_silent_failure_raises(self, service):
        """Test a cached fallback URL is never returned to a strict caller."""
        service.url_safe('images/missing.jpg', 'avatar')

        with pytest.raises(SourceNotFound):
            service.resolve('images/missing.jpg', 'avatar', mode=ResolveMode.STRICT)

    def test_repeated_silent_failure_uses_cached_fallback(self, service, public_disk, mocker):
        """Test a failing source is not re-checked on every silent resolve."""
        first = service.url_safe('images/missing.jpg', 'avatar')
        exists = mocker.spy(public_disk, 'exists')

        assert service.url_safe('images/missing.jpg', 'avatar') == first
        exists.assert_not_called()

    def test_source_uploaded_after_silent_failure(self, service, public_disk, make_image):
        """Test the real thumbnail replaces the fallback once the source exists."""
        fallback = service.url_safe('images/cat.jpg', 'avatar')
        public_disk.put('images/cat.jpg', make_image(200, 100))

        url = service.resolve('images/cat.jpg', 'avatar', mode=ResolveMode.STRICT)

        assert url == '/thumbs/' + avatar_path()
        assert url != fallback
        assert service.url_safe('images/cat.jpg', 'avatar') == url


class TestDestination:
    """Tests for directory creation and the flat layout fallback."""

    def test_directory_failure_uses_flat_path(self, service, source_image, thumbs_disk, mocker):
        """Test a failed shard directory falls back to the base path."""
        mocker.patch.object(
            thumbs_disk, 'make_directory', side_effect=[OSError('permission denied'), None]
        )

        url = service.resolve(source_image, 'avatar')

        assert url == '/thumbs/avatars/cat_100_100.jpg'
        assert thumbs_disk.exists('avatars/cat_100_100.jpg')

    def test_flat_file_reused_after_cache_loss(self, service, source_image, thumbs_disk, mocker):
        """Test a file saved in the flat layout is found instead of regenerated."""
        mocker.patch.object(
            thumbs_disk, 'make_directory', side_effect=[OSError('permission denied'), None]
        )
        url = service.resolve(source_image, 'avatar')
        service.cache.flush()
        put = mocker.spy(thumbs_disk, 'put')

        assert service.resolve(source_image, 'avatar') == url
        assert service.exists(source_image, 'avatar') is True
        put.assert_not_called()

    def test_ensure_directory_creates_segments(self, service, thumbs_disk):
        """Test every segment is created."""
        service.ensure_directory(thumbs_disk, 'a/b/c')

        assert thumbs_disk.list_directories('a', recursive=True) == ['a/b', 'a/b/c']

    def test_visibility_failure_is_ignored(self, service, source_image, thumbs_disk, mocker):
        """Test visibility errors do not fail generation."""
        mocker.patch.object(thumbs_disk, 'set_visibility', side_effect=OSError('nope'))

        assert service.resolve(source_image, 'avatar').endswith('cat_100_100.jpg')


class TestConcurrency:
    """Tests for the generation lease."""

    def test_lease_timeout(self, service, source_image):
        """Test a lease held elsewhere ends in LeaseTimeout."""
        service.lease.acquire(lease_key('thumbs', avatar_path()))

        with pytest.raises(LeaseTimeout):
            service.resolve(source_image, 'avatar', mode=ResolveMode.STRICT)

    def test_concurrent_resolves_generate_once(self, config_dict, mocker, make_image):
        """Test parallel resolves of one thumbnail write it once."""
        service = make_service(config_dict, lease_wait=10)
        service.disks.get('public').put('images/cat.jpg', make_image(200, 100))
        thumbs_disk = service.disks.get('thumbs')
        put = mocker.spy(thumbs_disk, 'put')

        original_generate = service.generator.generate

        def slow_generate(*args, **kwargs):
            time.sleep(0.2)
            return original_generate(*args, **kwargs)

        mocker.patch.object(service.generator, 'generate', side_effect=slow_generate)
        barrier = threading.Barrier(4)

        def worker():
            barrier.wait()
            return service.resolve('images/cat.jpg', 'avatar', mode=ResolveMode.STRICT)

        with ThreadPoolExecutor(max_workers=4) as executor:
            urls = list(executor.map(lambda _: worker(), range(4)))

        assert len(set(urls)) == 1
        assert put.call_count == 1


class TestCacheManagement:
    """Tests for inspection and cache helpers."""

    def test_exists(self, service, source_image):
        """Test exists() before and after generation."""
        assert service.exists(source_image, 'avatar') is False

        service.resolve(source_image, 'avatar')

        assert service.exists(source_image, 'avatar') is True
        assert service.exists(source_image, 'nope') is False

    def test_is_up_to_date(self, service, source_image, public_disk):
        """Test staleness against the source modification time."""
        service.resolve(source_image, 'avatar')
        assert service.is_up_to_date(source_image, 'avatar') is True

        future = time.time() + 3600
        os.utime(os.path.join(public_disk.root, source_image), (future, future))

        assert service.is_up_to_date(source_image, 'avatar') is False

    def test_regenerate_if_needed(self, service, source_image, public_disk, thumbs_disk, mocker):
        """Test a stale thumbnail is rewritten, a fresh one is not."""
        service.resolve(source_image, 'avatar')
        put = mocker.spy(thumbs_disk, 'put')

        service.regenerate_if_needed(source_image, 'avatar')
        assert put.call_count == 0

        future = time.time() + 3600
        os.utime(os.path.join(public_disk.root, source_image), (future, future))
        url = service.regenerate_if_needed(source_image, 'avatar')

        assert put.call_count == 1
        assert url == '/thumbs/' + avatar_path()

    def test_clear_cache(self, service, source_image):
        """Test clearing forgets the main and variant URLs."""
        service.resolve(source_image, 'avatar')
        service.resolve(source_image, 'avatar', 'mobile')

        service.clear_cache(source_image, 'avatar')

        assert service.assets.get_url(url_cache_key('avatar', source_image)) is None
        assert service.assets.get_url(url_cache_key('avatar', source_image, 'mobile')) is None

    def test_warm_up_cache(self, service, source_image):
        """Test warming only caches files that exist."""
        service.resolve(source_image, 'avatar')
        service.cache.flush()

        stats = service.warm_up_cache([source_image], 'avatar', ['mobile'])

        assert stats.total == 2
        assert stats.processed == 1
        assert stats.errors == 0
        assert stats.details[source_image]['main'] == '/thumbs/' + avatar_path()

        again = service.warm_up_cache([source_image], 'avatar')
        assert again.already_cached == 1

    def test_batch_generate(self, service, source_image):
        """Test batch generation collects successes and failures."""
        stats = service.batch_generate([source_image, 'images/missing.jpg'], 'avatar', ['mobile'])

        assert stats.total == 4
        assert stats.processed == 2
        assert stats.errors == 2
        assert set(stats.details[source_image]) == {'main', 'mobile'}
        assert 'main' in stats.details['images/missing.jpg']['errors']

    def test_debug_info(self, service, source_image):
        """Test the debug report before and after generation."""
        before = service.debug_info(source_image, 'avatar')

        assert before['source_exists'] is True
        assert before['thumbnail_exists'] is False
        assert before['thumbnail_path'] == avatar_path()
        assert before['generated_subdirectory'] == shard_for('cat', 'hash_prefix')
        assert before['dimensions'] == '100x100'
        assert before['resolve_mode'] == 'strict'
        assert before['url_cached'] is False

        service.resolve(source_image, 'avatar')
        after = service.debug_info(source_image, 'avatar')

        assert after['thumbnail_exists'] is True
        assert after['url_cached'] is True
        assert after['thumbnail_size'] > 0

    def test_debug_info_error(self, service, source_image):
        """Test the debug report of an unknown preset."""
        info = service.debug_info(source_image, 'nope')

        assert 'error' in info
        assert info['preset'] == 'nope'

    def test_get_variants(self, service):
        """Test variant lookup for known and unknown presets."""
        assert set(service.get_variants('avatar')) == {'mobile', 'webp'}
        assert service.get_variants('nope') == {}

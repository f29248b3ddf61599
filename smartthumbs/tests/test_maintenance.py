"""Tests for ThumbnailMaintenance class."""

import pytest

from smartthumbs.errors import ConfigNotFound
from smartthumbs.maintenance import ThumbnailMaintenance
from smartthumbs.service import ThumbnailService
from smartthumbs.settings import ThumbnailConfig
from smartthumbs.sharding import STRATEGIES


@pytest.fixture
def maintenance(service):
    """Fixture providing maintenance over the service fixture."""
    return ThumbnailMaintenance(service)


@pytest.fixture
def populated(thumbs_disk):
    """Fixture storing three derived files and one unrelated file for the avatar preset."""
    thumbs_disk.put('avatars/ab/cd/cat_100_100.jpg', b'one')
    thumbs_disk.put('avatars/ab/dog_50_50_mobile.jpg', b'two')
    thumbs_disk.put('avatars/owl_100_100_webp.webp', b'three!')
    thumbs_disk.put('avatars/readme.txt', b'keep me')
    return thumbs_disk


class TestPurge:
    """Tests for purge operations."""

    def test_purge_only_derived_files(self, maintenance, populated):
        """Test only files named like derived files are deleted."""
        count = maintenance.purge('avatar')

        assert count == 3
        assert populated.list_files('avatars', recursive=True) == ['avatars/readme.txt']

    def test_purge_removes_empty_directories(self, maintenance, populated):
        """Test emptied shard directories are cleaned up."""
        maintenance.purge('avatar')

        assert populated.list_directories('avatars', recursive=True) == []

    def test_purge_keeps_directories_when_disabled(self, config_dict):
        """Test auto_cleanup_empty_dirs=False leaves directories alone."""
        config_dict['settings']['auto_cleanup_empty_dirs'] = False
        service = ThumbnailService(ThumbnailConfig.from_dict(config_dict))
        disk = service.disks.get('thumbs')
        disk.put('avatars/ab/cat_100_100.jpg', b'one')

        ThumbnailMaintenance(service).purge('avatar')

        assert disk.list_directories('avatars') == ['avatars/ab']

    def test_purge_unknown_preset(self, maintenance):
        """Test an unknown preset raises ConfigNotFound."""
        with pytest.raises(ConfigNotFound):
            maintenance.purge('nope')

    def test_purge_all_flushes_cache(self, maintenance, service, populated):
        """Test purging everything also empties the cache."""
        populated.put('banners/cat_300_100.png', b'four')
        service.cache.put('thumb_url:1', '/thumbs/x.jpg')

        count = maintenance.purge()

        assert count == 4
        assert service.cache.get('thumb_url:1') is None

    def test_purge_all_skips_failing_preset(self, config_dict, caplog):
        """Test a preset on a missing disk does not stop the others."""
        config_dict['presets']['ghost'] = {
            'smartcrop': '10x10',
            'destination': {'disk': 'nowhere', 'path': 'ghosts'},
        }
        service = ThumbnailService(ThumbnailConfig.from_dict(config_dict))
        service.disks.get('thumbs').put('banners/cat_300_100.png', b'x')

        assert ThumbnailMaintenance(service).purge_all() == 1
        assert 'nowhere' in caplog.text

    def test_purge_after_resolve(self, maintenance, service, source_image, thumbs_disk):
        """Test purged thumbnails are regenerated on the next resolve."""
        url = service.resolve(source_image, 'avatar')
        maintenance.purge()

        assert service.resolve(source_image, 'avatar') == url
        assert len(thumbs_disk.list_files('avatars', recursive=True)) == 1

    def test_purge_preset_then_resolve_regenerates(self, maintenance, service, source_image, thumbs_disk):
        """Test purging one preset drops its cached URLs so the next resolve rebuilds the file."""
        url = service.resolve(source_image, 'avatar')
        banner = service.resolve(source_image, 'banner')

        assert maintenance.purge('avatar') == 1
        assert thumbs_disk.list_files('avatars', recursive=True) == []

        assert service.resolve(source_image, 'avatar') == url
        assert len(thumbs_disk.list_files('avatars', recursive=True)) == 1
        assert service.resolve(source_image, 'banner') == banner

    def test_purge_preset_forgets_existence(self, maintenance, service, source_image):
        """Test a purged thumbnail is no longer reported as existing."""
        service.resolve(source_image, 'avatar')

        maintenance.purge('avatar')

        assert service.exists(source_image, 'avatar') is False


class TestOptimize:
    """Tests for duplicate and empty directory removal."""

    def test_find_duplicates_keeps_first(self, maintenance, thumbs_disk):
        """Test the first file in path order is kept."""
        thumbs_disk.put('avatars/a_1_1.jpg', b'same')
        thumbs_disk.put('avatars/b_1_1.jpg', b'same')
        thumbs_disk.put('avatars/c_1_1.jpg', b'other')

        assert maintenance.find_duplicates(thumbs_disk, 'avatars/') == ['avatars/b_1_1.jpg']

    def test_optimize(self, maintenance, thumbs_disk):
        """Test duplicates and empty directories are removed."""
        thumbs_disk.put('avatars/a_1_1.jpg', b'same')
        thumbs_disk.put('avatars/b_1_1.jpg', b'same')
        thumbs_disk.make_directory('avatars/zz/yy')

        result = maintenance.optimize()

        assert result['duplicates_removed'] == 1
        assert result['empty_dirs_removed'] == 2
        assert result['space_freed'] == 4
        assert result['space_freed_human'] == '4 B'
        assert thumbs_disk.exists('avatars/a_1_1.jpg')
        assert not thumbs_disk.exists('avatars/b_1_1.jpg')

    def test_clean_empty_directories_skips_unsharded(self, maintenance, thumbs_disk):
        """Test the 'none' strategy leaves directories alone."""
        thumbs_disk.make_directory('banners/old')

        assert maintenance.clean_empty_directories(thumbs_disk, 'banners/', 'none') == 0
        assert thumbs_disk.exists('banners/old')

    def test_find_empty_directories_deepest_first(self, maintenance, thumbs_disk):
        """Test nested empty directories are listed children first."""
        thumbs_disk.make_directory('avatars/a/b')
        thumbs_disk.put('avatars/c/x_1_1.jpg', b'x')

        assert maintenance.find_empty_directories(thumbs_disk, 'avatars') == ['avatars/a/b', 'avatars/a']

    def test_cleanup_keeps_directory_written_after_listing(self, maintenance, thumbs_disk, mocker):
        """Test a thumbnail written between listing and removal survives cleanup."""
        thumbs_disk.make_directory('avatars/a/b')
        thumbs_disk.make_directory('avatars/c')
        mocker.patch.object(
            maintenance, 'find_empty_directories',
            return_value=['avatars/a/b', 'avatars/c', 'avatars/a'],
        )
        thumbs_disk.put('avatars/a/b/fresh_100_100.jpg', b'new')

        removed = maintenance.clean_empty_directories(thumbs_disk, 'avatars/')

        assert removed == 1
        assert thumbs_disk.exists('avatars/a/b/fresh_100_100.jpg')
        assert not thumbs_disk.exists('avatars/c')

    def test_optimize_drops_cached_urls_of_duplicates(self, maintenance, service, make_image):
        """Test a removed duplicate is regenerated instead of served from the URL cache."""
        public = service.disks.get('public')
        thumbs = service.disks.get('thumbs')
        public.put('images/cat.jpg', make_image(200, 100))
        public.put('images/kitten.jpg', make_image(200, 100))
        service.resolve('images/cat.jpg', 'banner')
        url = service.resolve('images/kitten.jpg', 'banner')

        assert maintenance.optimize()['duplicates_removed'] == 1
        assert not thumbs.exists('banners/kitten_300_100.png')

        assert service.resolve('images/kitten.jpg', 'banner') == url
        assert thumbs.exists('banners/kitten_300_100.png')


class TestStatistics:
    """Tests for distribution and system statistics."""

    def test_analyze_distribution(self, maintenance, populated):
        """Test per-directory and per-format counts."""
        stats = maintenance.analyze_distribution('avatar')

        assert stats.total_files == 3
        assert stats.total_size == 12
        assert stats.strategy == 'hash_prefix'
        assert stats.by_directory == {'ab/cd': 1, 'ab': 1, '.': 1}
        assert stats.by_format == {'jpg': 2, 'webp': 1}

    def test_analyze_unknown_preset(self, maintenance):
        """Test an unknown preset raises ConfigNotFound."""
        with pytest.raises(ConfigNotFound):
            maintenance.analyze_distribution('nope')

    def test_system_stats(self, maintenance, populated):
        """Test totals grouped by disk."""
        populated.put('banners/cat_300_100.png', b'1234')

        stats = maintenance.get_system_stats()

        assert stats.presets == 2
        assert stats.total_files == 4
        assert stats.total_size == 16
        assert sorted(stats.disk_usage['thumbs'].presets) == ['avatar', 'banner']
        assert stats.failed_presets == []

    def test_system_stats_failed_preset(self, config_dict):
        """Test presets that cannot be analyzed are reported."""
        config_dict['presets']['ghost'] = {
            'smartcrop': '10x10',
            'destination': {'disk': 'nowhere'},
        }
        service = ThumbnailService(ThumbnailConfig.from_dict(config_dict))

        stats = ThumbnailMaintenance(service).get_system_stats()

        assert stats.failed_presets == ['ghost']
        assert stats.presets == 2


class TestConfiguration:
    """Tests for validation and strategy previews."""

    def test_validate_configuration(self, maintenance):
        """Test a valid configuration."""
        result = maintenance.validate_configuration()

        assert result == {
            'valid': True,
            'issues': [],
            'presets_count': 2,
            'total_variants': 2,
        }

    def test_validate_configuration_issues(self, config_dict):
        """Test problems are listed."""
        config_dict['presets']['broken'] = {
            'smartcrop': 'big',
            'destination': {'disk': 'nowhere'},
        }
        service = ThumbnailService(ThumbnailConfig.from_dict(config_dict))

        result = ThumbnailMaintenance(service).validate_configuration()

        assert result['valid'] is False
        assert len(result['issues']) == 2

    def test_subdirectory_strategies(self, maintenance):
        """Test every strategy is previewed."""
        shards = maintenance.test_subdirectory_strategies('photos/My Cat.jpg')

        assert set(shards) == set(STRATEGIES)
        assert shards['none'] == '(none)'
        assert shards['filename_prefix'] == 'm/y/'

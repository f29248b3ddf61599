"""
Settings - Global options, presets and disks loaded from a configuration file.
"""

import dataclasses
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .presets import OUTPUT_FORMATS, PresetRegistry, validate_presets
from .sharding import is_valid_strategy
from .storage.registry import DRIVERS

logger = logging.getLogger(__name__)


def str2bool(value, raise_exc=False):
    """Convert common string spellings of a boolean into True or False."""
    true_set = {'yes', 'true', 't', 'y', '1', 'on'}
    false_set = {'no', 'false', 'f', 'n', '0', 'off'}

    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        value = value.strip().lower()
        if value in true_set:
            return True
        if value in false_set:
            return False

    if raise_exc:
        raise ValueError('Expected "%s"' % '", "'.join(sorted(true_set | false_set)))
    return None


@dataclass
class Settings:
    """
    Options shared by every preset.
    """
    default_quality: int = 85
    default_format: str = 'webp'
    enable_smart_crop: bool = True
    vertical_bias: float = 1 / 3
    max_smart_crop_analysis_size: Optional[int] = None
    default_subdirectory_strategy: str = 'hash_prefix'

    silent_mode_default: bool = False
    cache_urls: bool = True
    cache_ttl: int = 21600
    exists_ttl: int = 3600
    fallback_ttl: int = 300

    placeholder_url: Optional[str] = None
    fallback_to_original: bool = True
    generate_placeholders: bool = True
    placeholder_color: str = '#f8f9fa'
    placeholder_text_color: str = '#6c757d'
    static_placeholder: str = '/images/no-image.png'

    validate_image_content: bool = True
    allowed_extensions: List[str] = field(default_factory=lambda: ['jpg', 'jpeg', 'png', 'webp', 'gif'])
    max_source_bytes: Optional[int] = None

    auto_cleanup_empty_dirs: bool = True
    webp_lossless: bool = False
    png_compression: int = 6

    lease_ttl: float = 60
    lease_wait: float = 10
    lease_poll_interval: float = 0.2

    log_errors: bool = True
    log_generation_time: bool = False
    log_directory_creation: bool = False

    job_tries: int = 3
    job_backoff: List[float] = field(default_factory=lambda: [10, 30, 60])
    job_timeout: float = 120
    dead_letter_path: Optional[str] = None

    # Environment variable -> field name
    ENV_OVERRIDES = {
        'THUMBNAILS_SILENT_MODE': 'silent_mode_default',
        'THUMBNAILS_CACHE_URLS': 'cache_urls',
        'THUMBNAILS_CACHE_TTL': 'cache_ttl',
        'THUMBNAILS_EXISTS_TTL': 'exists_ttl',
        'THUMBNAILS_PLACEHOLDER_URL': 'placeholder_url',
        'THUMBNAILS_FALLBACK_TO_ORIGINAL': 'fallback_to_original',
        'THUMBNAILS_DEFAULT_FORMAT': 'default_format',
        'THUMBNAILS_DEFAULT_QUALITY': 'default_quality',
        'THUMBNAILS_MAX_SOURCE_BYTES': 'max_source_bytes',
        'THUMBNAILS_DEAD_LETTER_PATH': 'dead_letter_path',
        'THUMBNAILS_LOG_ERRORS': 'log_errors',
    }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'Settings':
        """Create from a mapping, ignoring (and logging) unknown keys."""
        known = {f.name for f in dataclasses.fields(cls)}
        values = {}
        for key, value in (data or {}).items():
            if key in known:
                values[key] = value
            else:
                logger.warning(f"Ignoring unknown setting '{key}'")
        settings = cls(**values)
        settings.allowed_extensions = [e.lower().lstrip('.') for e in settings.allowed_extensions]
        return settings

    def apply_env(self, environ: Optional[Dict[str, str]] = None) -> 'Settings':
        """Override fields from THUMBNAILS_* environment variables."""
        environ = os.environ if environ is None else environ
        types = {f.name: f.type for f in dataclasses.fields(self)}
        for env_name, attr in self.ENV_OVERRIDES.items():
            raw = environ.get(env_name)
            if raw is None:
                continue
            current = getattr(self, attr)
            if isinstance(current, bool) or types[attr] in (bool, 'bool'):
                value = str2bool(raw, raise_exc=True)
            elif isinstance(current, int) or attr in ('max_source_bytes',):
                value = int(raw) if raw != '' else None
            else:
                value = raw or None
            setattr(self, attr, value)
        return self

    def validate(self) -> List[str]:
        """Return a list of configuration errors (empty when valid)."""
        errors = []
        if not 1 <= int(self.default_quality) <= 100:
            errors.append(f"default_quality must be between 1 and 100, got {self.default_quality}")
        if str(self.default_format).lower() not in OUTPUT_FORMATS:
            errors.append(f"Unsupported default_format '{self.default_format}'")
        if not 0 <= self.vertical_bias <= 1:
            errors.append(f"vertical_bias must be between 0 and 1, got {self.vertical_bias}")
        if not is_valid_strategy(self.default_subdirectory_strategy):
            errors.append(f"Unknown default_subdirectory_strategy '{self.default_subdirectory_strategy}'")
        for name in ('cache_ttl', 'exists_ttl', 'fallback_ttl', 'lease_ttl'):
            if getattr(self, name) <= 0:
                errors.append(f"{name} must be positive")
        if self.job_tries < 1:
            errors.append("job_tries must be at least 1")
        if self.max_source_bytes is not None and self.max_source_bytes <= 0:
            errors.append("max_source_bytes must be positive")
        return errors


@dataclass
class ThumbnailConfig:
    """
    Complete configuration: global settings, presets and disk definitions.

    Attributes:
        settings: Global options
        presets: Registry of named presets
        disks: Disk name -> disk definition block
    """
    settings: Settings
    presets: PresetRegistry
    disks: Dict[str, dict] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'ThumbnailConfig':
        data = data or {}
        return cls(
            settings=Settings.from_dict(data.get('settings')),
            presets=PresetRegistry.from_dict(data.get('presets')),
            disks=dict(data.get('disks') or {}),
        )

    def validate(self) -> List[str]:
        """Return every problem found in settings, disks and presets."""
        errors = list(self.settings.validate())
        for name, disk in self.disks.items():
            driver = (disk or {}).get('driver', 'local')
            if driver not in DRIVERS:
                errors.append(f"Disk '{name}': unknown driver '{driver}'")
        errors.extend(validate_presets(
            self.presets,
            self.disks.keys(),
            self.settings.default_subdirectory_strategy,
        ))
        return errors


def load_config(filepath: str, environ: Optional[Dict[str, str]] = None) -> ThumbnailConfig:
    """
    Load configuration from a YAML (or JSON) file.

    Raises:
        FileNotFoundError: If the file does not exist
        yaml.YAMLError: If the file cannot be parsed
    """
    path = Path(filepath)
    with open(path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f) or {}
    config = ThumbnailConfig.from_dict(data)
    config.settings.apply_env(environ)
    return config

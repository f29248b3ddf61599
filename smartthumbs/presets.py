"""
Presets - Named thumbnail configurations and their variant overrides.
"""

from dataclasses import dataclass, asdict
from typing import Dict, List, Optional, Any, Iterable

from .crop_geometry import parse_dimensions
from .errors import ConfigNotFound, InvalidDimensions
from .sharding import is_valid_strategy, STRATEGIES

OUTPUT_FORMATS = ('jpg', 'jpeg', 'png', 'webp', 'gif')

# Keys a variant may override; anything else in a variant block is ignored.
OVERRIDABLE_KEYS = (
    'format',
    'quality',
    'smartcrop',
    'destination',
    'smart_crop_enabled',
    'subdirectory_strategy',
    'silent_mode',
)


def _normalize_base_path(path: Optional[str]) -> str:
    """Collapse duplicate slashes, drop the leading one and keep a trailing one."""
    parts = [p for p in str(path or '').split('/') if p]
    if not parts:
        return ''
    return '/'.join(parts) + '/'


@dataclass(frozen=True)
class EffectiveConfig:
    """
    A preset with one variant merged on top, ready for path derivation and generation.

    Attributes:
        preset: Preset name
        target_width: Output width in pixels
        target_height: Output height in pixels
        format: Output format/extension (e.g., 'webp')
        quality: Encoder quality (1-100)
        destination_disk: Disk name derived files are written to
        destination_path: Base path on that disk, '' or ending in '/'
        smart_crop_enabled: Use the top-biased crop instead of a center crop
        sharding_strategy: Subdirectory strategy name
        silent_mode: Preset-level default for silent resolution, None to inherit
        variant: Variant name, None for the main size
    """
    preset: str
    target_width: int
    target_height: int
    format: str
    quality: int
    destination_disk: str
    destination_path: str
    smart_crop_enabled: bool
    sharding_strategy: str
    silent_mode: Optional[bool] = None
    variant: Optional[str] = None

    @property
    def dimensions(self) -> str:
        return f"{self.target_width}x{self.target_height}"

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> 'EffectiveConfig':
        return cls(**data)


class Preset:
    """
    A named preset as loaded from configuration.

    The raw mapping is kept as-is so that a malformed size only fails the
    requests that use it, not the whole configuration load.
    """

    def __init__(self, name: str, data: Dict[str, Any]):
        self.name = name
        self.data = dict(data or {})

    @property
    def variants(self) -> Dict[str, dict]:
        return dict(self.data.get('variants') or {})

    @property
    def destination_disk(self) -> str:
        return (self.data.get('destination') or {}).get('disk', '')

    @property
    def destination_path(self) -> str:
        return _normalize_base_path((self.data.get('destination') or {}).get('path'))

    def strategy(self, default: str) -> str:
        return self.data.get('subdirectory_strategy') or default

    def merged(self, variant: Optional[str] = None) -> Dict[str, Any]:
        """
        Return the raw preset with a variant's overrides applied.

        Overrides replace whole keys (a variant 'destination' replaces the
        preset's destination, it is not merged field by field). An unknown
        variant name leaves the preset unchanged.
        """
        merged = {k: v for k, v in self.data.items() if k != 'variants'}
        if variant:
            override = self.variants.get(variant) or {}
            for key in OVERRIDABLE_KEYS:
                if key in override:
                    merged[key] = override[key]
        return merged

    def effective_config(
        self,
        variant: Optional[str] = None,
        default_format: str = 'webp',
        default_quality: int = 85,
        default_smart_crop: bool = True,
        default_strategy: str = 'hash_prefix'
    ) -> EffectiveConfig:
        """
        Resolve the configuration for one variant of this preset.

        Raises:
            InvalidDimensions: If 'smartcrop' is missing or malformed
        """
        merged = self.merged(variant)
        width, height = parse_dimensions(merged.get('smartcrop'))

        destination = merged.get('destination') or {}
        smart_crop = merged.get('smart_crop_enabled')
        quality = merged.get('quality')
        try:
            quality = int(quality) if quality is not None else default_quality
        except (TypeError, ValueError):
            raise InvalidDimensions(f"Invalid quality for preset '{self.name}': {quality!r}")

        return EffectiveConfig(
            preset=self.name,
            target_width=width,
            target_height=height,
            format=str(merged.get('format') or default_format).lower(),
            quality=quality,
            destination_disk=destination.get('disk', ''),
            destination_path=_normalize_base_path(destination.get('path')),
            smart_crop_enabled=default_smart_crop if smart_crop is None else bool(smart_crop),
            sharding_strategy=merged.get('subdirectory_strategy') or default_strategy,
            silent_mode=merged.get('silent_mode'),
            variant=variant,
        )

    def __repr__(self) -> str:
        return f"Preset({self.name!r})"


class PresetRegistry:
    """Immutable lookup of presets by name."""

    def __init__(self, presets: Dict[str, Preset]):
        self._presets = dict(presets)

    @classmethod
    def from_dict(cls, data: Dict[str, dict]) -> 'PresetRegistry':
        return cls({name: Preset(name, cfg) for name, cfg in (data or {}).items()})

    def get(self, name: str) -> Preset:
        try:
            return self._presets[name]
        except KeyError:
            raise ConfigNotFound(name) from None

    def names(self) -> List[str]:
        return list(self._presets.keys())

    def __contains__(self, name: str) -> bool:
        return name in self._presets

    def __iter__(self):
        return iter(self._presets.values())

    def __len__(self) -> int:
        return len(self._presets)

    @property
    def total_variants(self) -> int:
        return sum(len(p.variants) for p in self._presets.values())


def validate_presets(
    presets: PresetRegistry,
    known_disks: Iterable[str],
    default_strategy: str = 'hash_prefix'
) -> List[str]:
    """
    Check presets for configuration mistakes.

    Returns:
        List of problems, empty when everything is valid
    """
    disks = set(known_disks)
    issues = []
    for preset in presets:
        disk = preset.destination_disk
        if not disk or disk not in disks:
            issues.append(f"Preset '{preset.name}': destination disk '{disk}' is not configured")

        try:
            parse_dimensions(preset.data.get('smartcrop'))
        except InvalidDimensions:
            issues.append(
                f"Preset '{preset.name}': invalid smartcrop format '{preset.data.get('smartcrop')}'"
            )

        for variant_name, override in preset.variants.items():
            if 'smartcrop' in (override or {}):
                try:
                    parse_dimensions(override['smartcrop'])
                except InvalidDimensions:
                    issues.append(
                        f"Preset '{preset.name}', variant '{variant_name}': invalid smartcrop format"
                    )

        formats = [(None, preset.data.get('format'))] + [
            (name, (override or {}).get('format')) for name, override in preset.variants.items()
        ]
        for variant_name, fmt in formats:
            if fmt is not None and str(fmt).lower() not in OUTPUT_FORMATS:
                where = f"Preset '{preset.name}'" + (f", variant '{variant_name}'" if variant_name else '')
                issues.append(
                    f"{where}: unsupported format '{fmt}' (expected one of {', '.join(OUTPUT_FORMATS)})"
                )

        strategy = preset.strategy(default_strategy)
        if not is_valid_strategy(strategy):
            issues.append(
                f"Preset '{preset.name}': invalid subdirectory strategy '{strategy}' "
                f"(expected one of {', '.join(STRATEGIES)})"
            )
    return issues

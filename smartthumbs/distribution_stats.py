"""
DistributionStats - File counts and sizes of one preset's derived files.
"""

import os
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List


def format_bytes(size: float, precision: int = 2) -> str:
    """Format a byte count such as 1536 as '1.5 KB'."""
    for unit in ['B', 'KB', 'MB', 'GB']:
        if abs(size) < 1024:
            return f"{round(size, precision):g} {unit}"
        size /= 1024
    return f"{round(size, precision):g} TB"


@dataclass
class DistributionStats:
    """
    How a preset's derived files are spread over shard directories.

    Attributes:
        preset: Preset name
        strategy: Subdirectory strategy in effect
        total_files: Number of derived files
        total_size: Combined size in bytes
        by_directory: Directory -> file count ('.' for the base path)
        by_format: Extension -> file count
    """
    preset: str
    strategy: str
    total_files: int = 0
    total_size: int = 0
    by_directory: Dict[str, int] = field(default_factory=dict)
    by_format: Dict[str, int] = field(default_factory=dict)

    def add_file(self, relative_path: str, size: int) -> None:
        """Count one file, given its path relative to the preset's base path."""
        directory = os.path.dirname(relative_path) or '.'
        extension = os.path.splitext(relative_path)[1].lower().lstrip('.')
        self.total_files += 1
        self.total_size += size
        self.by_directory[directory] = self.by_directory.get(directory, 0) + 1
        self.by_format[extension] = self.by_format.get(extension, 0) + 1

    @property
    def directories_count(self) -> int:
        return len(self.by_directory)

    @property
    def average_per_directory(self) -> float:
        if not self.by_directory:
            return 0.0
        return round(self.total_files / len(self.by_directory), 2)

    def largest_directories(self, limit: int = 10) -> Dict[str, int]:
        """The directories holding the most files, largest first."""
        return dict(Counter(self.by_directory).most_common(limit))

    def to_dict(self) -> dict:
        return {
            'preset': self.preset,
            'total_files': self.total_files,
            'total_size': self.total_size,
            'total_size_human': format_bytes(self.total_size),
            'directories_count': self.directories_count,
            'average_per_directory': self.average_per_directory,
            'distribution_by_directory': dict(self.by_directory),
            'distribution_by_format': dict(self.by_format),
            'largest_directories': self.largest_directories(),
            'strategy': self.strategy,
        }


@dataclass
class DiskUsage:
    """
    Derived-file usage of one disk, summed over the presets writing to it.
    """
    files: int = 0
    size: int = 0
    presets: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            'files': self.files,
            'size': self.size,
            'size_human': format_bytes(self.size),
            'presets': list(self.presets),
        }


@dataclass
class SystemStats:
    """
    Totals across every preset.

    Attributes:
        presets: Number of presets analyzed
        total_files: Derived files across all presets
        total_size: Bytes across all presets
        disk_usage: Disk name -> usage
        failed_presets: Presets that could not be analyzed
    """
    presets: int = 0
    total_files: int = 0
    total_size: int = 0
    disk_usage: Dict[str, DiskUsage] = field(default_factory=dict)
    failed_presets: List[str] = field(default_factory=list)

    def add(self, disk: str, stats: DistributionStats) -> None:
        self.presets += 1
        self.total_files += stats.total_files
        self.total_size += stats.total_size
        usage = self.disk_usage.setdefault(disk, DiskUsage())
        usage.files += stats.total_files
        usage.size += stats.total_size
        usage.presets.append(stats.preset)

    def to_dict(self) -> dict:
        return {
            'presets': self.presets,
            'total_files': self.total_files,
            'total_size': self.total_size,
            'total_size_human': format_bytes(self.total_size),
            'disk_usage': {name: usage.to_dict() for name, usage in self.disk_usage.items()},
            'failed_presets': list(self.failed_presets),
        }

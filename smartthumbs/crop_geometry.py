"""
Crop geometry - Decides which rectangle of a source image to keep for a target size.

Pure functions only; nothing here touches pixels or storage.
"""

import math
import re
from dataclasses import dataclass, asdict
from typing import Tuple

from .errors import InvalidDimensions

# Ratios closer than this are treated as identical and the image is only resized.
RATIO_TOLERANCE = 0.01

# Fraction of the spare vertical space left above a portrait crop.
# 1/3 keeps the upper part of the picture, 1/2 would be a plain center crop.
TOP_THIRD_BIAS = 1 / 3

_DIMENSIONS_RE = re.compile(r'^\s*(\d+)\s*[xX]\s*(\d+)\s*$')


@dataclass(frozen=True)
class CropRect:
    """
    Crop rectangle in source pixel coordinates.

    Attributes:
        x: Left offset
        y: Top offset
        width: Crop width
        height: Crop height
        needs_crop: False when the source already has the target aspect ratio
    """
    x: int
    y: int
    width: int
    height: int
    needs_crop: bool

    @property
    def box(self) -> Tuple[int, int, int, int]:
        """(left, upper, right, lower) as expected by PIL.Image.crop."""
        return (self.x, self.y, self.x + self.width, self.y + self.height)

    def to_dict(self) -> dict:
        return asdict(self)


def _round(value: float) -> int:
    """Round half away from zero (Python's round() would round half to even)."""
    if value < 0:
        return -int(math.floor(-value + 0.5))
    return int(math.floor(value + 0.5))


def _check_dimensions(original_w: int, original_h: int, target_w: int, target_h: int) -> None:
    if target_w <= 0 or target_h <= 0:
        raise InvalidDimensions(f"Invalid target dimensions: {target_w}x{target_h}")
    if original_w <= 0 or original_h <= 0:
        raise InvalidDimensions(f"Invalid source dimensions: {original_w}x{original_h}")


def calculate_crop(
    original_w: int,
    original_h: int,
    target_w: int,
    target_h: int,
    vertical_bias: float = TOP_THIRD_BIAS
) -> CropRect:
    """
    Calculate the crop rectangle for a target size.

    Relatively wider images are cropped symmetrically left and right.
    Relatively taller images keep their full width and place the crop
    vertical_bias of the way down the spare space, favouring the top.

    Args:
        original_w: Source width in pixels
        original_h: Source height in pixels
        target_w: Target width in pixels
        target_h: Target height in pixels
        vertical_bias: Share of spare vertical space kept above the crop

    Returns:
        CropRect describing the region to keep

    Raises:
        InvalidDimensions: If any dimension is not positive
    """
    _check_dimensions(original_w, original_h, target_w, target_h)

    original_ratio = original_w / original_h
    target_ratio = target_w / target_h

    if abs(original_ratio - target_ratio) < RATIO_TOLERANCE:
        return CropRect(0, 0, original_w, original_h, needs_crop=False)

    if original_ratio > target_ratio:
        crop_h = original_h
        crop_w = _round(original_h * target_ratio)
        available = original_w - crop_w
        x = _round(available / 2) if available > 0 else 0
        return CropRect(x, 0, crop_w, crop_h, needs_crop=True)

    crop_w = original_w
    crop_h = _round(original_w / target_ratio)
    available = original_h - crop_h
    y = _round(min(available * vertical_bias, available)) if available > 0 else 0
    return CropRect(0, y, crop_w, crop_h, needs_crop=True)


def calculate_center_crop(
    original_w: int,
    original_h: int,
    target_w: int,
    target_h: int
) -> CropRect:
    """Symmetric crop on both axes, used when smart crop is disabled or fails."""
    return calculate_crop(original_w, original_h, target_w, target_h, vertical_bias=0.5)


def parse_dimensions(value: str) -> Tuple[int, int]:
    """
    Parse a 'WxH' size string.

    Raises:
        InvalidDimensions: If the string is malformed or a side is zero
    """
    match = _DIMENSIONS_RE.match(str(value or ''))
    if not match:
        raise InvalidDimensions(f"Invalid dimensions: {value!r}")
    width, height = int(match.group(1)), int(match.group(2))
    if width <= 0 or height <= 0:
        raise InvalidDimensions(f"Invalid dimensions: {value!r}")
    return width, height

"""
ThumbnailGenerator - Crops, resizes and re-encodes images with Pillow.
"""

import io
import logging
from typing import Optional, Tuple

from PIL import Image, ImageOps, UnidentifiedImageError

from .crop_geometry import CropRect, TOP_THIRD_BIAS, calculate_crop, calculate_center_crop
from .errors import EncodeFailed
from .presets import EffectiveConfig


class ThumbnailGenerator:
    """
    Generates fixed-size thumbnails from original images using Pillow.
    """

    CONTENT_TYPES = {
        'jpg': 'image/jpeg',
        'jpeg': 'image/jpeg',
        'png': 'image/png',
        'webp': 'image/webp',
        'gif': 'image/gif',
    }

    def __init__(
        self,
        vertical_bias: float = TOP_THIRD_BIAS,
        webp_lossless: bool = False,
        png_compression: int = 6,
        max_analysis_size: Optional[int] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize thumbnail generator.

        Args:
            vertical_bias: Share of spare height kept above a portrait crop
            webp_lossless: Encode WebP losslessly instead of using quality
            png_compression: zlib compression level for PNG (0-9)
            max_analysis_size: Downscale larger sources to this box before cropping
            logger: Optional logger instance
        """
        self.vertical_bias = vertical_bias
        self.webp_lossless = webp_lossless
        self.png_compression = png_compression
        self.max_analysis_size = max_analysis_size
        self.logger = logger or logging.getLogger(__name__)

    def generate(self, image_data: bytes, config: EffectiveConfig) -> Tuple[bytes, str]:
        """
        Generate a thumbnail from image data.

        Args:
            image_data: Original image as bytes
            config: Effective preset configuration

        Returns:
            Tuple of (thumbnail_bytes, content_type)

        Raises:
            EncodeFailed: If the image cannot be decoded or encoded
        """
        try:
            img = Image.open(io.BytesIO(image_data))
            img.load()
        except (UnidentifiedImageError, OSError) as e:
            raise EncodeFailed(f"Could not decode source image: {e}") from e

        try:
            img = ImageOps.exif_transpose(img)
            img = self._shrink_for_analysis(img)
            img = self.crop_and_resize(
                img,
                config.target_width,
                config.target_height,
                smart=config.smart_crop_enabled,
            )
            return self.encode(img, config.format, config.quality)
        except EncodeFailed:
            raise
        except Exception as e:
            self.logger.error(f"Error generating thumbnail: {e}")
            raise EncodeFailed(str(e)) from e
        finally:
            img.close()

    def crop_rect(self, width: int, height: int, target_w: int, target_h: int, smart: bool) -> CropRect:
        """Crop rectangle for an image, falling back to a center crop if smart crop fails."""
        if smart:
            try:
                return calculate_crop(width, height, target_w, target_h, self.vertical_bias)
            except Exception as e:
                self.logger.warning(f"Smart crop failed, using center crop: {e}")
        return calculate_center_crop(width, height, target_w, target_h)

    def crop_and_resize(self, img: Image.Image, target_w: int, target_h: int, smart: bool = True) -> Image.Image:
        """Crop img to the target aspect ratio and resize it to exactly target_w x target_h."""
        rect = self.crop_rect(img.width, img.height, target_w, target_h, smart)
        if rect.needs_crop:
            img = img.crop(rect.box)
        if img.size != (target_w, target_h):
            img = img.resize((target_w, target_h), Image.Resampling.LANCZOS)
        return img

    def _shrink_for_analysis(self, img: Image.Image) -> Image.Image:
        limit = self.max_analysis_size
        if not limit or (img.width <= limit and img.height <= limit):
            return img
        shrunk = img.copy()
        shrunk.thumbnail((limit, limit), Image.Resampling.LANCZOS)
        return shrunk

    def encode(self, img: Image.Image, fmt: str, quality: int) -> Tuple[bytes, str]:
        """Encode an image in the requested format."""
        fmt = fmt.lower()
        output = io.BytesIO()

        try:
            if fmt == 'webp':
                img = self._convert_color_mode(img, keep_alpha=True)
                if self.webp_lossless:
                    img.save(output, format='WEBP', lossless=True, quality=100)
                else:
                    img.save(output, format='WEBP', quality=quality, method=4)
            elif fmt == 'png':
                img = self._convert_color_mode(img, keep_alpha=True)
                img.save(output, format='PNG', optimize=True, compress_level=self.png_compression)
            elif fmt == 'gif':
                img.save(output, format='GIF')
            elif fmt in ('jpg', 'jpeg'):
                img = self._convert_color_mode(img, keep_alpha=False)
                img.save(output, format='JPEG', quality=quality, optimize=True)
            else:
                raise EncodeFailed(f"Unsupported output format: {fmt}")
        except (OSError, ValueError, KeyError) as e:
            raise EncodeFailed(f"Could not encode {fmt}: {e}") from e

        return output.getvalue(), self.get_content_type(fmt)

    def _convert_color_mode(self, img: Image.Image, keep_alpha: bool) -> Image.Image:
        """Convert image to a color mode the output format accepts."""
        if img.mode == 'P':
            img = img.convert('RGBA')
        if img.mode == 'LA':
            img = img.convert('RGBA')

        if img.mode == 'RGBA':
            if keep_alpha:
                return img
            background = Image.new('RGB', img.size, (255, 255, 255))
            background.paste(img, mask=img.split()[-1])
            return background
        elif img.mode not in ('RGB', 'L'):
            return img.convert('RGB')
        return img

    def get_content_type(self, extension: str) -> str:
        """Get content type for a format or file extension."""
        return self.CONTENT_TYPES.get(extension.lower().lstrip('.'), 'image/jpeg')
